"""Server-side snapshots of the deployment target and rollback."""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import paramiko

from dreamhost_deployer.core.exceptions import (
    DeployerError, BackupError, RemoteCommandError, RollbackError
)
from dreamhost_deployer.core.models import DeploymentConfig
from dreamhost_deployer.handlers.ssh_handler import SessionFactory, make_session_factory
from dreamhost_deployer.utils.path_utils import quote_remote_path

MISSING_MARKER = 'no such file or directory'


def backup_timestamp(now: datetime) -> str:
    """
    Filesystem-safe UTC ISO-8601 timestamp with millisecond precision.

    backup_timestamp(datetime(2026, 10, 19, 12, 30, 0, 123000, timezone.utc))
    == '2026-10-19T12-30-00-123Z'
    """
    now = now.astimezone(timezone.utc)
    iso = now.strftime('%Y-%m-%dT%H:%M:%S') + f'.{now.microsecond // 1000:03d}Z'
    return iso.replace(':', '-').replace('.', '-')


def backup_path_for(remote_path: str, now: datetime) -> str:
    return f"{remote_path.rstrip('/')}_backup_{backup_timestamp(now)}"


class BackupManager:
    """
    Creates a timestamped sibling copy of the remote target before a
    deployment and swaps it back in on rollback.

    Snapshots that are not consumed by a rollback stay on the server for
    the operator to remove.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.session_factory = session_factory or make_session_factory(logger=self.logger)
        self.clock = clock

    def create_backup(self, config: DeploymentConfig) -> Optional[str]:
        """
        Copy the remote target to a timestamped sibling directory.

        Best effort: any failure is logged and reported as None so the
        caller can continue without rollback.

        Returns:
            The backup path, or None if there was nothing to back up or
            the backup failed
        """
        self.logger.info("Creating backup for rollback capability...")
        try:
            return self._create_backup(config)
        except (DeployerError, paramiko.SSHException, OSError) as e:
            self.logger.error(f"Failed to create backup: {e}")
            return None

    def _create_backup(self, config: DeploymentConfig) -> Optional[str]:
        target = config.remote_path.rstrip('/')
        with self.session_factory(config) as session:
            listing = session.exec(f"ls -la {quote_remote_path(target)}", check=False)
            if not listing.ok:
                if MISSING_MARKER in listing.output.lower():
                    self.logger.warning("Remote directory does not exist yet, no backup needed")
                    return None
                raise BackupError(f"Cannot inspect {target}: {listing.output.strip()}")

            backup_path = backup_path_for(target, self.clock())
            session.exec(f"cp -r {quote_remote_path(target)} {quote_remote_path(backup_path)}")
            return backup_path

    def rollback(self, config: DeploymentConfig, backup_path: Optional[str]) -> bool:
        """
        Replace the remote target with a backup.

        Runs inside an already failing deployment, so connection and
        command failures are reported as False rather than raised.

        Raises:
            ValueError: If no backup path is given
        """
        if not backup_path:
            raise ValueError("No backup path provided for rollback")

        self.logger.warning(f"Rolling back to backup: {backup_path}")
        try:
            self._rollback(config, backup_path)
        except (DeployerError, paramiko.SSHException, OSError) as e:
            self.logger.error(f"Rollback failed: {e}")
            return False

        self.logger.warning("Rollback completed successfully!")
        return True

    def _rollback(self, config: DeploymentConfig, backup_path: str) -> None:
        target = config.remote_path.rstrip('/')
        with self.session_factory(config) as session:
            check = session.exec(f"test -d {quote_remote_path(backup_path)}", check=False)
            if not check.ok:
                raise RollbackError(f"Backup directory not found: {backup_path}")
            try:
                session.exec(f"rm -rf {quote_remote_path(target)}")
                session.exec(f"mv {quote_remote_path(backup_path)} {quote_remote_path(target)}")
            except RemoteCommandError as e:
                raise RollbackError(f"Could not restore {target} from {backup_path}: {e}") from e
