"""Transfer a computed transfer set to the remote host."""
import logging
import os
import posixpath
from typing import Callable, List, Optional

from dreamhost_deployer.core.exceptions import (
    ConnectionError, RemoteCommandError, CommandTimeoutError, TransferError
)
from dreamhost_deployer.core.models import (
    DeploymentConfig, TransferSet, TransferResult, TRANSPORT_RSYNC, TRANSPORT_NATIVE
)
from dreamhost_deployer.handlers.rsync_handler import RsyncHandler
from dreamhost_deployer.handlers.ssh_handler import SessionFactory, make_session_factory
from dreamhost_deployer.utils.path_utils import remote_file_path
from dreamhost_deployer.utils.tree_walker import preview

MKDIR_BATCH_SIZE = 50


class Synchronizer:
    """
    Moves files to the remote target using rsync or per-file SFTP.

    The native path opens a single session for the whole pass, creates
    the directory skeleton first and then uploads files one at a time. A
    failed file is recorded and the batch continues.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None,
                 rsync_factory: Callable[..., RsyncHandler] = RsyncHandler,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.session_factory = session_factory or make_session_factory(logger=self.logger)
        self.rsync_factory = rsync_factory

    def synchronize(self, config: DeploymentConfig, transfer_set: TransferSet,
                    transport: str) -> TransferResult:
        """
        Transfer the set with the chosen mechanism.

        Args:
            config: Deployment configuration
            transfer_set: Files and directories computed by the tree walker
            transport: 'rsync' or 'native'

        Returns:
            TransferResult; for rsync every file counts as one unit of the
            single invocation

        Raises:
            TransferError: If the rsync invocation fails
            ConnectionError: If the session cannot be opened or is lost
        """
        if transport == TRANSPORT_RSYNC:
            try:
                return self._sync_rsync(config, transfer_set)
            except FileNotFoundError as e:
                self.logger.warning(f"rsync could not be started ({e}), falling back to SFTP")
        return self._sync_native(config, transfer_set)

    def _sync_rsync(self, config: DeploymentConfig, transfer_set: TransferSet) -> TransferResult:
        self.logger.warning("Deploying with rsync...")
        self.rsync_factory(config, logger=self.logger).run(dry_run=config.dry_run)
        count = len(transfer_set)
        return TransferResult(attempted=count, succeeded=count, transport=TRANSPORT_RSYNC)

    def dry_run_listing(self, config: DeploymentConfig) -> None:
        """Log what a native deployment would transfer; no connection is opened."""
        self.logger.warning("Files that would be transferred:")
        for entry in preview(config.local_path, config.exclude):
            self.logger.warning(f"  [{entry.kind}] {entry.path}")

    def _sync_native(self, config: DeploymentConfig, transfer_set: TransferSet) -> TransferResult:
        result = TransferResult(transport=TRANSPORT_NATIVE)

        if config.dry_run:
            self.dry_run_listing(config)
            return result

        self.logger.warning("Deploying with SFTP...")
        if not transfer_set.files:
            self.logger.warning("No files to transfer!")
            return result

        remote_root = config.remote_path
        total = len(transfer_set.files)

        with self.session_factory(config) as session:
            created = self._create_skeleton(session, remote_root, transfer_set)

            for index, relative_path in enumerate(transfer_set.files, 1):
                try:
                    remote_file = remote_file_path(remote_root, relative_path)
                    parent = posixpath.dirname(remote_file)
                    if parent not in created:
                        session.make_dirs([parent])
                        created.add(parent)
                    local_file = os.path.join(config.local_path, *relative_path.split('/'))
                    session.upload(local_file, remote_file)
                except (TransferError, RemoteCommandError, CommandTimeoutError, ValueError) as e:
                    result.record_failure(relative_path, str(e))
                    self.logger.error(f"  [{index}/{total}] Error uploading {relative_path}: {e}")
                    if not session.is_alive():
                        raise ConnectionError(
                            f"Connection lost after {result.attempted} of {total} files",
                            config.host, config.username
                        ) from e
                    continue

                result.record_success()
                self.logger.info(f"  [{index}/{total}] Uploaded: {relative_path}")

        self.logger.warning(f"Transferred {result.succeeded}/{result.attempted} files"
                            + (f", {result.failed} failed" if result.failures else ''))
        return result

    def _create_skeleton(self, session, remote_root: str, transfer_set: TransferSet) -> set:
        """
        Create the remote root and every needed directory.

        Failures are tolerated here; each file re-checks its own parent
        before upload.
        """
        directories: List[str] = [remote_root.rstrip('/') or '/']
        directories += [remote_file_path(remote_root, d) for d in transfer_set.directories]

        created = set()
        for start in range(0, len(directories), MKDIR_BATCH_SIZE):
            batch = directories[start:start + MKDIR_BATCH_SIZE]
            try:
                session.make_dirs(batch)
            except (RemoteCommandError, CommandTimeoutError) as e:
                self.logger.warning(f"Could not create remote directories: {e}")
                continue
            created.update(batch)
        return created
