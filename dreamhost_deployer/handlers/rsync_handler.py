"""Deploy a directory with a single rsync-over-SSH invocation."""
import logging
import os
import shlex
import subprocess
import tempfile
from typing import List, Optional

from dreamhost_deployer.core.exceptions import TransferError
from dreamhost_deployer.core.models import DeploymentConfig, CommandResult
from dreamhost_deployer.utils.path_utils import with_trailing_slash
from dreamhost_deployer.utils.transport import uses_password


class RsyncHandler:
    """
    Runs rsync for a whole deployment.

    rsync manages file-level granularity itself, so the invocation is one
    unit: a non-zero exit fails the entire transfer.
    """

    def __init__(self, config: DeploymentConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def ssh_command(self) -> str:
        """Build the remote shell passed to rsync -e."""
        config = self.config
        parts = [
            'ssh',
            '-p', str(config.port),
            '-o', 'StrictHostKeyChecking=accept-new',
            '-o', f"ConnectTimeout={config.options.get('connectTimeout', 30)}",
        ]
        if uses_password(config):
            parts += ['-o', 'PubkeyAuthentication=no']
        else:
            # no tty prompts when the key is missing or rejected
            parts += ['-o', 'BatchMode=yes']
            if config.private_key_path:
                parts += ['-i', config.private_key_path]
        return ' '.join(shlex.quote(p) for p in parts)

    def build_command(self, dry_run: bool = False, password_file: Optional[str] = None) -> List[str]:
        """
        Build the rsync argument list.

        Args:
            dry_run: Add --dry-run so nothing is changed remotely
            password_file: File holding the SSH password, fed through sshpass

        Returns:
            Argument list suitable for subprocess without a shell
        """
        config = self.config
        cmd = []
        if password_file:
            cmd += ['sshpass', '-f', password_file]
        cmd += [
            'rsync', '-avz', '--delete',
            f"--timeout={int(config.options.get('uploadTimeout', 300))}",
        ]
        cmd += [f'--exclude={pattern}' for pattern in config.exclude if pattern]
        if dry_run:
            cmd.append('--dry-run')
        cmd += [
            '-e', self.ssh_command(),
            with_trailing_slash(config.local_path),
            f"{config.target}:{config.remote_path.rstrip('/')}/",
        ]
        return cmd

    def _write_password_file(self) -> str:
        fd, path = tempfile.mkstemp(prefix='dreamhost-deployer-', text=True)
        with os.fdopen(fd, 'w') as f:
            f.write(self.config.password)
        return path

    def run(self, dry_run: bool = False) -> CommandResult:
        """
        Execute rsync once.

        The password file, when one is needed, exists only for the
        duration of this call.

        Raises:
            TransferError: If rsync exits non-zero or runs past options.transferTimeout
            FileNotFoundError: If rsync or sshpass is not installed
        """
        timeout = self.config.options.get('transferTimeout', 3600)
        password_file = self._write_password_file() if uses_password(self.config) else None
        try:
            cmd = self.build_command(dry_run=dry_run, password_file=password_file)
            self.logger.info(f"Command: {' '.join(shlex.quote(c) for c in cmd)}")
            completed = subprocess.run(cmd, capture_output=True, text=True,
                                       stdin=subprocess.DEVNULL, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise TransferError(f"rsync did not finish within {timeout}s") from e
        finally:
            if password_file:
                os.remove(password_file)

        output = (completed.stdout or '') + (completed.stderr or '')
        for line in output.splitlines():
            if line.strip():
                self.logger.info(f"  {line}")

        result = CommandResult(command='rsync', exit_code=completed.returncode, output=output)
        if completed.returncode != 0:
            tail = '\n'.join(output.strip().splitlines()[-5:])
            raise TransferError(f"rsync exited with code {completed.returncode}\n{tail}".rstrip())
        return result
