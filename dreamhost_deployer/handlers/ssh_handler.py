"""Authenticated SSH/SFTP session to the deployment host."""
import logging
import socket
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Callable, Iterable, List, Optional

import paramiko

from dreamhost_deployer.core.exceptions import (
    AuthenticationError, ConnectionError, ConnectionTimeoutError,
    TransferError, TransferTimeoutError
)
from dreamhost_deployer.core.models import DeploymentConfig, CommandResult
from dreamhost_deployer.utils.path_utils import quote_remote_path
from dreamhost_deployer.utils.ssh_exec import execute_ssh_command
from dreamhost_deployer.utils.ssh_utils import AuthStrategy, build_auth_strategies


def _is_timeout(error: Exception) -> bool:
    if isinstance(error, socket.timeout):
        return True
    message = str(error).lower()
    return 'timed out' in message or 'timeout' in message or 'protocol banner' in message


def _stream_file(sftp: paramiko.SFTPClient, local_file: str, remote_file: str) -> None:
    with open(local_file, 'rb') as source:
        sftp.putfo(source, remote_file)


class RemoteSession:
    """
    One authenticated SSH connection.

    Owned by the operation that opened it and closed on every exit path;
    use it as a context manager:

        with RemoteSession(config) as session:
            session.exec('ls -la ~/example.com')
    """

    def __init__(self, config: DeploymentConfig,
                 strategies: Optional[List[AuthStrategy]] = None,
                 connect_timeout: Optional[float] = None,
                 command_timeout: Optional[float] = None,
                 upload_timeout: Optional[float] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the session.

        Args:
            config: Deployment configuration (host, port, credentials)
            strategies: Ordered authentication strategies; derived from config when omitted
            connect_timeout: Seconds allowed for TCP connect, banner and auth
            command_timeout: Default seconds allowed per remote command
            upload_timeout: Default seconds allowed per uploaded file
            logger: Optional logger
        """
        options = config.options
        self.config = config
        self.strategies = strategies if strategies is not None else build_auth_strategies(config)
        self.connect_timeout = connect_timeout or options.get('connectTimeout', 30)
        self.command_timeout = command_timeout or options.get('commandTimeout', 120)
        self.upload_timeout = upload_timeout or options.get('uploadTimeout', 300)
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.auth_strategy: Optional[AuthStrategy] = None
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> 'RemoteSession':
        if not self.connected:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def is_alive(self) -> bool:
        """True while the underlying transport is still active."""
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def connect(self) -> 'RemoteSession':
        """
        Authenticate, trying each strategy in order.

        Only a rejected credential moves on to the next strategy; timeouts
        and network errors fail immediately.

        Raises:
            AuthenticationError: If every strategy was rejected
            ConnectionTimeoutError: If the host did not answer in time
            ConnectionError: If the host is unreachable
        """
        config = self.config
        if not self.strategies:
            raise AuthenticationError(
                "No authentication method available (set password or privateKeyPath)",
                config.host, config.username
            )

        last_error: Optional[AuthenticationError] = None
        for strategy in self.strategies:
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            try:
                credentials = strategy.credentials(config)
                self.logger.debug(f"Connecting to {config.target}:{config.port} using {strategy.name}")
                client.connect(
                    hostname=config.host,
                    port=config.port,
                    username=config.username,
                    timeout=self.connect_timeout,
                    banner_timeout=self.connect_timeout,
                    auth_timeout=self.connect_timeout,
                    allow_agent=False,
                    look_for_keys=False,
                    **credentials
                )
            except AuthenticationError as e:
                client.close()
                self.logger.warning(f"{strategy.name.capitalize()} authentication unavailable: {e.message}")
                last_error = e
                continue
            except paramiko.AuthenticationException as e:
                client.close()
                self.logger.warning(f"{strategy.name.capitalize()} authentication rejected by {config.host}")
                last_error = AuthenticationError(
                    f"{strategy.name} authentication failed: {e}", config.host, config.username
                )
                continue
            except (paramiko.SSHException, OSError) as e:
                client.close()
                if _is_timeout(e):
                    raise ConnectionTimeoutError(
                        f"Connection timed out after {self.connect_timeout}s", config.host, config.username
                    ) from e
                raise ConnectionError(f"Cannot reach host: {e}", config.host, config.username) from e

            self._client = client
            self.auth_strategy = strategy
            self.logger.debug(f"Connected to {config.target} ({strategy.name})")
            return self

        raise last_error

    def _require_client(self) -> paramiko.SSHClient:
        if self._client is None:
            raise ConnectionError("Not connected to SSH server", self.config.host, self.config.username)
        return self._client

    def _require_sftp(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            client = self._require_client()
            try:
                self._sftp = client.open_sftp()
            except paramiko.SSHException as e:
                raise ConnectionError(f"Cannot open SFTP channel: {e}",
                                      self.config.host, self.config.username) from e
            self._sftp.get_channel().settimeout(self.upload_timeout)
        return self._sftp

    def exec(self, command: str, timeout: Optional[float] = None, check: bool = True) -> CommandResult:
        """
        Run one command and capture stdout and stderr together.

        Raises:
            RemoteCommandError: On non-zero exit when check is True
            CommandTimeoutError: When the command exceeds its timeout
            ConnectionError: When the session has dropped
        """
        return execute_ssh_command(
            self._require_client(), command,
            check_exit_code=check,
            timeout=timeout or self.command_timeout,
            host=self.config.host,
            username=self.config.username
        )

    def make_dirs(self, paths: Iterable[str]) -> CommandResult:
        """Create remote directories with mkdir -p semantics."""
        quoted = ' '.join(quote_remote_path(p) for p in paths)
        return self.exec(f"mkdir -p {quoted}")

    def upload(self, local_file: str, remote_file: str, timeout: Optional[float] = None) -> None:
        """
        Stream a local file to a remote path over SFTP.

        The copy runs on a helper worker so a stalled transfer can be
        abandoned at the deadline; the SFTP channel is then closed and
        reopened for the next file.

        Raises:
            TransferTimeoutError: If the upload exceeds its timeout
            TransferError: If the upload fails
        """
        timeout = timeout or self.upload_timeout
        sftp = self._require_sftp()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='sftp-upload')

        future = self._executor.submit(_stream_file, sftp, local_file, remote_file)
        try:
            future.result(timeout=timeout)
        except FuturesTimeoutError:
            self._abort_upload()
            raise TransferTimeoutError(remote_file, timeout)
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise TransferError(f"Failed to upload {local_file} to {remote_file}: {e}") from e

    def _abort_upload(self) -> None:
        sftp, self._sftp = self._sftp, None
        executor, self._executor = self._executor, None
        if sftp is not None:
            try:
                sftp.close()
            except (OSError, paramiko.SSHException) as e:
                self.logger.debug(f"Error closing stalled SFTP channel: {e}")
        if executor is not None:
            executor.shutdown(wait=False)

    def close(self) -> None:
        """Close SFTP and SSH; safe to call more than once."""
        self._abort_upload()
        if self._client is not None:
            self._client.close()
            self._client = None


SessionFactory = Callable[[DeploymentConfig], RemoteSession]


def make_session_factory(prompt: Optional[Callable[[str], str]] = None,
                         logger: Optional[logging.Logger] = None) -> SessionFactory:
    """
    Return a factory creating sessions with the standard strategy order.

    When prompt is given, a rejected configured credential falls back to
    asking the operator for a password.
    """
    def factory(config: DeploymentConfig) -> RemoteSession:
        return RemoteSession(config, strategies=build_auth_strategies(config, prompt), logger=logger)
    return factory
