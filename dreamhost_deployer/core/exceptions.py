"""Custom exception hierarchy for dreamhost_deployer."""
from typing import Optional


class DeployerError(Exception):
    """Base exception for all deployer errors."""
    pass


class ConfigurationError(DeployerError):
    """Raised when configuration is missing or invalid."""
    pass


class ConnectionError(DeployerError):
    """Raised when a connection to the remote host cannot be established."""

    def __init__(self, message: str, host: Optional[str] = None,
                 username: Optional[str] = None):
        self.host = host
        self.username = username
        self.message = message
        if host and username:
            message = f"{username}@{host}: {message}"
        super().__init__(message)


class AuthenticationError(ConnectionError):
    """Raised when the server rejects the supplied credentials."""
    pass


class ConnectionTimeoutError(ConnectionError):
    """Raised when connection establishment exceeds its timeout."""
    pass


class RemoteCommandError(DeployerError):
    """Raised when a remote command exits with a non-zero status."""

    def __init__(self, command: str, exit_code: int, output: str = ''):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        super().__init__(
            f"Command failed (exit {exit_code}): {command}\n{output.strip()}".rstrip()
        )


class CommandTimeoutError(DeployerError):
    """Raised when a remote command does not finish within its timeout."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout}s: {command}")


class TransferError(DeployerError):
    """Raised when a file transfer fails."""
    pass


class TransferTimeoutError(TransferError):
    """Raised when a single upload exceeds its timeout."""

    def __init__(self, path: str, timeout: float):
        self.path = path
        self.timeout = timeout
        super().__init__(f"Upload timed out after {timeout}s: {path}")


class BuildError(DeployerError):
    """Raised when the pre-deployment build fails."""
    pass


class BackupError(DeployerError):
    """Raised when a remote backup cannot be created."""
    pass


class RollbackError(DeployerError):
    """Raised when restoring a remote backup fails."""
    pass
