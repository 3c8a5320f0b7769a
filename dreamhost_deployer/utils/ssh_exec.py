"""SSH command execution utilities."""
import socket
from typing import Optional

import paramiko

from dreamhost_deployer.core.exceptions import ConnectionError, RemoteCommandError, CommandTimeoutError
from dreamhost_deployer.core.models import CommandResult


def execute_ssh_command(
    ssh_client: paramiko.SSHClient,
    command: str,
    check_exit_code: bool = True,
    timeout: Optional[float] = None,
    host: Optional[str] = None,
    username: Optional[str] = None
) -> CommandResult:
    """
    Execute command via SSH and capture its combined output.

    Args:
        ssh_client: Connected SSH client
        command: Command to execute
        check_exit_code: If True, raise error on non-zero exit
        timeout: Optional command timeout in seconds
        host: Host name reported if the session has dropped
        username: User name reported if the session has dropped

    Returns:
        CommandResult with exit code and stdout+stderr

    Raises:
        RemoteCommandError: If command fails and check_exit_code is True
        CommandTimeoutError: If the command does not finish in time
        ConnectionError: If the SSH session is no longer usable
    """
    try:
        stdin, stdout, stderr = ssh_client.exec_command(command, timeout=timeout)
        channel = stdout.channel
        channel.set_combine_stderr(True)
        stdin.close()
        output = stdout.read().decode('utf-8', errors='replace')
        if not channel.status_event.wait(timeout):
            raise CommandTimeoutError(command, timeout)
        exit_code = channel.recv_exit_status()
    except socket.timeout as e:
        raise CommandTimeoutError(command, timeout) from e
    except paramiko.SSHException as e:
        raise ConnectionError(f"SSH session lost: {e}", host, username) from e

    result = CommandResult(command=command, exit_code=exit_code, output=output)
    if check_exit_code and exit_code != 0:
        raise RemoteCommandError(command, exit_code, output)
    return result
