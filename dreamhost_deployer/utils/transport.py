"""Transfer mechanism selection."""
import shutil
from typing import Optional

from dreamhost_deployer.core.models import (
    DeploymentConfig, TRANSPORT_RSYNC, TRANSPORT_NATIVE, AUTH_PASSWORD
)


def has_executable(name: str) -> bool:
    """Check whether an executable is available on PATH."""
    return shutil.which(name) is not None


def select_transport(config: Optional[DeploymentConfig] = None) -> str:
    """
    Pick the transfer mechanism for this deployment.

    rsync is preferred when installed. Password-only configurations also
    need sshpass to feed the password to rsync's ssh; without it the
    native SFTP path is used. Never cached: PATH may change between runs.

    Returns:
        'rsync' or 'native'
    """
    if not has_executable('rsync'):
        return TRANSPORT_NATIVE
    if config is not None and uses_password(config) and not has_executable('sshpass'):
        return TRANSPORT_NATIVE
    return TRANSPORT_RSYNC


def uses_password(config: DeploymentConfig) -> bool:
    """True when rsync would have to authenticate with the password."""
    if config.auth_method == AUTH_PASSWORD and config.password:
        return True
    return bool(config.password) and not config.private_key_path
