"""Handlers for remote sessions, transfers and deployment collaborators."""
from .ssh_handler import RemoteSession, make_session_factory
from .rsync_handler import RsyncHandler
from .sync_handler import Synchronizer
from .backup_handler import BackupManager
from .build_handler import BuildHandler
from .server_handler import ServerHandler

__all__ = [
    'RemoteSession', 'make_session_factory', 'RsyncHandler', 'Synchronizer',
    'BackupManager', 'BuildHandler', 'ServerHandler',
]
