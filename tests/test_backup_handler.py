"""Unit tests for remote backups and rollback."""
from datetime import datetime, timezone

import pytest

from dreamhost_deployer.core.exceptions import ConnectionError
from dreamhost_deployer.core.models import DeploymentConfig
from dreamhost_deployer.handlers.backup_handler import BackupManager, backup_path_for, backup_timestamp

REMOTE = '/home/deployer/example.com'
NOW = datetime(2026, 10, 19, 12, 30, 5, 123456, tzinfo=timezone.utc)


@pytest.fixture
def manager(session_factory):
    return BackupManager(session_factory, clock=lambda: NOW)


@pytest.fixture
def deployed(remote):
    remote.add_file(f'{REMOTE}/index.html', b'v1')
    remote.add_file(f'{REMOTE}/css/site.css', b'body {}')
    return remote


class TestBackupNames:

    def test_timestamp_is_filesystem_safe(self):
        assert backup_timestamp(NOW) == '2026-10-19T12-30-05-123Z'

    def test_backup_is_a_sibling_of_the_target(self):
        assert backup_path_for(REMOTE + '/', NOW) == f'{REMOTE}_backup_2026-10-19T12-30-05-123Z'


class TestCreateBackup:

    def test_copies_target(self, manager, deployed):
        backup_path = manager.create_backup(_config())

        assert backup_path == backup_path_for(REMOTE, NOW)
        assert deployed.tree(backup_path) == deployed.tree(REMOTE)

    def test_missing_target_returns_none_and_creates_nothing(self, manager, remote):
        before = (set(remote.dirs), dict(remote.files))

        assert manager.create_backup(_config()) is None

        assert (remote.dirs, remote.files) == before
        assert not [c for c in remote.commands if c.startswith('cp')]

    def test_copy_failure_returns_none(self, manager, deployed):
        deployed.failing_commands.add('cp')

        assert manager.create_backup(_config()) is None

    def test_connection_failure_returns_none(self, manager, session_factory, deployed):
        session_factory.error = ConnectionError('Cannot reach host', 'example.com', 'deployer')

        assert manager.create_backup(_config()) is None


class TestRollback:

    def test_round_trip_restores_original_tree(self, manager, deployed):
        config = _config()
        original = deployed.tree(REMOTE)
        backup_path = manager.create_backup(config)

        deployed.add_file(f'{REMOTE}/index.html', b'v2 broken')
        deployed.add_file(f'{REMOTE}/new.html', b'new')

        assert manager.rollback(config, backup_path) is True
        assert deployed.tree(REMOTE) == original
        assert not deployed.exists(backup_path)

    def test_requires_backup_path(self, manager):
        with pytest.raises(ValueError):
            manager.rollback(_config(), None)

    def test_missing_backup_returns_false(self, manager, deployed):
        assert manager.rollback(_config(), f'{REMOTE}_backup_gone') is False
        assert deployed.exists(f'{REMOTE}/index.html')

    def test_command_failure_returns_false(self, manager, deployed):
        backup_path = manager.create_backup(_config())
        deployed.failing_commands.add('mv')

        assert manager.rollback(_config(), backup_path) is False

    def test_connection_failure_returns_false(self, manager, session_factory, deployed):
        backup_path = manager.create_backup(_config())
        session_factory.error = ConnectionError('Connection lost', 'example.com', 'deployer')

        assert manager.rollback(_config(), backup_path) is False


def _config():
    return DeploymentConfig(host='example.com', username='deployer', remote_path=REMOTE, password='secret')
