"""
Tests for the deployment orchestrator.

Real Synchronizer and BackupManager run against the in-memory remote;
build and server collaborators are mocks.
"""
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from dreamhost_deployer.agents.deploy_agent import DeployAgent
from dreamhost_deployer.core.exceptions import BuildError, ConfigurationError, ConnectionError
from dreamhost_deployer.core.models import (
    BuildResult, ProjectInfo, TRANSPORT_NATIVE,
    ROLLBACK_DONE, ROLLBACK_DECLINED, ROLLBACK_NOT_OFFERED
)
from dreamhost_deployer.handlers.backup_handler import BackupManager
from dreamhost_deployer.handlers.ssh_handler import RemoteSession
from dreamhost_deployer.handlers.sync_handler import Synchronizer
from dreamhost_deployer.utils.ssh_utils import PasswordAuth

from conftest import FakeSessionFactory

REMOTE = '/home/deployer/example.com'


@pytest.fixture
def live_site(remote):
    remote.add_file(f'{REMOTE}/index.html', b'old')
    return remote


@pytest.fixture
def build_handler():
    handler = MagicMock()
    handler.detect_project_type.return_value = ProjectInfo('unknown', 'No package.json found')
    return handler


def _agent(config, factory, build_handler, confirm=None, **kwargs):
    return DeployAgent(
        config=config,
        session_factory=factory,
        synchronizer=Synchronizer(factory),
        backup_manager=BackupManager(factory),
        build_handler=build_handler,
        server_handler=kwargs.pop('server_handler', MagicMock()),
        transport_selector=lambda c: TRANSPORT_NATIVE,
        confirm=confirm or MagicMock(return_value=False),
        **kwargs
    )


class TestSuccessfulDeployment:

    def test_deploys_and_keeps_backup(self, config, live_site, session_factory, build_handler):
        outcome = _agent(config, session_factory, build_handler).run()

        assert outcome.success
        assert outcome.rollback_status == ROLLBACK_NOT_OFFERED
        assert outcome.backup_path.startswith(f'{REMOTE}_backup_')
        assert live_site.files[f'{REMOTE}/index.html'] == b'<h1>home</h1>'
        assert live_site.files[f'{outcome.backup_path}/index.html'] == b'old'
        assert outcome.transfer_result.succeeded == 5

    def test_server_check_runs_before_transfer(self, config, live_site, session_factory, build_handler):
        server_handler = MagicMock()

        _agent(config, session_factory, build_handler, server_handler=server_handler).run()

        server_handler.check_and_setup_if_needed.assert_called_once()

    def test_server_check_can_be_skipped(self, config, live_site, session_factory, build_handler):
        server_handler = MagicMock()

        _agent(config, session_factory, build_handler, server_handler=server_handler,
               skip_server_check=True).run()

        server_handler.check_and_setup_if_needed.assert_not_called()

    def test_no_rollback_skips_backup(self, config, live_site, session_factory, build_handler):
        config.rollback_enabled = False

        outcome = _agent(config, session_factory, build_handler).run()

        assert outcome.success
        assert outcome.backup_path is None
        assert not [c for c in live_site.commands if c.startswith('cp -r')]

    def test_tolerated_partial_failure_is_success(self, config, live_site, build_handler):
        factory = FakeSessionFactory(live_site, failing_uploads={f'{REMOTE}/about.html'})

        outcome = _agent(config, factory, build_handler).run()

        assert outcome.success
        assert outcome.transfer_result.failed == 1

    def test_suggestions_shown_after_success(self, config, live_site, session_factory, build_handler):
        _agent(config, session_factory, build_handler).run()

        build_handler.detect_project_type.assert_called_once()


class TestFailedDeployment:

    def test_strict_partial_failure_offers_rollback(self, config, live_site, build_handler):
        config.options['strictTransfer'] = True
        factory = FakeSessionFactory(live_site, failing_uploads={f'{REMOTE}/about.html'})
        confirm = MagicMock(return_value=True)

        outcome = _agent(config, factory, build_handler, confirm=confirm).run()

        assert not outcome.success
        assert outcome.rollback_status == ROLLBACK_DONE
        assert live_site.tree(REMOTE) == {'index.html': b'old'}
        confirm.assert_called_once()

    def test_declined_rollback_keeps_backup(self, config, live_site, build_handler):
        failing = {f'{REMOTE}/{p}' for p in ('about.html', 'css/site.css', 'index.html',
                                               'js/app.js', 'js/app.js.map')}
        factory = FakeSessionFactory(live_site, failing_uploads=failing)

        outcome = _agent(config, factory, build_handler).run()

        assert not outcome.success
        assert outcome.rollback_status == ROLLBACK_DECLINED
        assert live_site.exists(outcome.backup_path)

    def test_connection_loss_rolls_back_automatically_with_yes(self, config, live_site, build_handler):
        factory = FakeSessionFactory(live_site, failing_uploads={f'{REMOTE}/about.html'}, alive=False)
        confirm = MagicMock()

        outcome = _agent(config, factory, build_handler, confirm=confirm, assume_yes=True).run()

        assert not outcome.success
        assert 'Connection lost' in outcome.error
        assert outcome.rollback_status == ROLLBACK_DONE
        confirm.assert_not_called()

    @patch('dreamhost_deployer.handlers.ssh_handler.paramiko.SSHClient')
    def test_dropped_ssh_session_is_summarized_and_rolled_back(self, mock_client_cls, config, live_site,
                                                               session_factory, build_handler):
        mock_client_cls.return_value.exec_command.side_effect = paramiko.SSHException('SSH session not active')
        confirm = MagicMock(return_value=True)
        agent = _agent(config, session_factory, build_handler, confirm=confirm)
        agent.synchronizer = Synchronizer(lambda cfg: RemoteSession(cfg, strategies=[PasswordAuth('secret')]))

        outcome = agent.run()

        assert not outcome.success
        assert 'SSH session lost' in outcome.error
        assert outcome.rollback_status == ROLLBACK_DONE
        assert live_site.tree(REMOTE) == {'index.html': b'old'}
        confirm.assert_called_once()

    def test_no_backup_means_no_rollback_offer(self, config, remote, build_handler):
        factory = FakeSessionFactory(remote)
        factory_calls = []

        def failing_sync(cfg, transfer_set, transport):
            factory_calls.append(transport)
            raise ConnectionError('Cannot reach host', cfg.host, cfg.username)

        agent = _agent(config, factory, build_handler)
        agent.synchronizer = MagicMock(synchronize=MagicMock(side_effect=failing_sync))

        outcome = agent.run()

        assert outcome.backup_path is None
        assert outcome.rollback_status == ROLLBACK_NOT_OFFERED
        assert factory_calls == [TRANSPORT_NATIVE]

    def test_empty_transfer_set_fails(self, config, live_site, session_factory, build_handler, tmp_path):
        empty = tmp_path / 'empty'
        empty.mkdir()
        config.local_path = str(empty)

        outcome = _agent(config, session_factory, build_handler).run()

        assert not outcome.success


class TestValidationAndDryRun:

    def test_invalid_config_attempts_nothing(self, config, session_factory, build_handler):
        config.host = ''

        with pytest.raises(ConfigurationError):
            _agent(config, session_factory, build_handler).run()

        assert not session_factory.sessions

    def test_dry_run_opens_no_connection(self, config, session_factory, build_handler):
        config.dry_run = True
        server_handler = MagicMock()

        outcome = _agent(config, session_factory, build_handler, server_handler=server_handler).run()

        assert outcome.success
        assert not session_factory.sessions
        server_handler.check_and_setup_if_needed.assert_not_called()


class TestBuildPhase:

    @pytest.fixture
    def build_config(self, config, tmp_path):
        source = tmp_path / 'project'
        source.mkdir()
        (source / 'package.json').write_text('{}')
        config.local_path = str(source)
        config.build_integration = True
        config.build_command = 'npm run build'
        config.build_output_dir = 'dist'
        return config

    def test_deploys_build_output(self, build_config, site_dir, live_site, session_factory, build_handler):
        build_handler.run_build.return_value = BuildResult(True, str(site_dir))

        outcome = _agent(build_config, session_factory, build_handler).run()

        assert outcome.success
        assert f'{REMOTE}/css/site.css' in live_site.files
        assert f'{REMOTE}/package.json' not in live_site.files

    def test_operator_aborts_after_build_failure(self, build_config, session_factory, build_handler):
        build_handler.run_build.side_effect = BuildError('Build failed (exit 1): npm run build')

        outcome = _agent(build_config, session_factory, build_handler).run()

        assert outcome.cancelled
        assert not outcome.success
        assert not session_factory.sessions

    def test_policy_continues_from_source(self, build_config, live_site, session_factory, build_handler):
        build_handler.run_build.side_effect = BuildError('Build failed (exit 1): npm run build')

        outcome = _agent(build_config, session_factory, build_handler,
                         assume_yes=True, continue_on_build_failure=True).run()

        assert outcome.success
        assert f'{REMOTE}/package.json' in live_site.files

    def test_policy_aborts_without_continue(self, build_config, session_factory, build_handler):
        build_handler.run_build.side_effect = BuildError('Build failed (exit 1): npm run build')

        outcome = _agent(build_config, session_factory, build_handler, assume_yes=True).run()

        assert not outcome.success
        assert not outcome.cancelled
