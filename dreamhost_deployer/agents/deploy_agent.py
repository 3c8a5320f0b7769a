"""Deployment orchestrator: build, precheck, backup, transfer and rollback."""
import dataclasses
import getpass
from typing import Callable, Optional

from dreamhost_deployer.core.agent_base import AgentBase
from dreamhost_deployer.core.config_loader import validate_config
from dreamhost_deployer.core.exceptions import (
    AuthenticationError, BuildError, CommandTimeoutError, ConfigurationError,
    ConnectionError, ConnectionTimeoutError, DeployerError, TransferError
)
from dreamhost_deployer.core.models import (
    DeploymentConfig, DeploymentOutcome, TransferResult, TRANSPORT_RSYNC,
    ROLLBACK_DONE, ROLLBACK_DECLINED, ROLLBACK_FAILED, ROLLBACK_NOT_OFFERED
)
from dreamhost_deployer.handlers.backup_handler import BackupManager
from dreamhost_deployer.handlers.build_handler import BuildHandler, suggest_optimizations
from dreamhost_deployer.handlers.server_handler import ServerHandler, AUTH_TROUBLESHOOTING
from dreamhost_deployer.handlers.ssh_handler import SessionFactory, make_session_factory
from dreamhost_deployer.handlers.sync_handler import Synchronizer
from dreamhost_deployer.utils.transport import select_transport
from dreamhost_deployer.utils.tree_walker import walk


def ask_yes_no(message: str) -> bool:
    """Ask a yes/no question on the console; EOF and Ctrl+C count as no."""
    print("\n" + "=" * 60)
    print(message)
    print("=" * 60)
    print("\nType 'yes' to continue or anything else to cancel: ", end='', flush=True)

    try:
        response = input().strip()
    except (EOFError, KeyboardInterrupt):
        print("\n")
        return False

    return response.lower() in ('y', 'yes')


class DeployAgent(AgentBase):
    """
    Runs one deployment from a validated configuration.

    Phases run in order: optional build, advisory server precheck,
    backup, transfer, then a rollback offer if the transfer failed. Every
    collaborator can be injected; the defaults talk to the real host.
    """

    def __init__(self, config_path: Optional[str] = None,
                 config: Optional[DeploymentConfig] = None,
                 session_factory: Optional[SessionFactory] = None,
                 synchronizer: Optional[Synchronizer] = None,
                 backup_manager: Optional[BackupManager] = None,
                 build_handler: Optional[BuildHandler] = None,
                 server_handler: Optional[ServerHandler] = None,
                 transport_selector: Callable[[DeploymentConfig], str] = select_transport,
                 confirm: Callable[[str], bool] = ask_yes_no,
                 assume_yes: bool = False,
                 continue_on_build_failure: bool = False,
                 skip_server_check: bool = False):
        super().__init__(config_path, config)
        self.confirm = confirm
        self.assume_yes = assume_yes
        self.continue_on_build_failure = continue_on_build_failure
        self.skip_server_check = skip_server_check
        self.transport_selector = transport_selector

        prompt = None if assume_yes else getpass.getpass
        self.session_factory = session_factory or make_session_factory(prompt=prompt, logger=self.logger)
        self.synchronizer = synchronizer or Synchronizer(self.session_factory, logger=self.logger)
        self.backup_manager = backup_manager or BackupManager(self.session_factory, logger=self.logger)
        self.build_handler = build_handler or BuildHandler(logger=self.logger)
        self.server_handler = server_handler or ServerHandler(
            self.session_factory, confirm=self._confirm, logger=self.logger
        )

    def _log_section(self, title: str, level: str = 'warning') -> None:
        """Log a section header with separator lines."""
        log_func = getattr(self.logger, level)
        log_func("=" * 60)
        log_func(title)
        log_func("=" * 60)

    def _confirm(self, message: str) -> bool:
        if self.assume_yes:
            return True
        return self.confirm(message)

    def _validate_config(self, config: DeploymentConfig) -> None:
        errors = validate_config(config)
        if errors:
            for error in errors:
                self.logger.error(f"  - {error}")
            raise ConfigurationError("Invalid configuration:\n  - " + "\n  - ".join(errors))

    def _build_phase(self, config: DeploymentConfig) -> Optional[DeploymentConfig]:
        """
        Run the build and point the deployment at its output.

        Returns:
            The configuration to deploy, or None if the operator aborted
        """
        self._log_section("BUILD")
        try:
            result = self.build_handler.run_build(config)
        except BuildError as e:
            self.logger.error(str(e))
            if self.assume_yes:
                proceed = self.continue_on_build_failure
            else:
                proceed = self.confirm("Build failed. Continue deploying from source?")
            if not proceed:
                return None
            self.logger.warning(f"Continuing deployment from {config.local_path}")
            return config

        return dataclasses.replace(config, local_path=result.output_path)

    def _transfer_phase(self, config: DeploymentConfig) -> TransferResult:
        self._log_section("TRANSFER")
        self.logger.info(f"Scanning {config.local_path}...")
        transfer_set = walk(config.local_path, config.exclude)
        self.logger.info(f"Found {len(transfer_set)} files in {len(transfer_set.directories)} directories")

        transport = self.transport_selector(config)
        self.logger.warning(f"Transfer method: {transport}")
        return self.synchronizer.synchronize(config, transfer_set, transport)

    def _transfer_succeeded(self, config: DeploymentConfig, result: TransferResult) -> bool:
        # rsync reports through its exit status; a failure raised already
        if result.transport == TRANSPORT_RSYNC:
            return True
        if result.attempted == 0 or result.succeeded == 0:
            return False
        if config.options.get('strictTransfer') and result.failures:
            return False
        return True

    def _log_remediation(self, error: Exception, config: DeploymentConfig) -> None:
        if isinstance(error, AuthenticationError):
            self.logger.warning("SSH Authentication Troubleshooting:")
            for line in AUTH_TROUBLESHOOTING:
                self.logger.warning(line)
        elif isinstance(error, ConnectionTimeoutError):
            self.logger.warning(f"Check your network connection and that {config.host} "
                                f"accepts SSH on port {config.port}")
        elif isinstance(error, ConnectionError):
            self.logger.warning(f"Try connecting manually: ssh -v {config.target}")
        elif isinstance(error, CommandTimeoutError):
            self.logger.warning("The server did not answer in time; raise options.commandTimeout if it is slow")
        elif isinstance(error, TransferError):
            self.logger.warning(f"Check that {config.remote_path} is writable by {config.username}")
        elif isinstance(error, OSError):
            self.logger.warning(f"Check that {config.local_path} exists and is readable")

    def _log_summary(self, config: DeploymentConfig, outcome: DeploymentOutcome) -> None:
        self._log_section("DEPLOYMENT SUMMARY")
        result = outcome.transfer_result
        if result is not None:
            self.logger.warning(f"Transport: {result.transport}")
            self.logger.warning(f"Files: {result.succeeded} succeeded, {result.failed} failed "
                                f"of {result.attempted} attempted")
            for failure in result.failures:
                self.logger.warning(f"  - {failure.path}: {failure.error_message}")
        if outcome.backup_path:
            self.logger.warning(f"Backup: {outcome.backup_path}")
        if outcome.error:
            self.logger.warning(f"Error: {outcome.error}")
        self.logger.warning(f"Status: {'SUCCESS' if outcome.success else 'FAILED'}")
        self.logger.warning("=" * 60)

    def _offer_rollback(self, config: DeploymentConfig, backup_path: Optional[str]) -> str:
        if not backup_path:
            if config.rollback_enabled and not config.dry_run:
                self.logger.warning("No backup available, cannot roll back")
            return ROLLBACK_NOT_OFFERED

        if not self._confirm(f"Deployment failed. Roll back to {backup_path}?"):
            self.logger.warning(f"Rollback declined. Backup kept at {backup_path}")
            return ROLLBACK_DECLINED

        if self.backup_manager.rollback(config, backup_path):
            return ROLLBACK_DONE
        self.logger.error(f"Rollback failed. Backup is still at {backup_path}")
        return ROLLBACK_FAILED

    def _show_optimizations(self) -> None:
        project = self.build_handler.detect_project_type()
        if project.type == 'unknown':
            return
        self.logger.info(f"Optimization suggestions for {project.details}:")
        for suggestion in suggest_optimizations(project.type):
            self.logger.info(f"  {suggestion}")

    def run(self) -> DeploymentOutcome:
        """
        Execute the deployment.

        Returns:
            DeploymentOutcome describing what happened

        Raises:
            ConfigurationError: If the configuration is unusable; nothing is attempted
        """
        config = self.config
        self._log_section("DRY RUN" if config.dry_run else f"DEPLOYING TO {config.target}:{config.remote_path}")
        self._validate_config(config)

        if config.build_integration:
            built = self._build_phase(config)
            if built is None:
                self.logger.warning("Deployment cancelled after build failure")
                return DeploymentOutcome(success=False, cancelled=not self.assume_yes,
                                         error="Build failed")
            config = built

        if not self.skip_server_check and not config.dry_run:
            self._log_section("SERVER CHECK")
            self.server_handler.check_and_setup_if_needed(config)

        backup_path = None
        if config.rollback_enabled and not config.dry_run:
            self._log_section("BACKUP")
            backup_path = self.backup_manager.create_backup(config)
            if backup_path:
                self.logger.warning(f"Backup created at {backup_path}")
            else:
                self.logger.warning("Rollback will not be available for this deployment")

        outcome = DeploymentOutcome(success=False, backup_path=backup_path)
        try:
            outcome.transfer_result = self._transfer_phase(config)
        except (DeployerError, OSError) as e:
            outcome.error = str(e)
            self.logger.error(f"Error during deployment: {e}")
            self._log_remediation(e, config)

        if outcome.error is None:
            if config.dry_run:
                outcome.success = True
            else:
                outcome.success = self._transfer_succeeded(config, outcome.transfer_result)
                if not outcome.success:
                    outcome.error = "No files were transferred successfully"
                    if outcome.transfer_result.failures and outcome.transfer_result.succeeded:
                        outcome.error = "Some files failed to transfer (strictTransfer)"

        self._log_summary(config, outcome)

        if outcome.success:
            if not config.dry_run:
                self.logger.warning("Deployment completed successfully!")
                self._show_optimizations()
        else:
            outcome.rollback_status = self._offer_rollback(config, backup_path)

        return outcome
