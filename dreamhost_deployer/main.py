"""Main entry point for the DreamHost deployer."""
import argparse
import getpass
import os
import sys

from dreamhost_deployer import __version__
from dreamhost_deployer.agents.deploy_agent import DeployAgent, ask_yes_no
from dreamhost_deployer.core.agent_base import setup_logger
from dreamhost_deployer.core.config_loader import (
    DEFAULT_CONFIG_NAME, DEFAULT_KEY_PATH, ConfigLoader, create_config, load_config, validate_config
)
from dreamhost_deployer.core.exceptions import ConfigurationError, DeployerError
from dreamhost_deployer.core.models import AUTH_PRIVATE_KEY
from dreamhost_deployer.handlers.build_handler import BuildHandler
from dreamhost_deployer.handlers.server_handler import ServerHandler, DEFAULT_NODE_VERSION
from dreamhost_deployer.handlers.ssh_handler import make_session_factory
from dreamhost_deployer.utils.ssh_utils import generate_ssh_key, read_public_key

DREAMHOST_SSH_PANEL_URL = 'https://panel.dreamhost.com/index.cgi?tree=users.ssh&'


def console_prompt(message: str, default: str = '') -> str:
    """Read one answer from the console; passwords are not echoed."""
    label = f"{message} [{default}]: " if default else f"{message}: "
    if 'password' in message.lower() and 'type' not in message.lower():
        answer = getpass.getpass(label)
    else:
        answer = input(label)
    return answer.strip() or default


def _require_config(config_path: str):
    config = load_config(config_path)
    if config is None:
        raise ConfigurationError(
            f"No configuration found. Run 'dreamhost-deployer init' to create {config_path}"
        )
    return config


def cmd_deploy(args, dry_run: bool = False) -> int:
    config = _require_config(args.config)
    if dry_run or args.dry_run:
        config.dry_run = True
    if args.no_rollback:
        config.rollback_enabled = False

    agent = DeployAgent(
        config_path=args.config,
        config=config,
        assume_yes=args.yes,
        continue_on_build_failure=args.continue_on_build_failure,
        skip_server_check=args.skip_server_check,
    )
    outcome = agent.run()
    if outcome.success or outcome.cancelled:
        return 0
    return 1


def cmd_build(args) -> int:
    config = _require_config(args.config)
    logger = setup_logger('BuildHandler', config.verbose)
    result = BuildHandler(logger=logger).run_build(config)
    logger.warning(f"Build output: {result.output_path}")
    return 0


def cmd_init(args) -> int:
    logger = setup_logger('Init')
    build_handler = BuildHandler(logger=logger)
    project = build_handler.detect_project_type()
    logger.warning(f"Project: {project.details}")
    config = create_config(args.config, console_prompt, project)

    errors = validate_config(config)
    for error in errors:
        logger.warning(f"  - {error}")
    return 0


def cmd_setup_ssh(args) -> int:
    logger = setup_logger('SetupSSH')
    if not os.path.exists(args.config):
        logger.warning("Configuration file not found. Creating new configuration...")
        cmd_init(args)

    data = ConfigLoader.load(args.config)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {args.config} must be a JSON object")

    key_path = os.path.expanduser(
        data.get('privateKeyPath') or console_prompt('Path to private key', DEFAULT_KEY_PATH)
    )
    if data.get('privateKeyPath') != key_path:
        data['privateKeyPath'] = key_path
        ConfigLoader.save(data, args.config)
        logger.info(f"Saved privateKeyPath to {args.config}")

    try:
        if os.path.exists(key_path):
            logger.warning(f"Using existing SSH key at {key_path}")
        else:
            logger.warning("Generating new SSH key...")
            generate_ssh_key(key_path)
            logger.warning(f"SSH key generated at {key_path}")
        public_key = read_public_key(key_path)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"SSH key setup failed: {e}") from e

    logger.warning("Your public SSH key:")
    logger.warning(public_key)
    logger.warning("Add this key to your DreamHost account at:")
    logger.warning(DREAMHOST_SSH_PANEL_URL)
    if data.get('authMethod') != AUTH_PRIVATE_KEY:
        logger.warning('Set "authMethod": "privateKey" in the configuration to try the key first')
    return 0


def _server_handler(config) -> ServerHandler:
    logger = setup_logger('ServerHandler', config.verbose)
    return ServerHandler(
        make_session_factory(prompt=getpass.getpass, logger=logger),
        confirm=ask_yes_no,
        logger=logger,
    )


def cmd_check_server(args) -> int:
    config = _require_config(args.config)
    _server_handler(config).check_and_setup_if_needed(config)
    return 0


def cmd_setup_node(args) -> int:
    config = _require_config(args.config)
    _server_handler(config).setup_node(config, args.node_version)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dreamhost-deployer',
        description='Deploy websites to DreamHost over SSH'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_CONFIG_NAME,
        help=f'Path to the configuration file (default: {DEFAULT_CONFIG_NAME})'
    )

    subparsers = parser.add_subparsers(dest='command')

    deploy_options = argparse.ArgumentParser(add_help=False)
    deploy_options.add_argument('--dry-run', action='store_true',
                                help='Show what would be transferred without changing the server')
    deploy_options.add_argument('--no-rollback', action='store_true',
                                help='Skip the backup and rollback offer')
    deploy_options.add_argument('--yes', '-y', action='store_true',
                                help='Answer yes to every question (non-interactive)')
    deploy_options.add_argument('--continue-on-build-failure', action='store_true',
                                help='With --yes, deploy from source when the build fails')
    deploy_options.add_argument('--skip-server-check', action='store_true',
                                help='Skip the NVM/Node.js environment check')

    subparsers.add_parser('deploy', parents=[deploy_options], help='Deploy the project (default)')
    subparsers.add_parser('dry-run', parents=[deploy_options], help='Preview a deployment')
    subparsers.add_parser('build', help='Run the configured build command only')
    subparsers.add_parser('init', help='Create a configuration file interactively')
    subparsers.add_parser('check-server', help='Check the NVM/Node.js environment on the server')
    subparsers.add_parser('setup-ssh', help='Create an SSH key pair and show the public key for the DreamHost panel')
    setup_node = subparsers.add_parser('setup-node', help='Install NVM and Node.js on the server')
    setup_node.add_argument('--node-version', type=str, default=DEFAULT_NODE_VERSION,
                            help=f'Node.js version to install (default: {DEFAULT_NODE_VERSION})')

    # Defaults for a bare invocation, which runs deploy
    parser.set_defaults(dry_run=False, no_rollback=False, yes=False,
                        continue_on_build_failure=False, skip_server_check=False)
    return parser


def main(argv=None) -> int:
    """Main function to run the deployer."""
    args = build_parser().parse_args(argv)
    command = args.command or 'deploy'

    try:
        if command == 'deploy':
            return cmd_deploy(args)
        if command == 'dry-run':
            return cmd_deploy(args, dry_run=True)
        if command == 'build':
            return cmd_build(args)
        if command == 'init':
            return cmd_init(args)
        if command == 'check-server':
            return cmd_check_server(args)
        if command == 'setup-node':
            return cmd_setup_node(args)
        if command == 'setup-ssh':
            return cmd_setup_ssh(args)
    except DeployerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nCancelled", file=sys.stderr)
        return 0

    print(f"Error: Unknown command: {command}", file=sys.stderr)
    return 1


if __name__ == '__main__':
    sys.exit(main())
