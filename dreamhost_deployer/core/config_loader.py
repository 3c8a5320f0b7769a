"""Configuration loading, validation and interactive creation."""
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from dreamhost_deployer.core.exceptions import ConfigurationError
from dreamhost_deployer.core.models import (
    DeploymentConfig, ProjectInfo, DEFAULT_EXCLUDE, AUTH_PASSWORD, AUTH_PRIVATE_KEY
)

DEFAULT_CONFIG_NAME = 'deploy.config.json'
DEFAULT_KEY_PATH = os.path.join('~', '.ssh', 'id_rsa')

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Utility class for loading and managing configurations."""

    @staticmethod
    def load(config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a JSON file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary containing the configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If JSON is invalid
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration {config_path}: {e}")

    @staticmethod
    def save(config: Dict[str, Any], config_path: str) -> None:
        """
        Save configuration to a JSON file.

        Args:
            config: Configuration dictionary
            config_path: Path to save the configuration
        """
        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2)

    @staticmethod
    def from_environment(environ: Mapping[str, str]) -> Optional[Dict[str, Any]]:
        """
        Build a configuration from DREAMHOST_* variables.

        Returns None unless host, username and remote path are all set.
        """
        required = ('DREAMHOST_HOST', 'DREAMHOST_USERNAME', 'DREAMHOST_REMOTE_PATH')
        if not all(environ.get(name) for name in required):
            return None

        config: Dict[str, Any] = {
            'host': environ['DREAMHOST_HOST'],
            'username': environ['DREAMHOST_USERNAME'],
            'remotePath': environ['DREAMHOST_REMOTE_PATH'],
            'localPath': environ.get('DREAMHOST_LOCAL_PATH') or os.getcwd(),
            'webServer': environ.get('DREAMHOST_WEB_SERVER', 'Apache'),
            'buildIntegration': environ.get('DREAMHOST_BUILD_INTEGRATION') == 'true',
        }

        if environ.get('DREAMHOST_PASSWORD'):
            config['password'] = environ['DREAMHOST_PASSWORD']
        else:
            config['privateKeyPath'] = environ.get('DREAMHOST_PRIVATE_KEY_PATH') or DEFAULT_KEY_PATH

        for key, name in (('buildCommand', 'DREAMHOST_BUILD_COMMAND'),
                          ('buildOutputDir', 'DREAMHOST_BUILD_OUTPUT_DIR')):
            if environ.get(name):
                config[key] = environ[name]

        if environ.get('DREAMHOST_EXCLUDE'):
            try:
                exclude = json.loads(environ['DREAMHOST_EXCLUDE'])
                if not isinstance(exclude, list):
                    raise ValueError("not a list")
                config['exclude'] = [str(p) for p in exclude]
            except ValueError:
                logger.warning("Failed to parse DREAMHOST_EXCLUDE environment variable. Using default exclusions.")
                config['exclude'] = list(DEFAULT_EXCLUDE)

        return config


def load_config(config_path: str, environ: Optional[Mapping[str, str]] = None) -> Optional[DeploymentConfig]:
    """
    Load configuration from the environment or the JSON file.

    Environment variables win when complete. Returns None when neither
    source provides a configuration.

    Raises:
        ConfigurationError: If the file exists but cannot be parsed or holds
            values of the wrong type
    """
    environ = os.environ if environ is None else environ
    data = ConfigLoader.from_environment(environ)
    if data is not None:
        logger.info("Using configuration from environment variables")
        return DeploymentConfig.from_dict(data)

    if not os.path.exists(config_path):
        logger.warning(f"No configuration found at {config_path} or in environment variables")
        return None

    data = ConfigLoader.load(config_path)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {config_path} must be a JSON object")
    logger.info(f"Loaded configuration from {config_path}")
    return DeploymentConfig.from_dict(data)


def validate_config(config: Optional[DeploymentConfig]) -> List[str]:
    """
    Validate the configuration structure.

    Returns:
        Human-readable problems; empty when the configuration is usable
    """
    if config is None:
        return ['Configuration is empty']

    errors = []
    if not config.host:
        errors.append('Missing host (DreamHost hostname)')
    if not config.username:
        errors.append('Missing username (SSH username)')
    if not config.remote_path:
        errors.append('Missing remotePath (path on DreamHost server)')

    if not config.password and not config.private_key_path:
        errors.append('Missing authentication method (password or privateKeyPath)')
    if config.auth_method not in (AUTH_PASSWORD, AUTH_PRIVATE_KEY):
        errors.append(f"Invalid authMethod: {config.auth_method} (use 'password' or 'privateKey')")
    if config.private_key_path and not os.path.exists(config.private_key_path):
        if config.auth_method == AUTH_PRIVATE_KEY or not config.password:
            errors.append(f"Private key not found at {config.private_key_path}")
        else:
            logger.warning(f"Private key not found at {config.private_key_path}, using password only")

    if config.local_path and not os.path.exists(os.path.abspath(config.local_path)):
        errors.append(f"Local path not found: {config.local_path}")

    if config.build_integration:
        if not config.build_command:
            errors.append('Build integration enabled but no buildCommand specified')
        if not config.build_output_dir:
            errors.append('Build integration enabled but no buildOutputDir specified')

    for name in ('connectTimeout', 'commandTimeout', 'uploadTimeout', 'transferTimeout'):
        value = config.options.get(name)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            errors.append(f"options.{name} must be a positive number")

    return errors


def create_config(config_path: str,
                  prompt: Callable[[str, str], str],
                  project_info: Optional[ProjectInfo] = None,
                  cwd: Optional[str] = None) -> DeploymentConfig:
    """
    Ask the operator for deployment settings and save them.

    Args:
        config_path: Where to write deploy.config.json
        prompt: Callable(message, default) returning the answer
        project_info: Detected project settings to apply, if any
        cwd: Default local path

    Returns:
        The saved configuration
    """
    cwd = cwd or os.getcwd()
    data: Dict[str, Any] = {
        'host': prompt('DreamHost hostname (e.g., example.com)', ''),
        'username': prompt('SSH username', ''),
    }

    auth_type = prompt('Authentication type (password/key)', 'password').strip().lower()
    if auth_type == 'key':
        data['authMethod'] = AUTH_PRIVATE_KEY
        data['privateKeyPath'] = prompt('Path to private key', DEFAULT_KEY_PATH)
    else:
        data['authMethod'] = AUTH_PASSWORD
        data['password'] = prompt('SSH password', '')

    data['remotePath'] = prompt('Remote path on DreamHost (e.g., /home/username/example.com)', '')
    data['localPath'] = prompt('Local path to deploy from', cwd)

    if project_info is not None and project_info.type not in ('unknown', 'generic'):
        logger.warning(f"Applying detected {project_info.type} project settings")
        data['buildIntegration'] = True
        data['buildCommand'] = project_info.build_command
        data['buildOutputDir'] = project_info.output_dir
        data['exclude'] = project_info.exclude or list(DEFAULT_EXCLUDE)
    else:
        enable_build = prompt('Enable build integration? (y/n)', 'y').strip().lower()
        if enable_build.startswith('y'):
            data['buildIntegration'] = True
            data['buildCommand'] = prompt('Build command', 'npm run build')
            data['buildOutputDir'] = prompt('Output directory', 'dist')
        data['exclude'] = list(DEFAULT_EXCLUDE)

    web_server = prompt('DreamHost web server type (Apache/Nginx)', 'Apache').strip()
    data['webServer'] = 'Nginx' if web_server.lower() == 'nginx' else 'Apache'

    config = DeploymentConfig.from_dict(data)
    ConfigLoader.save(config.to_dict(), config_path)
    logger.warning(f"Configuration saved to {config_path}")
    return config
