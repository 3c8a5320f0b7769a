"""Core module for the DreamHost deployer."""
from .agent_base import AgentBase, CleanOutputFormatter, setup_logger
from .config_loader import ConfigLoader, load_config, validate_config, create_config
from .models import DeploymentConfig, DeploymentOutcome, TransferResult, TransferSet

__all__ = [
    'AgentBase', 'CleanOutputFormatter', 'setup_logger',
    'ConfigLoader', 'load_config', 'validate_config', 'create_config',
    'DeploymentConfig', 'DeploymentOutcome', 'TransferResult', 'TransferSet',
]
