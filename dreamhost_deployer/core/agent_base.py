"""Base class for all agents."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from .config_loader import load_config, DEFAULT_CONFIG_NAME
from .exceptions import ConfigurationError
from .models import DeploymentConfig


class CleanOutputFormatter(logging.Formatter):
    """Custom formatter that hides the level name for WARNING messages."""

    def format(self, record):
        # WARNING is used for progress banners, so drop the level name
        if record.levelno == logging.WARNING:
            original_format = self._style._fmt
            self._style._fmt = '%(asctime)s - %(name)s - %(message)s'
            result = super().format(record)
            self._style._fmt = original_format
            return result
        return super().format(record)


def setup_logger(name: str, verbose: bool = True) -> logging.Logger:
    """Console logger with the deployer's output format."""
    logger = logging.getLogger(name)

    # verbose=False hides INFO and DEBUG
    logger.setLevel(logging.INFO if verbose else logging.WARNING)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(CleanOutputFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        logger.addHandler(handler)

    return logger


class AgentBase(ABC):
    """Abstract base class for the deployer's agents."""

    def __init__(self, config_path: Optional[str] = None,
                 config: Optional[DeploymentConfig] = None):
        """
        Initialize the agent with configuration.

        Args:
            config_path: Path to deploy.config.json
            config: Already loaded configuration; takes precedence over config_path
        """
        self.config_path = config_path
        self.config = config if config is not None else self._load_config()
        self.logger = self._setup_logger()

    def _load_config(self) -> DeploymentConfig:
        """Load configuration from the environment or the JSON file."""
        path = self.config_path or DEFAULT_CONFIG_NAME
        config = load_config(path)
        if config is None:
            raise ConfigurationError(
                f"No configuration found. Run 'dreamhost-deployer init' to create {path}"
            )
        return config

    def _setup_logger(self) -> logging.Logger:
        """Set up logger for the agent."""
        return setup_logger(self.__class__.__name__, self.config.verbose)

    @abstractmethod
    def _validate_config(self, config: DeploymentConfig) -> None:
        """
        Validate the configuration structure.

        Args:
            config: The loaded configuration

        Raises:
            ConfigurationError: If configuration is invalid
        """
        pass

    @abstractmethod
    def run(self):
        """Execute the agent's main functionality."""
        pass
