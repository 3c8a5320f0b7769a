"""Data records shared by the deployment engine."""
import os
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

from dreamhost_deployer.core.exceptions import ConfigurationError

DEFAULT_EXCLUDE = ['node_modules', '.git', '.env', '.DS_Store']

AUTH_PASSWORD = 'password'
AUTH_PRIVATE_KEY = 'privateKey'

TRANSPORT_RSYNC = 'rsync'
TRANSPORT_NATIVE = 'native'

DEFAULT_OPTIONS = {
    'verbose': True,
    'connectTimeout': 30,
    'commandTimeout': 120,
    'uploadTimeout': 300,
    'transferTimeout': 3600,
    'strictTransfer': False,
}


@dataclass
class DeploymentConfig:
    """
    Validated deployment configuration.

    Mirrors the camelCase keys of deploy.config.json. The engine treats an
    instance as read-only input.
    """
    host: str
    username: str
    remote_path: str
    local_path: str = field(default_factory=os.getcwd)
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    auth_method: Optional[str] = None
    port: int = 22
    exclude: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    web_server: str = 'Apache'
    build_integration: bool = False
    build_command: Optional[str] = None
    build_output_dir: Optional[str] = None
    dry_run: bool = False
    rollback_enabled: bool = True
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.private_key_path:
            self.private_key_path = os.path.expanduser(self.private_key_path)
        if not self.auth_method:
            self.auth_method = AUTH_PASSWORD if self.password else AUTH_PRIVATE_KEY
        self.options = {**DEFAULT_OPTIONS, **(self.options or {})}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeploymentConfig':
        """
        Build a config from the JSON representation.

        Raises:
            ConfigurationError: If port, exclude or options have the wrong type
        """
        try:
            port = int(data.get('port') or 22)
        except (TypeError, ValueError):
            raise ConfigurationError(f"port must be a number, got {data.get('port')!r}")
        options = data.get('options') or {}
        if not isinstance(options, dict):
            raise ConfigurationError(f"options must be an object, got {type(options).__name__}")
        exclude = data.get('exclude')
        if exclude is not None and not isinstance(exclude, list):
            raise ConfigurationError(f"exclude must be a list of patterns, got {type(exclude).__name__}")
        return cls(
            host=data.get('host', ''),
            username=data.get('username', ''),
            remote_path=data.get('remotePath', ''),
            local_path=data.get('localPath') or os.getcwd(),
            password=data.get('password') or None,
            private_key_path=data.get('privateKeyPath') or None,
            auth_method=data.get('authMethod'),
            port=port,
            exclude=list(exclude) if exclude is not None else list(DEFAULT_EXCLUDE),
            web_server=data.get('webServer') or 'Apache',
            build_integration=bool(data.get('buildIntegration', False)),
            build_command=data.get('buildCommand'),
            build_output_dir=data.get('buildOutputDir'),
            dry_run=bool(data.get('dryRun', False)),
            rollback_enabled=data.get('rollbackEnabled', True) is not False,
            options=dict(options),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON representation, omitting unset optional fields."""
        data = {
            'host': self.host,
            'username': self.username,
            'remotePath': self.remote_path,
            'localPath': self.local_path,
            'authMethod': self.auth_method,
            'port': self.port,
            'exclude': list(self.exclude),
            'webServer': self.web_server,
            'buildIntegration': self.build_integration,
            'rollbackEnabled': self.rollback_enabled,
        }
        if self.password:
            data['password'] = self.password
        if self.private_key_path:
            data['privateKeyPath'] = self.private_key_path
        if self.build_command:
            data['buildCommand'] = self.build_command
        if self.build_output_dir:
            data['buildOutputDir'] = self.build_output_dir
        return data

    @property
    def verbose(self) -> bool:
        return bool(self.options.get('verbose', True))

    @property
    def target(self) -> str:
        return f"{self.username}@{self.host}"


@dataclass(frozen=True)
class TransferSet:
    """
    Files scheduled for upload.

    Attributes:
        files: Relative POSIX paths in depth-first traversal order
        directories: Unique non-root parent directories, parents first
    """
    files: Tuple[str, ...]
    directories: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.files)


@dataclass
class PreviewEntry:
    """One line of a dry-run listing."""
    kind: str  # EXCLUDED, DIR or FILE
    path: str


@dataclass
class TransferFailure:
    path: str
    error_message: str


@dataclass
class TransferResult:
    """
    Outcome of a synchronize pass.

    Invariant: succeeded + len(failures) == attempted.
    """
    attempted: int = 0
    succeeded: int = 0
    failures: List[TransferFailure] = field(default_factory=list)
    transport: str = TRANSPORT_NATIVE

    def record_success(self) -> None:
        self.attempted += 1
        self.succeeded += 1

    def record_failure(self, path: str, error_message: str) -> None:
        self.attempted += 1
        self.failures.append(TransferFailure(path, error_message))

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass
class CommandResult:
    """Result of a remote command; output is stdout and stderr combined."""
    command: str
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class BuildResult:
    success: bool
    output_path: str


@dataclass
class ProjectInfo:
    """Detected front-end project settings."""
    type: str
    details: str
    build_command: Optional[str] = None
    output_dir: Optional[str] = None
    exclude: List[str] = field(default_factory=list)


@dataclass
class EnvironmentReport:
    """Server environment as seen by the precheck."""
    nvm_version: Optional[str] = None
    node_version: Optional[str] = None
    nvm_needs_update: bool = False
    node_needs_update: bool = False

    @property
    def setup_needed(self) -> bool:
        return (not self.nvm_version or not self.node_version
                or self.nvm_needs_update or self.node_needs_update)


ROLLBACK_NOT_OFFERED = 'not_offered'
ROLLBACK_DONE = 'rolled_back'
ROLLBACK_DECLINED = 'declined'
ROLLBACK_FAILED = 'failed'


@dataclass
class DeploymentOutcome:
    """
    Final result reported by the orchestrator.

    A rollback never turns a failed deployment into a successful one;
    rollback_status only records what happened afterwards.
    """
    success: bool
    backup_path: Optional[str] = None
    transfer_result: Optional[TransferResult] = None
    error: Optional[str] = None
    rollback_status: str = ROLLBACK_NOT_OFFERED
    cancelled: bool = False
