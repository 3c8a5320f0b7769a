"""Remote environment precheck and NVM/Node.js bootstrap for DreamHost."""
import logging
import re
from typing import Callable, List, Optional

from dreamhost_deployer.core.exceptions import (
    ConfigurationError, ConnectionError, DeployerError, RemoteCommandError
)
from dreamhost_deployer.core.models import DeploymentConfig, EnvironmentReport
from dreamhost_deployer.handlers.ssh_handler import SessionFactory, make_session_factory

RECOMMENDED_NVM_VERSION = '0.40.1'
RECOMMENDED_NODE_VERSION = '22.14.0'
DEFAULT_NODE_VERSION = '20.18.0'

LOAD_NVM = 'export NVM_DIR="$HOME/.nvm" && [ -s "$NVM_DIR/nvm.sh" ] && . "$NVM_DIR/nvm.sh"'

NVM_PROFILE_SNIPPET = (
    'export NVM_DIR="$HOME/.nvm"\\n'
    '[ -s "$NVM_DIR/nvm.sh" ] && \\\\. "$NVM_DIR/nvm.sh"\\n'
    '[ -s "$NVM_DIR/bash_completion" ] && \\\\. "$NVM_DIR/bash_completion"\\n'
)

NGINX_PROXY_CONFIG = """# Nginx configuration for Node.js app
# Add this to your Nginx server block in the DreamHost panel:
location / {
    proxy_pass http://localhost:YOUR_PORT;
    proxy_http_version 1.1;
    proxy_set_header Upgrade $http_upgrade;
    proxy_set_header Connection 'upgrade';
    proxy_set_header Host $host;
    proxy_cache_bypass $http_upgrade;
}
# Remember to set up a Proxy Server in the DreamHost panel
# https://help.dreamhost.com/hc/en-us/articles/217955787-Proxy-Server
"""

APACHE_PROXY_CONFIG = """# Apache configuration for Node.js app
# Copy this file to your web directory
RewriteEngine On
RewriteRule ^$ http://localhost:YOUR_PORT/ [P,L]
RewriteCond %{REQUEST_FILENAME} !-f
RewriteCond %{REQUEST_FILENAME} !-d
RewriteRule ^(.*)$ http://localhost:YOUR_PORT/$1 [P,L]
# Remember to set up a Proxy Server in the DreamHost panel
# https://help.dreamhost.com/hc/en-us/articles/217955787-Proxy-Server
"""

AUTH_TROUBLESHOOTING = [
    "1. Verify your username and host are correct",
    "2. Check if password authentication is enabled on the server",
    "3. Ensure your SSH key permissions are correct (if using key authentication)",
    "   - ~/.ssh directory: 700 (drwx------)",
    "   - SSH private key: 600 (-rw-------)",
    "   - SSH public key: 644 (-rw-r--r--)",
    "   - authorized_keys: 600 (-rw-------)",
]


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two dotted version strings.

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2
    """
    def parts(version: str) -> List[int]:
        return [int(p) if p.isdigit() else 0 for p in version.strip().lstrip('v').split('.')]

    a, b = parts(v1), parts(v2)
    length = max(len(a), len(b))
    a += [0] * (length - len(a))
    b += [0] * (length - len(b))
    return (a > b) - (a < b)


def _heredoc(path: str, content: str) -> str:
    return f"cat > {path} <<'DREAMHOST_EOF'\n{content}DREAMHOST_EOF"


class ServerHandler:
    """
    Checks the remote environment before a deployment and installs NVM
    and Node.js on request.

    The precheck is advisory: it reports problems but never blocks the
    transfer.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None,
                 confirm: Optional[Callable[[str], bool]] = None,
                 setup_callback: Optional[Callable[[DeploymentConfig], None]] = None,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.session_factory = session_factory or make_session_factory(logger=self.logger)
        self.confirm = confirm or (lambda message: False)
        self.setup_callback = setup_callback or self.setup_node

    def verify_connection(self, config: DeploymentConfig) -> bool:
        """Open and close a session, logging troubleshooting steps on failure."""
        self.logger.info("Verifying SSH connection...")
        try:
            with self.session_factory(config):
                pass
        except ConnectionError as e:
            self.logger.error(f"SSH verification failed: {e}")
            self.logger.warning("SSH Authentication Troubleshooting:")
            for line in AUTH_TROUBLESHOOTING:
                self.logger.warning(line)
            self.logger.warning(f"4. Try connecting manually with verbose output: ssh -v {config.target}")
            return False
        self.logger.info("SSH connection verified")
        return True

    def check_environment(self, config: DeploymentConfig) -> EnvironmentReport:
        """Report NVM and Node.js versions installed for the SSH user."""
        report = EnvironmentReport()
        with self.session_factory(config) as session:
            nvm = session.exec('. ~/.nvm/nvm.sh 2>/dev/null && nvm --version', check=False)
            if nvm.ok and nvm.output.strip():
                report.nvm_version = nvm.output.strip().splitlines()[-1]
                report.nvm_needs_update = compare_versions(report.nvm_version, RECOMMENDED_NVM_VERSION) < 0

            node = session.exec('. ~/.nvm/nvm.sh 2>/dev/null && node --version', check=False)
            if node.ok and node.output.strip():
                report.node_version = node.output.strip().splitlines()[-1].lstrip('v')
                report.node_needs_update = compare_versions(report.node_version, RECOMMENDED_NODE_VERSION) < 0

        if report.nvm_version:
            self.logger.info(f"NVM is installed (version {report.nvm_version})")
            if report.nvm_needs_update:
                self.logger.warning(f"NVM version {report.nvm_version} is older than recommended "
                                    f"version {RECOMMENDED_NVM_VERSION}")
        else:
            self.logger.warning("NVM is not installed or not properly configured")

        if report.node_version:
            self.logger.info(f"Node.js is installed (version v{report.node_version})")
            if report.node_needs_update:
                self.logger.warning(f"Node.js version {report.node_version} is older than recommended "
                                    f"version {RECOMMENDED_NODE_VERSION}")
        else:
            self.logger.warning("Node.js is not installed or not properly configured")

        return report

    def check_and_setup_if_needed(self, config: DeploymentConfig) -> None:
        """Run the precheck and offer setup; never raises."""
        try:
            if not self.verify_connection(config):
                self.logger.warning("Cannot proceed with server environment check due to SSH connection issues.")
                return
            report = self.check_environment(config)
            if not report.setup_needed:
                self.logger.info("Node.js environment is properly configured")
                return
            if self.confirm("Would you like to set up NVM and Node.js on your DreamHost server now?"):
                self.setup_callback(config)
            else:
                self.logger.warning("Skipping server setup. You can run it later with: dreamhost-deployer setup-node")
        except DeployerError as e:
            self.logger.warning(f"Server environment check failed: {e}")

    def setup_commands(self, config: DeploymentConfig, node_version: str) -> List[str]:
        """The fixed command sequence from DreamHost's custom NVM guide."""
        commands = [
            f'curl -o- https://raw.githubusercontent.com/nvm-sh/nvm/v{RECOMMENDED_NVM_VERSION}/install.sh | bash',
            f"grep -q NVM_DIR ~/.bashrc || printf '{NVM_PROFILE_SNIPPET}' >> ~/.bashrc",
            f"grep -q NVM_DIR ~/.bash_profile || printf '{NVM_PROFILE_SNIPPET}' >> ~/.bash_profile",
            f'{LOAD_NVM} && nvm install v{node_version}',
            f'{LOAD_NVM} && nvm alias default v{node_version}',
        ]
        if config.web_server.lower() == 'nginx':
            commands += ['mkdir -p ~/nginx_config',
                         _heredoc('~/nginx_config/node_app.conf', NGINX_PROXY_CONFIG)]
        else:
            commands += ['mkdir -p ~/apache_config',
                         _heredoc('~/apache_config/.htaccess', APACHE_PROXY_CONFIG)]
        return commands

    def setup_node(self, config: DeploymentConfig, node_version: str = DEFAULT_NODE_VERSION) -> None:
        """
        Install NVM and the requested Node.js version for the SSH user.

        Raises:
            ConfigurationError: If node_version is not x.y.z
            RemoteCommandError: If a setup step fails
        """
        if not re.match(r'^\d+\.\d+\.\d+$', node_version):
            raise ConfigurationError(f"Invalid Node.js version: {node_version} (expected e.g. 20.18.0)")

        self.logger.warning(f"Setting up NVM and Node.js v{node_version} on {config.target}...")
        with self.session_factory(config) as session:
            for command in self.setup_commands(config, node_version):
                self.logger.info(f"Executing: {command.splitlines()[0]}")
                try:
                    result = session.exec(command, timeout=600)
                except RemoteCommandError as e:
                    self.logger.error(f"Command failed: {e}")
                    raise
                for line in result.output.strip().splitlines()[-5:]:
                    self.logger.info(f"  {line}")

            # Grsec flags only exist on dedicated servers
            session.exec(
                f'{LOAD_NVM} && setfattr -n user.pax.flags -v "mr" '
                '$(find $NVM_DIR -type f -iname "node" -o -iname "npm" -o -iname "npx") 2>/dev/null',
                check=False
            )
        self.logger.warning(f"Node.js v{node_version} installed. Log in again or run 'source ~/.bash_profile'.")
