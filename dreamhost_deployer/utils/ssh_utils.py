"""SSH credential loading and authentication strategies."""
import os
from typing import Any, Callable, Dict, List, Optional

import paramiko

from dreamhost_deployer.core.exceptions import AuthenticationError
from dreamhost_deployer.core.models import DeploymentConfig, AUTH_PRIVATE_KEY


def load_ssh_private_key(key_file: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """
    Load SSH private key with support for multiple key types.
    Tries Ed25519, RSA and ECDSA key types in order.

    Args:
        key_file: Path to private key file
        passphrase: Optional passphrase for encrypted keys

    Returns:
        Loaded private key

    Raises:
        ValueError: If key cannot be loaded with any supported type
    """
    key_file = os.path.expanduser(key_file)
    if not os.path.isfile(key_file):
        raise ValueError(f"Private key not found at {key_file}")

    key_types = [
        ('Ed25519', paramiko.Ed25519Key),
        ('RSA', paramiko.RSAKey),
        ('ECDSA', paramiko.ECDSAKey),
    ]

    last_error = None
    for key_name, key_class in key_types:
        try:
            return key_class.from_private_key_file(key_file, password=passphrase or None)
        except paramiko.PasswordRequiredException:
            raise ValueError(f"Private key {key_file} is encrypted and needs a passphrase")
        except (paramiko.SSHException, OSError, ValueError) as e:
            last_error = e
            continue

    raise ValueError(f"Failed to load private key from {key_file}. Last error: {last_error}")


def generate_ssh_key(key_file: str, bits: int = 4096, comment: str = 'dreamhost-deployer') -> str:
    """
    Generate an RSA key pair for key-based DreamHost logins.

    The private key is written with mode 0600 and the public key next to
    it as key_file + '.pub'.

    Args:
        key_file: Path of the private key to create
        bits: RSA key size
        comment: Comment appended to the public key line

    Returns:
        The public key line
    """
    key_file = os.path.expanduser(key_file)
    key_dir = os.path.dirname(key_file)
    if key_dir:
        os.makedirs(key_dir, mode=0o700, exist_ok=True)

    key = paramiko.RSAKey.generate(bits)
    key.write_private_key_file(key_file)
    os.chmod(key_file, 0o600)

    public_key = f"{key.get_name()} {key.get_base64()} {comment}"
    with open(key_file + '.pub', 'w', encoding='utf-8') as f:
        f.write(public_key + '\n')
    return public_key


def read_public_key(key_file: str) -> str:
    """
    Return the public key line for a private key.

    Reads key_file + '.pub' when present, otherwise derives the line
    from the private key itself.

    Raises:
        ValueError: If the private key cannot be loaded
    """
    key_file = os.path.expanduser(key_file)
    public_file = key_file + '.pub'
    if os.path.isfile(public_file):
        with open(public_file, 'r', encoding='utf-8') as f:
            return f.read().strip()
    key = load_ssh_private_key(key_file)
    return f"{key.get_name()} {key.get_base64()}"


class AuthStrategy:
    """One way of authenticating; produces keyword arguments for SSHClient.connect."""

    name = 'base'

    def credentials(self, config: DeploymentConfig) -> Dict[str, Any]:
        raise NotImplementedError


class KeyAuth(AuthStrategy):
    """Legacy private key authentication."""

    name = 'private key'

    def __init__(self, key_file: str, passphrase: Optional[str] = None):
        self.key_file = key_file
        self.passphrase = passphrase

    def credentials(self, config: DeploymentConfig) -> Dict[str, Any]:
        try:
            return {'pkey': load_ssh_private_key(self.key_file, self.passphrase)}
        except ValueError as e:
            # An unusable key is treated like a rejected one so the chain moves on
            raise AuthenticationError(str(e), config.host, config.username) from e


class PasswordAuth(AuthStrategy):
    name = 'password'

    def __init__(self, password: str):
        self.password = password

    def credentials(self, config: DeploymentConfig) -> Dict[str, Any]:
        return {'password': self.password}


class PromptPasswordAuth(AuthStrategy):
    """Ask the operator for a password when the configured credentials were rejected."""

    name = 'interactive password'

    def __init__(self, prompt: Callable[[str], str]):
        self.prompt = prompt
        self.password: Optional[str] = None

    def credentials(self, config: DeploymentConfig) -> Dict[str, Any]:
        try:
            password = self.prompt(f"SSH password for {config.target}: ")
        except (EOFError, KeyboardInterrupt) as e:
            raise AuthenticationError("Password prompt cancelled", config.host, config.username) from e
        if not password:
            raise AuthenticationError("No password entered", config.host, config.username)
        self.password = password
        return {'password': password}


def build_auth_strategies(config: DeploymentConfig,
                          prompt: Optional[Callable[[str], str]] = None) -> List[AuthStrategy]:
    """
    Order the authentication strategies for a configuration.

    The configured method goes first, the other configured credential
    second, and an interactive prompt last when a prompt is available.
    """
    key_strategy = KeyAuth(config.private_key_path) if config.private_key_path else None
    password_strategy = PasswordAuth(config.password) if config.password else None

    if config.auth_method == AUTH_PRIVATE_KEY:
        ordered = [key_strategy, password_strategy]
    else:
        ordered = [password_strategy, key_strategy]

    strategies = [s for s in ordered if s is not None]
    if prompt is not None:
        strategies.append(PromptPasswordAuth(prompt))
    return strategies
