"""Authentication for git remotes: credentials, SSH keys, host keys, askpass."""

from .askpass import AskpassBridge
from .credentials import CredentialLoader, CredentialLoadError, CredentialType, GitCredential
from .host_keys import HostKeyGate, HostKeyRejectedError
from .resolver import EnvironmentResolver, GitEnvironment, OperationKind
from .secrets import CredentialError, SecretBox
from .ssh_keys import InvalidSSHKeyError, SSHKeyManager

__all__ = [
    "AskpassBridge",
    "CredentialError",
    "CredentialLoadError",
    "CredentialLoader",
    "CredentialType",
    "EnvironmentResolver",
    "GitCredential",
    "GitEnvironment",
    "HostKeyGate",
    "HostKeyRejectedError",
    "InvalidSSHKeyError",
    "OperationKind",
    "SSHKeyManager",
    "SecretBox",
]
