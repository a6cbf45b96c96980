import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Tuple

from signsmith.logger import debug
from signsmith.src.utils.environment import is_mac

SERVICE_NAME = "signsmith"


def encryption_key_account(issuer_id: str) -> str:
    return f"certificate-encryption-key:{issuer_id}"


def resolve_keychain_path(keychain_name: str) -> str:
    """Map a keychain name like 'login' to its file, falling back to the name itself"""
    if "/" in keychain_name:
        return keychain_name
    keychains = Path.home() / "Library" / "Keychains"
    for candidate in (f"{keychain_name}.keychain-db", f"{keychain_name}.keychain"):
        if (keychains / candidate).exists():
            return str(keychains / candidate)
    return keychain_name


class SecretStore(ABC):
    """Generic password storage keyed by account name"""

    @abstractmethod
    def store(self, account: str, secret: str) -> bool: ...

    @abstractmethod
    def retrieve(self, account: str) -> Optional[str]: ...

    @abstractmethod
    def delete(self, account: str) -> bool: ...

    def exists(self, account: str) -> bool:
        return self.retrieve(account) is not None

    def store_encryption_key(self, key: str, issuer_id: str) -> bool:
        return self.store(encryption_key_account(issuer_id), key)

    def retrieve_encryption_key(self, issuer_id: str) -> Optional[str]:
        return self.retrieve(encryption_key_account(issuer_id))

    def encryption_key_exists(self, issuer_id: str) -> bool:
        return self.exists(encryption_key_account(issuer_id))

    def delete_encryption_key(self, issuer_id: str) -> bool:
        return self.delete(encryption_key_account(issuer_id))


class KeychainSecretStore(SecretStore):
    """Generic passwords in a macOS keychain, through the security tool"""

    def __init__(self, keychain_name: str = "login", service: str = SERVICE_NAME):
        self.keychain_name = keychain_name
        self.service = service

    @property
    def available(self) -> bool:
        return is_mac()

    def _security(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["security", *args, resolve_keychain_path(self.keychain_name)],
            capture_output=True,
            text=True,
        )

    def store(self, account: str, secret: str) -> bool:
        if not self.available:
            return False
        result = self._security(
            "add-generic-password", "-s", self.service, "-a", account, "-w", secret, "-U"
        )
        if result.returncode != 0:
            debug(f"security add-generic-password failed: {result.stderr.strip()}")
        return result.returncode == 0

    def retrieve(self, account: str) -> Optional[str]:
        if not self.available:
            return None
        result = self._security(
            "find-generic-password", "-s", self.service, "-a", account, "-w"
        )
        if result.returncode != 0:
            return None
        secret = result.stdout.strip()
        return secret or None

    def delete(self, account: str) -> bool:
        if not self.available:
            return False
        result = self._security(
            "delete-generic-password", "-s", self.service, "-a", account
        )
        return result.returncode == 0


class InMemorySecretStore(SecretStore):
    """Dictionary backed store, for tests and machines without a keychain"""

    def __init__(self, service: str = SERVICE_NAME):
        self.service = service
        self.secrets: Dict[Tuple[str, str], str] = {}

    def store(self, account: str, secret: str) -> bool:
        self.secrets[(self.service, account)] = secret
        return True

    def retrieve(self, account: str) -> Optional[str]:
        return self.secrets.get((self.service, account))

    def delete(self, account: str) -> bool:
        return self.secrets.pop((self.service, account), None) is not None
