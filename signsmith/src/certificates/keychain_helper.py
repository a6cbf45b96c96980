import subprocess
from pathlib import Path
from typing import Optional, Union

from signsmith.logger import debug, get_console
from signsmith.src.errors import KeychainOperationError
from signsmith.src.storage.secret_store import resolve_keychain_path
from signsmith.src.utils.environment import is_mac

console = get_console()


class KeychainHelper:
    """Certificate identities in a macOS keychain"""

    def __init__(self, keychain_name: str = "login", keychain_password: Optional[str] = None):
        self.keychain_name = keychain_name
        self.keychain_password = keychain_password

    @property
    def available(self) -> bool:
        return is_mac()

    @property
    def keychain_path(self) -> str:
        return resolve_keychain_path(self.keychain_name)

    def _run(self, args) -> subprocess.CompletedProcess:
        debug(f"security {' '.join(a for a in args if a != self.keychain_password)}")
        return subprocess.run(["security", *args], capture_output=True, text=True)

    def certificate_exists(self, sha1: str) -> bool:
        if not self.available or not sha1:
            return False
        result = self._run(["find-certificate", "-a", "-Z", self.keychain_path])
        if result.returncode != 0:
            return False
        return sha1.upper() in result.stdout.upper()

    def delete_certificate(self, sha1: str) -> bool:
        """Delete by SHA-1 only, team certificates all share the same common name"""
        if not self.available:
            return False
        result = self._run(["delete-certificate", "-Z", sha1, self.keychain_path])
        if result.returncode == 0:
            console.print(f"[green]Removed certificate {sha1} from keychain")
            return True

        console.print(
            f"[yellow]Could not remove certificate {sha1} from keychain: {result.stderr.strip()}"
        )
        return False

    def unlock(self) -> bool:
        if not self.keychain_password:
            return False
        result = self._run(["unlock-keychain", "-p", self.keychain_password, self.keychain_path])
        if result.returncode != 0:
            console.print(
                f"[yellow]Could not unlock keychain {self.keychain_name}: {result.stderr.strip()}"
            )
            return False
        return True

    def import_p12(self, p12_path: Union[str, Path], password: str) -> None:
        if not self.available:
            raise KeychainOperationError(
                "Importing certificates requires the macOS security tool",
                "Run this command on a Mac.",
            )

        self.unlock()
        result = self._run(
            [
                "import",
                str(p12_path),
                "-f",
                "pkcs12",
                "-k",
                self.keychain_path,
                "-T",
                "/usr/bin/codesign",
                "-A",
                "-P",
                password,
            ]
        )
        if result.returncode != 0:
            error = (result.stderr or result.stdout).strip()
            if "wrong password" in error.lower() or "MAC verification failed" in error:
                raise KeychainOperationError(
                    f"Failed to import certificate: the PKCS#12 password was rejected ({error})",
                    "The encrypted certificate may be corrupted or was exported with another password.",
                )
            raise KeychainOperationError(f"Failed to import certificate: {error}")

        if self.keychain_password:
            partition = self._run(
                [
                    "set-key-partition-list",
                    "-S",
                    "apple-tool:,apple:",
                    "-s",
                    "-k",
                    self.keychain_password,
                    self.keychain_path,
                ]
            )
            if partition.returncode != 0:
                console.print(
                    f"[yellow]Could not set key partition list: {partition.stderr.strip()}"
                )

        console.print(f"[green]Imported certificate into keychain {self.keychain_name}")
