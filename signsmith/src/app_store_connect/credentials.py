import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from signsmith.src.errors import MissingCredentialError
from signsmith.src.utils.config_loader import load_config

KEY_ID_ENV = "APP_STORE_CONNECT_KEY_ID"
ISSUER_ID_ENV = "APP_STORE_CONNECT_ISSUER_ID"
KEY_CONTENT_ENV = "APP_STORE_CONNECT_KEY_CONTENT"
KEY_FILE_ENV = "APP_STORE_CONNECT_KEY_FILE"


@dataclass(frozen=True)
class Credentials:
    key_id: str
    issuer_id: str
    private_key: str = field(repr=False)


class CredentialResolver:
    """Gathers App Store Connect API credentials from parameters, env and config"""

    def __init__(self, environ=None, config: Optional[dict] = None):
        self.environ = os.environ if environ is None else environ
        self._config = config

    @property
    def config(self) -> dict:
        if self._config is None:
            self._config = load_config().get("app_store_connect", {})
        return self._config

    def get(
        self,
        key_id: Optional[str] = None,
        issuer_id: Optional[str] = None,
        key_content: Optional[str] = None,
        key_file_path: Optional[str] = None,
    ) -> Credentials:
        key_id = key_id or self.environ.get(KEY_ID_ENV) or self.config.get("key_id")
        if not key_id:
            raise MissingCredentialError(
                "Missing App Store Connect Key ID.",
                f"Set {KEY_ID_ENV} environment variable or pass key_id parameter.",
            )

        issuer_id = (
            issuer_id or self.environ.get(ISSUER_ID_ENV) or self.config.get("issuer_id")
        )
        if not issuer_id:
            raise MissingCredentialError(
                "Missing App Store Connect Issuer ID.",
                f"Set {ISSUER_ID_ENV} environment variable or pass issuer_id parameter.",
            )

        private_key = self._resolve_key_material(key_content, key_file_path)
        return Credentials(key_id=key_id, issuer_id=issuer_id, private_key=private_key)

    def _resolve_key_material(
        self, key_content: Optional[str], key_file_path: Optional[str]
    ) -> str:
        if key_content:
            return key_content

        env_content = self.environ.get(KEY_CONTENT_ENV)
        if env_content:
            return env_content

        candidates = [
            key_file_path,
            self.environ.get(KEY_FILE_ENV),
            self.config.get("key_file"),
        ]
        missing = []
        for candidate in candidates:
            if not candidate:
                continue
            path = Path(candidate).expanduser()
            if path.is_file():
                return path.read_text()
            missing.append(str(path))

        message = "Missing App Store Connect API key."
        if missing:
            message += f" Key file not found: {', '.join(missing)}."
        raise MissingCredentialError(
            message,
            f"Set {KEY_CONTENT_ENV} or {KEY_FILE_ENV} environment variable, "
            "or pass key_content / key_file_path parameter.",
        )
