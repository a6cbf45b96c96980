from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import yaml

from signsmith.src.app_store_connect.models import parse_datetime, utc_now
from signsmith.src.errors import LocalStoreError
from signsmith.src.storage import p12_cipher

STORAGE_DIR = Path("fastlane") / "certificates"


@dataclass
class CertificateMetadata:
    sha1: str
    common_name: Optional[str] = None
    expires_at: Optional[str] = None
    created_at: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CertificateMetadata":
        def as_text(value):
            if isinstance(value, datetime):
                return value.isoformat()
            return None if value is None else str(value)

        return cls(
            sha1=str(data.get("sha1") or "").upper(),
            common_name=data.get("common_name"),
            expires_at=as_text(data.get("expires_at")),
            created_at=as_text(data.get("created_at")),
            id=as_text(data.get("id")),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @property
    def expiration(self) -> Optional[datetime]:
        return parse_datetime(self.expires_at)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expiration = self.expiration
        return expiration is not None and expiration <= (now or utc_now())


class CertificateStorage:
    """Encrypted PKCS#12 bundles and their metadata, kept inside the project checkout"""

    def __init__(self, project_root: Union[str, Path] = "."):
        self.project_root = Path(project_root)

    @property
    def directory(self) -> Path:
        return self.project_root / STORAGE_DIR

    def encrypted_p12_path(self, name: str) -> Path:
        return self.directory / f"{name}.p12.enc"

    def metadata_path(self, name: str) -> Path:
        return self.directory / f"{name}.yaml"

    def encrypted_exists(self, name: str) -> bool:
        return self.encrypted_p12_path(name).is_file() and self.metadata_path(name).is_file()

    def save_encrypted(
        self,
        p12_data: bytes,
        metadata: CertificateMetadata,
        encryption_key: str,
        name: str,
    ) -> Path:
        if not encryption_key:
            raise LocalStoreError(
                "An encryption key is required to store the certificate",
                "Set CERTIFICATE_ENCRYPTION_KEY or pass encryption_key.",
            )

        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.encrypted_p12_path(name)
        path.write_text(p12_cipher.encrypt(p12_data, encryption_key))
        with open(self.metadata_path(name), "w") as f:
            yaml.safe_dump(metadata.to_dict(), f, default_flow_style=False, sort_keys=False)
        return path

    def restore_encrypted(self, encryption_key: str, name: str) -> Optional[bytes]:
        path = self.encrypted_p12_path(name)
        if not path.is_file():
            return None
        return p12_cipher.decrypt(path.read_text().strip(), encryption_key)

    def load_metadata(self, name: str) -> Optional[CertificateMetadata]:
        path = self.metadata_path(name)
        if not path.is_file():
            return None
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise LocalStoreError(f"Certificate metadata {path} is not valid YAML: {e}")
        if not isinstance(data, dict):
            return None
        return CertificateMetadata.from_dict(data)

    def delete(self, name: str) -> None:
        for path in (self.encrypted_p12_path(name), self.metadata_path(name)):
            if path.exists():
                path.unlink()
