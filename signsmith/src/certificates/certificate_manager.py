import base64
import os
import secrets
import tempfile
from dataclasses import asdict, dataclass
from typing import List, Optional

from signsmith.logger import get_console
from signsmith.src.app_store_connect.models import (
    CERTIFICATE_TYPE_DISTRIBUTION,
    Certificate,
)
from signsmith.src.certificates.certificate_creator import (
    P12_PASSWORD,
    build_metadata,
    build_p12,
    certificate_fingerprint,
    common_name,
    load_certificate,
)
from signsmith.src.certificates.csr_generator import COMMON_NAME, generate_csr
from signsmith.src.errors import (
    LocalStoreError,
    ProtocolError,
    RemoteCertificateUnavailableError,
)
from signsmith.src.storage.certificate_storage import CertificateMetadata
from signsmith.src.utils.environment import is_ci

console = get_console()

ENCRYPTION_KEY_ENV = "CERTIFICATE_ENCRYPTION_KEY"


@dataclass
class CertificateResult:
    id: Optional[str]
    name: Optional[str]
    expires: Optional[str]
    sha1: str

    def to_dict(self) -> dict:
        return asdict(self)


def generate_encryption_key() -> str:
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


def code_sign_identity_for(certificate_name: Optional[str]) -> str:
    """Map a certificate name to the identity Xcode expects in CODE_SIGN_IDENTITY"""
    name = certificate_name or ""
    if "Mac Distribution" in name:
        return "Mac Distribution"
    if "iOS Distribution" in name or "iPhone Distribution" in name:
        return "iPhone Distribution"
    return "Apple Distribution"


class CertificateManager:
    """Makes sure a usable distribution certificate is installed.

    Certificates live in three places: App Store Connect, the local keychain and an
    encrypted bundle committed to the project. On CI only the encrypted bundle is used.
    Locally, a certificate is created only when App Store Connect has none, since Apple
    limits how many distribution certificates a team can hold.
    """

    def __init__(
        self,
        api,
        storage,
        keychain,
        secret_store,
        issuer_id: str,
        certificate_name: str = "distribution",
        encryption_key: Optional[str] = None,
        ci: Optional[bool] = None,
        environ=None,
    ):
        self.api = api
        self.storage = storage
        self.keychain = keychain
        self.secret_store = secret_store
        self.issuer_id = issuer_id
        self.certificate_name = certificate_name
        self.ci = is_ci() if ci is None else ci
        environ = os.environ if environ is None else environ
        self._encryption_key = encryption_key or environ.get(ENCRYPTION_KEY_ENV)

    @property
    def encryption_key(self) -> Optional[str]:
        if not self._encryption_key:
            self._encryption_key = self.secret_store.retrieve_encryption_key(self.issuer_id)
        return self._encryption_key

    def ensure_certificate(self) -> CertificateResult:
        if self.ci:
            return self.restore_for_ci()
        return self._ensure_local()

    def restore_for_ci(self) -> CertificateResult:
        """Install the committed certificate, never creating anything remotely"""
        console.print("[blue]CI mode: restoring certificate from encrypted storage")
        name = self.certificate_name

        if not self.encryption_key:
            raise LocalStoreError(
                "No certificate encryption key available on CI",
                f"Set {ENCRYPTION_KEY_ENV}. Run `signsmith encryption-key` on a Mac to get it.",
            )
        if not self.storage.encrypted_exists(name):
            raise LocalStoreError(
                f"Encrypted certificate not found: {self.storage.encrypted_p12_path(name)}",
                "Run `signsmith ensure-certificates` locally and commit fastlane/certificates.",
            )

        metadata = self.storage.load_metadata(name)
        if metadata is None or not metadata.sha1:
            raise LocalStoreError(
                f"Certificate metadata not found: {self.storage.metadata_path(name)}",
                "Run `signsmith ensure-certificates` locally and commit fastlane/certificates.",
            )
        if metadata.is_expired():
            raise LocalStoreError(
                f"Stored certificate expired on {metadata.expires_at}",
                "Revoke it on the developer portal and run `signsmith ensure-certificates` locally to create a new one.",
            )

        p12_data = self.storage.restore_encrypted(self.encryption_key, name)
        if self.keychain.available:
            self._install(p12_data)
            if not self.keychain.certificate_exists(metadata.sha1):
                console.print(
                    f"[yellow]Certificate {metadata.sha1} not visible in keychain after import"
                )
        else:
            console.print("[yellow]No macOS keychain available, skipping certificate install")

        console.print(f"[green]Restored certificate {metadata.common_name}")
        return self._result_from_metadata(metadata)

    def _ensure_local(self) -> CertificateResult:
        name = self.certificate_name
        metadata = self.storage.load_metadata(name)
        remote: Optional[List[Certificate]] = None

        if metadata and metadata.sha1 and self.keychain.certificate_exists(metadata.sha1):
            remote = self._remote_certificates()
            match = self._remote_match(metadata, remote)
            if match and not metadata.is_expired():
                console.print(f"[green]Valid certificate found in keychain: {metadata.common_name}")
                return self._result(match, metadata)

            console.print(
                "[yellow]Certificate in keychain is expired or no longer on App Store Connect, cleaning up"
            )
            self._cleanup(metadata)

        elif metadata and not metadata.is_expired() and self.storage.encrypted_exists(name):
            if self.encryption_key:
                remote = self._remote_certificates()
                restored = self._restore_to_keychain(metadata, remote)
                if restored:
                    return restored
            else:
                console.print(
                    f"[yellow]Encrypted certificate found but no encryption key, set {ENCRYPTION_KEY_ENV} to restore it"
                )

        if remote is None:
            remote = self._remote_certificates()
        if remote:
            existing = remote[0]
            raise RemoteCertificateUnavailableError(
                f"A distribution certificate already exists on App Store Connect "
                f"({existing.name}, id {existing.id}) but no usable local copy was found",
                f"Ask a teammate for fastlane/certificates/{name}.p12.enc, {name}.yaml and the "
                "encryption key (`signsmith encryption-key`), or revoke the certificate on the "
                "developer portal and run again to create a new one.",
            )

        return self._create_certificate()

    def _remote_certificates(self) -> List[Certificate]:
        return self.api.fetch_certificates([CERTIFICATE_TYPE_DISTRIBUTION])

    @staticmethod
    def _remote_match(
        metadata: CertificateMetadata, remote: List[Certificate]
    ) -> Optional[Certificate]:
        for certificate in remote:
            if certificate_fingerprint(certificate) == metadata.sha1:
                return certificate
        return None

    def _restore_to_keychain(
        self, metadata: CertificateMetadata, remote: List[Certificate]
    ) -> Optional[CertificateResult]:
        console.print("[blue]Restoring certificate from encrypted storage...")
        p12_data = self.storage.restore_encrypted(self.encryption_key, self.certificate_name)
        if p12_data is None:
            return None

        self._install(p12_data)
        if not self.keychain.certificate_exists(metadata.sha1):
            console.print("[yellow]Restored certificate is not visible in the keychain")
            return None

        match = self._remote_match(metadata, remote)
        if match is None:
            console.print(
                "[yellow]Restored certificate is no longer on App Store Connect, cleaning up"
            )
            self._cleanup(metadata)
            return None

        console.print(f"[green]Restored certificate {metadata.common_name}")
        return self._result(match, metadata)

    def _create_certificate(self) -> CertificateResult:
        console.print("[blue]No distribution certificate on App Store Connect, creating one")

        key = self.encryption_key
        if not key:
            key = generate_encryption_key()
            if not self.secret_store.store_encryption_key(key, self.issuer_id):
                raise LocalStoreError(
                    "Could not store a new certificate encryption key in the keychain",
                    f"Set {ENCRYPTION_KEY_ENV} to a secret of your choice and run again.",
                )
            self._encryption_key = key
            console.print(
                "[green]Generated a certificate encryption key and stored it in the keychain. "
                "Run `signsmith encryption-key` to share it with CI and teammates."
            )

        signing_request = generate_csr()
        certificate = self.api.create_certificate(
            signing_request.csr_pem, CERTIFICATE_TYPE_DISTRIBUTION
        )
        der = certificate.der_bytes
        if not der:
            raise ProtocolError(f"Created certificate {certificate.id} has no content")

        friendly_name = common_name(load_certificate(der)) or COMMON_NAME
        p12_data = build_p12(signing_request, der, friendly_name)
        metadata = build_metadata(certificate, der)

        try:
            path = self.storage.save_encrypted(p12_data, metadata, key, self.certificate_name)
            console.print(f"[green]Saved encrypted certificate to {path}")
        except (OSError, LocalStoreError) as e:
            console.print(f"[yellow]Could not save encrypted certificate: {e}")

        self._install(p12_data)
        console.print(f"[green]Created certificate {certificate.name} ({certificate.id})")
        return self._result(certificate, metadata)

    def _install(self, p12_data: bytes) -> None:
        fd, path = tempfile.mkstemp(suffix=".p12")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(p12_data)
            self.keychain.import_p12(path, P12_PASSWORD)
        finally:
            os.unlink(path)

    def _cleanup(self, metadata: CertificateMetadata) -> None:
        self.keychain.delete_certificate(metadata.sha1)
        self.storage.delete(self.certificate_name)

    @staticmethod
    def _result(certificate: Certificate, metadata: CertificateMetadata) -> CertificateResult:
        expires = (
            certificate.expiration_date.isoformat()
            if certificate.expiration_date
            else metadata.expires_at
        )
        return CertificateResult(
            id=certificate.id,
            name=certificate.name or metadata.common_name,
            expires=expires,
            sha1=metadata.sha1,
        )

    @staticmethod
    def _result_from_metadata(metadata: CertificateMetadata) -> CertificateResult:
        return CertificateResult(
            id=metadata.id,
            name=metadata.common_name,
            expires=metadata.expires_at,
            sha1=metadata.sha1,
        )
