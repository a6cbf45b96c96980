from datetime import datetime
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from signsmith.src.app_store_connect.models import Certificate, utc_now
from signsmith.src.certificates.csr_generator import SigningRequest
from signsmith.src.storage.certificate_storage import CertificateMetadata

# Transport password of the PKCS#12 bundle, the bundle itself is encrypted at rest
P12_PASSWORD = "fastlane"


def load_certificate(der: bytes) -> x509.Certificate:
    return x509.load_der_x509_certificate(der)


def sha1_fingerprint(der: bytes) -> str:
    return load_certificate(der).fingerprint(hashes.SHA1()).hex().upper()


def certificate_fingerprint(certificate: Certificate) -> Optional[str]:
    """SHA-1 of a remote certificate's content, None when it can't be read"""
    try:
        der = certificate.der_bytes
        return sha1_fingerprint(der) if der else None
    except ValueError:
        return None


def common_name(cert: x509.Certificate) -> Optional[str]:
    attributes = cert.subject.get_attributes_for_oid(x509.oid.NameOID.COMMON_NAME)
    return attributes[0].value if attributes else None


def build_p12(
    signing_request: SigningRequest,
    der: bytes,
    friendly_name: str,
    password: str = P12_PASSWORD,
) -> bytes:
    cert = load_certificate(der)
    # SHA1/3DES so the macOS security tool can import it
    encryption = (
        serialization.PrivateFormat.PKCS12.encryption_builder()
        .kdf_rounds(50000)
        .key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC)
        .hmac_hash(hashes.SHA1())
        .build(password.encode("utf-8"))
    )
    return pkcs12.serialize_key_and_certificates(
        friendly_name.encode("utf-8"),
        signing_request.private_key,
        cert,
        None,
        encryption,
    )


def build_metadata(
    certificate: Certificate, der: bytes, created_at: Optional[datetime] = None
) -> CertificateMetadata:
    cert = load_certificate(der)
    expiration = certificate.expiration_date
    if expiration is None:
        expiration = getattr(cert, "not_valid_after_utc", None) or cert.not_valid_after
    return CertificateMetadata(
        sha1=sha1_fingerprint(der),
        common_name=common_name(cert) or certificate.name,
        expires_at=expiration.isoformat(),
        created_at=(created_at or utc_now()).isoformat(),
        id=certificate.id,
    )

