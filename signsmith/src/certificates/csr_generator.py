from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

COMMON_NAME = "Apple Distribution"


@dataclass
class SigningRequest:
    private_key: rsa.RSAPrivateKey
    csr: x509.CertificateSigningRequest

    @property
    def csr_pem(self) -> str:
        return self.csr.public_bytes(serialization.Encoding.PEM).decode("ascii")


def generate_csr(common_name: str = COMMON_NAME, key_size: int = 2048) -> SigningRequest:
    """Generate an RSA key and a CSR for it"""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .sign(private_key, hashes.SHA256())
    )
    return SigningRequest(private_key=private_key, csr=csr)
