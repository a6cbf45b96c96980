from typing import List, Optional

from signsmith.src.app_store_connect.models import Certificate
from signsmith.src.certificates.certificate_creator import certificate_fingerprint


class CertificateSelector:
    """Picks the remote certificate we are most likely able to sign with"""

    def __init__(self, keychain, storage, certificate_name: str = "distribution"):
        self.keychain = keychain
        self.storage = storage
        self.certificate_name = certificate_name

    def find_best(self, certificates: List[Certificate]) -> Optional[Certificate]:
        if not certificates:
            return None

        fingerprints = {c.id: certificate_fingerprint(c) for c in certificates}

        for certificate in certificates:
            sha1 = fingerprints[certificate.id]
            if sha1 and self.keychain.certificate_exists(sha1):
                return certificate

        metadata = self.storage.load_metadata(self.certificate_name)
        if metadata:
            for certificate in certificates:
                if certificate.id == metadata.id or (
                    metadata.sha1 and fingerprints[certificate.id] == metadata.sha1
                ):
                    return certificate

        return certificates[0]
