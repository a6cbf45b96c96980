from typing import List, Optional


class SignsmithError(Exception):
    """Base class for all user-facing failures"""

    def __init__(self, message: str, remediation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.remediation = remediation


class MissingCredentialError(SignsmithError):
    pass


class KeyFormatError(SignsmithError):
    pass


class RemoteAPIError(SignsmithError):
    """The App Store Connect API answered with an error"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[List[str]] = None,
        remediation: Optional[str] = None,
    ):
        super().__init__(message, remediation)
        self.status_code = status_code
        self.details = details or []


class DuplicateResourceConflict(RemoteAPIError):
    pass


class ProtocolError(SignsmithError):
    pass


class LocalStoreError(SignsmithError):
    pass


class RemoteCertificateUnavailableError(LocalStoreError):
    pass


class KeychainOperationError(SignsmithError):
    pass


class ProjectFileError(SignsmithError):
    pass


class CoverageError(SignsmithError):
    pass
