import base64
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from signsmith.src.app_store_connect.credentials import Credentials
from signsmith.src.app_store_connect.models import Certificate


PBXPROJ = """// !$*UTF8*$!
{
	archiveVersion = 1;
	classes = {
	};
	objectVersion = 56;
	objects = {

/* Begin PBXNativeTarget section */
		TARGET1 /* Runner */ = {
			isa = PBXNativeTarget;
			buildConfigurationList = LIST1 /* Build configuration list for PBXNativeTarget "Runner" */;
			buildPhases = (
			);
			name = Runner;
			productName = Runner;
			productType = "com.apple.product-type.application";
		};
		TARGET2 /* RunnerTests */ = {
			isa = PBXNativeTarget;
			buildConfigurationList = LIST2 /* Build configuration list for PBXNativeTarget "RunnerTests" */;
			name = RunnerTests;
			productType = "com.apple.product-type.bundle.unit-test";
		};
/* End PBXNativeTarget section */

/* Begin PBXProject section */
		PROJECT1 /* Project object */ = {
			isa = PBXProject;
			buildConfigurationList = LIST0 /* Build configuration list for PBXProject "Runner" */;
			targets = (
				TARGET1 /* Runner */,
				TARGET2 /* RunnerTests */,
			);
		};
/* End PBXProject section */

/* Begin XCBuildConfiguration section */
		CONF0D /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER_BASE = com.example.app;
				SDKROOT = iphoneos;
			};
			name = Debug;
		};
		CONF0R /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER_BASE = com.example.app;
				SDKROOT = iphoneos;
			};
			name = Release;
		};
		CONF1D /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				CODE_SIGN_IDENTITY = "Apple Development";
				"CODE_SIGN_IDENTITY[sdk=iphoneos*]" = "iPhone Developer";
				CODE_SIGN_STYLE = Automatic;
				DEVELOPMENT_TEAM = "";
				LD_RUNPATH_SEARCH_PATHS = (
					"$(inherited)",
					"@executable_path/Frameworks",
				);
				PRODUCT_BUNDLE_IDENTIFIER = "$(PRODUCT_BUNDLE_IDENTIFIER_BASE)";
				PROVISIONING_PROFILE_SPECIFIER = "";
				"PROVISIONING_PROFILE_SPECIFIER[sdk=iphoneos*]" = "Old Profile";
			};
			name = Debug;
		};
		CONF1R /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				CODE_SIGN_IDENTITY = "Apple Development";
				CODE_SIGN_STYLE = Automatic;
				DEVELOPMENT_TEAM = OLDTEAM;
				PRODUCT_BUNDLE_IDENTIFIER = "$(PRODUCT_BUNDLE_IDENTIFIER_BASE)";
				PROVISIONING_PROFILE = "old-uuid";
				"PROVISIONING_PROFILE[sdk=iphoneos*]" = "old-uuid";
				PROVISIONING_PROFILE_SPECIFIER = "Old Profile";
			};
			name = Release;
		};
		CONF2D /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				DEVELOPMENT_TEAM = OLDTEAM;
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app.tests;
			};
			name = Debug;
		};
		CONF2R /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				DEVELOPMENT_TEAM = OLDTEAM;
				PRODUCT_BUNDLE_IDENTIFIER = com.example.app.tests;
			};
			name = Release;
		};
/* End XCBuildConfiguration section */

/* Begin XCConfigurationList section */
		LIST0 /* Build configuration list for PBXProject "Runner" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				CONF0D /* Debug */,
				CONF0R /* Release */,
			);
			defaultConfigurationName = Release;
		};
		LIST1 /* Build configuration list for PBXNativeTarget "Runner" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				CONF1D /* Debug */,
				CONF1R /* Release */,
			);
			defaultConfigurationName = Release;
		};
		LIST2 /* Build configuration list for PBXNativeTarget "RunnerTests" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				CONF2D /* Debug */,
				CONF2R /* Release */,
			);
			defaultConfigurationName = Release;
		};
/* End XCConfigurationList section */
	};
	rootObject = PROJECT1 /* Project object */;
}
"""


def write_project(directory: Path, name: str = "Runner", text: str = PBXPROJ) -> Path:
    project = directory / f"{name}.xcodeproj"
    project.mkdir(parents=True)
    (project / "project.pbxproj").write_text(text)
    return project


@pytest.fixture
def xcode_project(tmp_path):
    return write_project(tmp_path)


@pytest.fixture
def ec_key_pem():
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def credentials(ec_key_pem):
    return Credentials(key_id="KEY123", issuer_id="issuer-1", private_key=ec_key_pem)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Records requests and answers them with a handler(method, url, params, body)"""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "headers": headers, "params": dict(params or {}), "json": json}
        )
        return self.handler(method, url, dict(params or {}), json)


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


class CertificateAuthority:
    """Signs CSRs the way the developer portal would"""

    def __init__(self):
        self.key = ec.generate_private_key(ec.SECP256R1())
        self.name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test WWDR")])
        self.serial = 1000

    def issue(self, csr_pem: str, common_name: str = "Apple Distribution: Example (TEAM1)", days: int = 365) -> bytes:
        csr = x509.load_pem_x509_csr(csr_pem.encode("ascii"))
        now = datetime.now(timezone.utc)
        self.serial += 1
        cert = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
            .issuer_name(self.name)
            .public_key(csr.public_key())
            .serial_number(self.serial)
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=days))
            .sign(self.key, hashes.SHA256())
        )
        return cert.public_bytes(serialization.Encoding.DER)


@pytest.fixture
def certificate_authority():
    return CertificateAuthority()


class FakeCertificateAPI:
    def __init__(self, authority):
        self.authority = authority
        self.certificates = []
        self.calls = []
        self.mutations = []

    def add_remote(self, csr_pem, certificate_id):
        der = self.authority.issue(csr_pem)
        certificate = Certificate(
            id=certificate_id,
            certificate_type="IOS_DISTRIBUTION",
            name="Apple Distribution: Example (TEAM1)",
            expiration_date=datetime.now(timezone.utc) + timedelta(days=365),
            content=base64.b64encode(der).decode("ascii"),
        )
        self.certificates.append(certificate)
        return certificate

    def fetch_certificates(self, types=None):
        self.calls.append(("fetch_certificates", types))
        return [c for c in self.certificates if not types or c.certificate_type in types]

    def create_certificate(self, csr_content, certificate_type="IOS_DISTRIBUTION"):
        self.calls.append(("create_certificate", certificate_type))
        certificate = self.add_remote(csr_content, f"CERT{len(self.certificates) + 1}")
        self.mutations.append(("create_certificate", certificate.id))
        return certificate


@pytest.fixture
def fake_certificate_api(certificate_authority):
    return FakeCertificateAPI(certificate_authority)


class FakeKeychain:
    available = True

    def __init__(self):
        self.installed = set()
        self.deleted = []
        self.imports = 0
        self.friendly_names = []

    def certificate_exists(self, sha1):
        return sha1 in self.installed

    def delete_certificate(self, sha1):
        self.installed.discard(sha1)
        self.deleted.append(sha1)
        return True

    def import_p12(self, path, password):
        data = Path(path).read_bytes()
        bundle = pkcs12.load_pkcs12(data, password.encode("utf-8"))
        self.installed.add(bundle.cert.certificate.fingerprint(hashes.SHA1()).hex().upper())
        self.friendly_names.append(bundle.cert.friendly_name)
        self.imports += 1


@pytest.fixture
def fake_keychain():
    return FakeKeychain()
