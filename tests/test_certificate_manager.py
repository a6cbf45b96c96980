from datetime import datetime, timedelta, timezone

import pytest

from signsmith.src.certificates.certificate_creator import build_metadata, build_p12
from signsmith.src.certificates.certificate_manager import (
    CertificateManager,
    code_sign_identity_for,
)
from signsmith.src.certificates.csr_generator import generate_csr
from signsmith.src.errors import LocalStoreError, RemoteCertificateUnavailableError
from signsmith.src.storage.certificate_storage import CertificateMetadata, CertificateStorage
from signsmith.src.storage.secret_store import InMemorySecretStore


def make_manager(api, storage, keychain, secret_store=None, ci=False, encryption_key=None):
    return CertificateManager(
        api=api,
        storage=storage,
        keychain=keychain,
        secret_store=secret_store or InMemorySecretStore(),
        issuer_id="issuer-1",
        encryption_key=encryption_key,
        ci=ci,
        environ={},
    )


def store_remote_certificate(api, storage, key="secret"):
    """Create a certificate on the fake portal and commit its encrypted bundle"""
    signing_request = generate_csr()
    certificate = api.add_remote(signing_request.csr_pem, "CERT-A")
    der = certificate.der_bytes
    metadata = build_metadata(certificate, der)
    storage.save_encrypted(build_p12(signing_request, der, "Apple Distribution"), metadata, key, "distribution")
    return certificate, metadata


def test_ci_without_encrypted_storage_fails_without_remote_calls(tmp_path, fake_certificate_api, fake_keychain):
    manager = make_manager(
        fake_certificate_api, CertificateStorage(tmp_path), fake_keychain, ci=True, encryption_key="secret"
    )

    with pytest.raises(LocalStoreError, match="Encrypted certificate not found"):
        manager.ensure_certificate()

    assert fake_certificate_api.calls == []


def test_ci_without_encryption_key_fails(tmp_path, fake_certificate_api, fake_keychain):
    storage = CertificateStorage(tmp_path)
    store_remote_certificate(fake_certificate_api, storage)
    manager = make_manager(fake_certificate_api, storage, fake_keychain, ci=True)

    with pytest.raises(LocalStoreError) as error:
        manager.ensure_certificate()

    assert "CERTIFICATE_ENCRYPTION_KEY" in error.value.remediation


def test_ci_with_expired_metadata_fails_before_decrypt(tmp_path, fake_certificate_api, fake_keychain):
    storage = CertificateStorage(tmp_path)
    storage.directory.mkdir(parents=True)
    # not decryptable: a decrypt attempt would fail with a different error
    storage.encrypted_p12_path("distribution").write_text("garbage")
    expired = CertificateMetadata(
        sha1="ABC",
        common_name="Apple Distribution",
        expires_at=(datetime.now(timezone.utc) - timedelta(days=1)).isoformat(),
        id="CERT-A",
    )
    storage.metadata_path("distribution").write_text(
        "\n".join(f"{k}: '{v}'" for k, v in expired.to_dict().items() if v)
    )
    manager = make_manager(fake_certificate_api, storage, fake_keychain, ci=True, encryption_key="secret")

    with pytest.raises(LocalStoreError, match="expired"):
        manager.ensure_certificate()

    assert fake_keychain.imports == 0
    assert fake_certificate_api.calls == []


def test_ci_restores_and_installs(tmp_path, fake_certificate_api, fake_keychain):
    storage = CertificateStorage(tmp_path)
    certificate, metadata = store_remote_certificate(fake_certificate_api, storage)
    fake_certificate_api.calls.clear()
    manager = make_manager(fake_certificate_api, storage, fake_keychain, ci=True, encryption_key="secret")

    result = manager.ensure_certificate()

    assert result.sha1 == metadata.sha1
    assert result.id == "CERT-A"
    assert metadata.sha1 in fake_keychain.installed
    assert fake_certificate_api.calls == []


def test_creates_certificate_when_none_exists(tmp_path, fake_certificate_api, fake_keychain):
    storage = CertificateStorage(tmp_path)
    secrets = InMemorySecretStore()
    manager = make_manager(fake_certificate_api, storage, fake_keychain, secrets)

    result = manager.ensure_certificate()

    assert fake_certificate_api.mutations == [("create_certificate", "CERT1")]
    assert secrets.retrieve_encryption_key("issuer-1")
    assert storage.encrypted_exists("distribution")
    assert storage.load_metadata("distribution").sha1 == result.sha1
    assert result.sha1 in fake_keychain.installed
    # the bundle is labelled with the issued certificate's common name
    assert fake_keychain.friendly_names == [b"Apple Distribution: Example (TEAM1)"]


def test_second_run_performs_no_remote_mutations(tmp_path, fake_certificate_api, fake_keychain):
    storage = CertificateStorage(tmp_path)
    secrets = InMemorySecretStore()
    first = make_manager(fake_certificate_api, storage, fake_keychain, secrets).ensure_certificate()

    second = make_manager(fake_certificate_api, storage, fake_keychain, secrets).ensure_certificate()

    assert second.sha1 == first.sha1
    assert second.id == first.id
    assert len(fake_certificate_api.mutations) == 1
    assert fake_keychain.imports == 1


def test_remote_certificate_without_local_copy_is_a_terminal_failure(tmp_path, fake_certificate_api, fake_keychain):
    fake_certificate_api.add_remote(generate_csr().csr_pem, "CERT-REMOTE")
    manager = make_manager(fake_certificate_api, CertificateStorage(tmp_path), fake_keychain)

    with pytest.raises(RemoteCertificateUnavailableError) as error:
        manager.ensure_certificate()

    assert "teammate" in error.value.remediation
    assert fake_certificate_api.mutations == []


def test_restores_from_encrypted_storage_when_not_in_keychain(tmp_path, fake_certificate_api, fake_keychain):
    storage = CertificateStorage(tmp_path)
    certificate, metadata = store_remote_certificate(fake_certificate_api, storage)
    manager = make_manager(fake_certificate_api, storage, fake_keychain, encryption_key="secret")

    result = manager.ensure_certificate()

    assert result.id == certificate.id
    assert metadata.sha1 in fake_keychain.installed
    assert fake_certificate_api.mutations == []


def test_revoked_certificate_is_cleaned_up(tmp_path, fake_certificate_api, fake_keychain):
    storage = CertificateStorage(tmp_path)
    _, metadata = store_remote_certificate(fake_certificate_api, storage)
    fake_keychain.installed.add(metadata.sha1)
    # revoked on the portal, a teammate created another one
    fake_certificate_api.certificates.clear()
    fake_certificate_api.add_remote(generate_csr().csr_pem, "CERT-B")
    manager = make_manager(fake_certificate_api, storage, fake_keychain, encryption_key="secret")

    with pytest.raises(RemoteCertificateUnavailableError):
        manager.ensure_certificate()

    assert metadata.sha1 in fake_keychain.deleted
    assert not storage.encrypted_exists("distribution")


def test_wrong_encryption_key_is_fatal(tmp_path, fake_certificate_api, fake_keychain):
    storage = CertificateStorage(tmp_path)
    store_remote_certificate(fake_certificate_api, storage, key="right")
    manager = make_manager(fake_certificate_api, storage, fake_keychain, ci=True, encryption_key="wrong")

    with pytest.raises(LocalStoreError, match="Failed to decrypt"):
        manager.ensure_certificate()


@pytest.mark.parametrize(
    "name, identity",
    [
        ("iOS Distribution: Example", "iPhone Distribution"),
        ("iPhone Distribution: Example", "iPhone Distribution"),
        ("Mac Distribution: Example", "Mac Distribution"),
        ("Apple Distribution: Example", "Apple Distribution"),
        (None, "Apple Distribution"),
    ],
)
def test_code_sign_identity_for(name, identity):
    assert code_sign_identity_for(name) == identity
