import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional, Union

from signsmith.logger import get_console
from signsmith.src.app_store_connect.models import (
    CERTIFICATE_TYPE_DEVELOPMENT,
    CERTIFICATE_TYPE_DISTRIBUTION,
    PROFILE_TYPE_APP_STORE,
    PROFILE_TYPE_DEVELOPMENT,
    PROFILE_TYPES,
    BundleId,
    Certificate,
    Profile,
)
from signsmith.src.errors import (
    DuplicateResourceConflict,
    ProjectFileError,
    RemoteAPIError,
)
from signsmith.src.profiles.bundle_id_manager import ensure_bundle_id
from signsmith.src.profiles.profile_helper import (
    code_sign_identity_for_certificate,
    generate_profile_name,
)
from signsmith.src.profiles.profile_selector import select_best_profile
from signsmith.src.xcode.signing_updater import apply_signing

console = get_console()

REFETCH_DELAY = 2


@dataclass
class ProfileResult:
    id: str
    name: str
    uuid: Optional[str]
    type: str
    project_path: Optional[str]
    bundle_id: str
    team_id: Optional[str]
    code_sign_identity: Optional[str]

    def to_dict(self) -> dict:
        return asdict(self)


class ProfileManager:
    """Ensures exactly one valid provisioning profile per bundle ID and type"""

    def __init__(
        self,
        api,
        certificate_selector,
        downloader,
        detector=None,
        project_updater=apply_signing,
        sleep=time.sleep,
    ):
        self.api = api
        self.certificate_selector = certificate_selector
        self.downloader = downloader
        self.detector = detector
        self.project_updater = project_updater
        self.sleep = sleep

    def ensure_profile(
        self,
        bundle_identifier: str,
        profile_type: str = PROFILE_TYPE_APP_STORE,
        certificate_id: Optional[str] = None,
        profile_name: Optional[str] = None,
        project_path: Optional[Union[str, Path]] = None,
    ) -> ProfileResult:
        if profile_type not in PROFILE_TYPES:
            raise ValueError(
                f"Unknown profile type {profile_type}, expected one of {', '.join(PROFILE_TYPES)}"
            )

        if project_path is None and self.detector is not None:
            project_path = self.detector.find_project_with_bundle_id(bundle_identifier)

        bundle_id = ensure_bundle_id(self.api, bundle_identifier)
        team_id = bundle_id.seed_id

        certificates = self.api.fetch_certificates(
            [CERTIFICATE_TYPE_DEVELOPMENT, CERTIFICATE_TYPE_DISTRIBUTION]
        )
        certificate = self._resolve_certificate(certificates, profile_type, certificate_id)
        code_sign_identity = code_sign_identity_for_certificate(certificate.name)

        profiles = self.api.fetch_profiles(bundle_id.id, profile_type, bundle_identifier)
        console.print(f"[blue]Found {len(profiles)} existing profile(s) for {bundle_identifier}")
        selection = select_best_profile(profiles, certificates)
        self._delete_profiles(selection.to_delete)

        profile = selection.best
        if profile is None:
            name = profile_name or generate_profile_name(bundle_identifier, profile_type)
            profile = self._create_profile(
                name, bundle_id, certificate.id, profile_type, certificates
            )
        else:
            console.print(f"[green]Using existing profile '{profile.name}'")

        self.downloader.install(profile)

        result = ProfileResult(
            id=profile.id,
            name=profile.name,
            uuid=profile.uuid,
            type=profile_type,
            project_path=str(project_path) if project_path else None,
            bundle_id=bundle_identifier,
            team_id=team_id,
            code_sign_identity=code_sign_identity,
        )
        self._update_project(result)
        return result

    def _resolve_certificate(
        self,
        certificates: List[Certificate],
        profile_type: str,
        certificate_id: Optional[str],
    ) -> Certificate:
        if certificate_id:
            for certificate in certificates:
                if certificate.id == certificate_id:
                    return certificate
            raise RemoteAPIError(f"Certificate {certificate_id} not found on App Store Connect")

        wanted = (
            CERTIFICATE_TYPE_DEVELOPMENT
            if profile_type == PROFILE_TYPE_DEVELOPMENT
            else CERTIFICATE_TYPE_DISTRIBUTION
        )
        candidates = [c for c in certificates if c.certificate_type == wanted]
        certificate = self.certificate_selector.find_best(candidates)
        if certificate is None:
            raise RemoteAPIError(
                f"No {wanted} certificate found on App Store Connect",
                remediation="Run `signsmith ensure-certificates` first.",
            )
        console.print(f"[blue]Using certificate {certificate.name} ({certificate.id})")
        return certificate

    def _create_profile(
        self,
        name: str,
        bundle_id: BundleId,
        certificate_id: str,
        profile_type: str,
        certificates: List[Certificate],
        retry: bool = True,
    ) -> Profile:
        try:
            return self.api.create_profile(name, bundle_id.id, [certificate_id], profile_type)
        except DuplicateResourceConflict:
            if not retry:
                raise
            console.print(
                "[yellow]App Store Connect reports an existing profile, fetching profiles again"
            )
            profiles = self._refetch_profiles(name, bundle_id, profile_type)
            selection = select_best_profile(profiles, certificates)
            self._delete_profiles(selection.to_delete)
            if selection.best is not None:
                return selection.best
            return self._create_profile(
                name, bundle_id, certificate_id, profile_type, certificates, retry=False
            )
        except RemoteAPIError as e:
            if "program membership" in e.message.lower():
                raise RemoteAPIError(
                    e.message,
                    status_code=e.status_code,
                    details=e.details,
                    remediation="Your Apple Developer Program membership has expired or has "
                    "pending agreements. Sign in to developer.apple.com and renew or accept them.",
                )
            raise

    def _refetch_profiles(
        self, name: str, bundle_id: BundleId, profile_type: str
    ) -> List[Profile]:
        profiles = self.api.fetch_profiles(bundle_id.id, profile_type, bundle_id.identifier)
        if profiles:
            return profiles

        profiles = [
            profile
            for profile in self.api.fetch_all_profiles(profile_type)
            if profile.name == name
            or bundle_id.identifier in profile.name
            or profile.bundle_id_id == bundle_id.id
        ]
        if profiles:
            return profiles

        self.sleep(REFETCH_DELAY)
        return self.api.fetch_profiles(bundle_id.id, profile_type, bundle_id.identifier)

    def _delete_profiles(self, profiles: List[Profile]) -> None:
        for profile in profiles:
            try:
                self.api.delete_profile(profile.id)
                console.print(f"[green]Deleted profile '{profile.name}' ({profile.id})")
            except RemoteAPIError as e:
                console.print(f"[yellow]Could not delete profile '{profile.name}': {e}")

    def _update_project(self, result: ProfileResult) -> None:
        if not result.project_path or not result.uuid:
            return
        try:
            self.project_updater(
                result.project_path,
                result.bundle_id,
                result.uuid,
                result.team_id,
                result.code_sign_identity,
            )
        except (ProjectFileError, OSError) as e:
            console.print(f"[yellow]Could not update project signing settings: {e}")
