import base64
import time
from typing import Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import requests

from signsmith.logger import debug, get_console
from signsmith.src.app_store_connect.credentials import Credentials
from signsmith.src.app_store_connect.jwt_generator import JWTGenerator
from signsmith.src.app_store_connect.models import (
    CERTIFICATE_TYPE_DEVELOPMENT,
    CERTIFICATE_TYPE_DISTRIBUTION,
    BundleId,
    Certificate,
    Profile,
)
from signsmith.src.errors import DuplicateResourceConflict, ProtocolError, RemoteAPIError

console = get_console()

BASE_URL = "https://api.appstoreconnect.apple.com/v1"
PAGE_LIMIT = 200
MAX_PAGES = 50

DOWNLOAD_ATTEMPTS = 8
DOWNLOAD_BASE_DELAY = 2
DOWNLOAD_MAX_DELAY = 30


def humanize_identifier(identifier: str) -> str:
    """com.example.my-app_name -> My App Name"""
    last = identifier.split(".")[-1]
    words = [word for word in last.replace("_", "-").split("-") if word]
    return " ".join(word.capitalize() for word in words) or identifier


def looks_like_profile(content: bytes) -> bool:
    return any(marker in content for marker in (b"<?xml", b"<!DOCTYPE plist", b"<plist"))


class AppStoreConnectAPI:
    """App Store Connect REST API client"""

    def __init__(
        self,
        credentials: Credentials,
        session: Optional[requests.Session] = None,
        jwt_generator: Optional[JWTGenerator] = None,
        sleep=time.sleep,
        timeout: int = 60,
    ):
        self.credentials = credentials
        self.session = session or requests.Session()
        self.jwt_generator = jwt_generator or JWTGenerator()
        self.sleep = sleep
        self.timeout = timeout
        self.default_headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _auth_headers(self) -> Dict[str, str]:
        # A fresh token per request, they are only valid for 20 minutes
        token = self.jwt_generator.generate(
            self.credentials.private_key,
            self.credentials.key_id,
            self.credentials.issuer_id,
        )
        headers = dict(self.default_headers)
        headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(
        self,
        path: str,
        method: str = "GET",
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> dict:
        """Perform an authenticated request and return the decoded JSON document"""
        url = path if path.startswith("http") else f"{BASE_URL}{path}"
        debug(f"{method} {url} {params or ''}")

        try:
            response = self.session.request(
                method,
                url,
                headers=self._auth_headers(),
                params=params,
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteAPIError(f"Request {method} {path} failed: {e}")

        return self._handle_response(response, method, path)

    def _handle_response(self, response, method: str, path: str) -> dict:
        status = response.status_code
        text = response.text or ""

        if method == "DELETE" and (status == 204 or not text.strip()):
            if status < 400:
                return {}
            raise RemoteAPIError(
                f"{method} {path} failed with HTTP {status}", status_code=status
            )

        try:
            data = response.json() if text.strip() else {}
        except ValueError:
            debug(f"Non JSON response from {path}: {text[:200]}")
            data = {}
        if not isinstance(data, dict):
            data = {}

        errors = data.get("errors")
        if errors:
            details = [
                error.get("detail") or error.get("title") or error.get("code") or "Unknown error"
                for error in errors
            ]
            raise RemoteAPIError(
                f"[ASC ERROR] {', '.join(details)}", status_code=status, details=details
            )

        if status >= 400:
            raise RemoteAPIError(
                f"{method} {path} failed with HTTP {status}", status_code=status
            )

        return data

    @staticmethod
    def _cursor_from(next_link: str) -> Optional[str]:
        values = parse_qs(urlparse(next_link).query).get("cursor")
        return values[0] if values else None

    def _paginate(self, path: str, params: Optional[dict], label: str) -> List[dict]:
        """Follow links.next cursors and return every resource in server order"""
        params = dict(params or {})
        params.setdefault("limit", PAGE_LIMIT)
        resources: List[dict] = []

        for _ in range(MAX_PAGES):
            data = self.request(path, params=params)
            page = data.get("data") or []
            if isinstance(page, dict):
                page = [page]
            resources.extend(page)

            next_link = (data.get("links") or {}).get("next")
            if not next_link:
                return resources
            cursor = self._cursor_from(next_link)
            if not cursor:
                return resources
            params = dict(params, cursor=cursor)

        raise ProtocolError(
            f"Infinite loop detected in {label}: more than {MAX_PAGES} pages returned"
        )

    # Bundle identifiers

    def fetch_bundle_ids(self, identifier: Optional[str] = None) -> List[BundleId]:
        params = {"filter[identifier]": identifier} if identifier else {}
        resources = self._paginate("/bundleIds", params, "fetch_bundle_ids")
        return [BundleId.from_api(resource) for resource in resources]

    def create_bundle_id(
        self, identifier: str, name: Optional[str] = None, platform: str = "IOS"
    ) -> BundleId:
        console.print(f"[blue]Creating bundle ID {identifier}...")
        body = {
            "data": {
                "type": "bundleIds",
                "attributes": {
                    "identifier": identifier,
                    "name": name or humanize_identifier(identifier),
                    "platform": platform,
                },
            }
        }
        data = self.request("/bundleIds", method="POST", body=body)
        return BundleId.from_api(data["data"])

    def fetch_team_id(self, bundle_identifier: Optional[str] = None) -> Optional[str]:
        """Team id (seedId) of the first bundle ID, or of the given identifier"""
        bundle_ids = self.fetch_bundle_ids(bundle_identifier)
        if bundle_identifier:
            exact = [b for b in bundle_ids if b.identifier == bundle_identifier]
            bundle_ids = exact or bundle_ids
        if not bundle_ids:
            return None
        return bundle_ids[0].seed_id

    # Certificates

    def fetch_certificates(self, types: Optional[List[str]] = None) -> List[Certificate]:
        types = types or [CERTIFICATE_TYPE_DEVELOPMENT, CERTIFICATE_TYPE_DISTRIBUTION]
        params = {"filter[certificateType]": ",".join(types)}
        resources = self._paginate("/certificates", params, "fetch_certificates")
        return [Certificate.from_api(resource) for resource in resources]

    def create_certificate(
        self, csr_content: str, certificate_type: str = CERTIFICATE_TYPE_DISTRIBUTION
    ) -> Certificate:
        console.print(f"[blue]Creating {certificate_type} certificate...")
        body = {
            "data": {
                "type": "certificates",
                "attributes": {
                    "certificateType": certificate_type,
                    "csrContent": csr_content,
                },
            }
        }
        data = self.request("/certificates", method="POST", body=body)
        return Certificate.from_api(data["data"])

    def delete_certificate(self, certificate_id: str) -> None:
        self.request(f"/certificates/{certificate_id}", method="DELETE")

    # Profiles

    def fetch_profiles(
        self,
        bundle_id_id: str,
        profile_type: str,
        bundle_identifier: Optional[str] = None,
    ) -> List[Profile]:
        """Profiles of the given type attached to a bundle ID resource.

        The server side bundleId filter is tried first. When the API refuses it, every
        profile of the type is scanned and matched on its bundleId relationship, and when
        no relationship matches, on the profile name. The name match can pick up profiles
        of another app whose name happens to contain the identifier.
        """
        params = {
            "filter[bundleId]": bundle_id_id,
            "filter[profileType]": profile_type,
            "include": "bundleId,certificates",
        }
        try:
            resources = self._paginate("/profiles", params, "fetch_profiles")
            return [Profile.from_api(resource) for resource in resources]
        except RemoteAPIError as e:
            message = e.message.lower()
            if "not a valid filter" not in message and "bundleid" not in message:
                raise
            console.print(
                "[yellow]Server side bundleId filter rejected, scanning all profiles instead"
            )

        profiles = self.fetch_all_profiles(profile_type)

        matched = []
        for profile in profiles:
            if profile.bundle_id_id is None:
                profile.bundle_id_id = self._fetch_profile_bundle_id(profile.id)
            if profile.bundle_id_id == bundle_id_id:
                matched.append(profile)

        if matched or not profiles:
            return matched

        needle = bundle_identifier or bundle_id_id
        short_name = needle.split(".")[-1]
        console.print(
            f"[yellow]No profile relationship matched bundle ID {needle}, "
            "falling back to matching profile names (less precise)"
        )
        return [p for p in profiles if needle in p.name or short_name in p.name]

    def fetch_all_profiles(self, profile_type: Optional[str] = None) -> List[Profile]:
        params = {"include": "bundleId,certificates"}
        if profile_type:
            params["filter[profileType]"] = profile_type
        resources = self._paginate("/profiles", params, "fetch_all_profiles")
        return [Profile.from_api(resource) for resource in resources]

    def _fetch_profile_bundle_id(self, profile_id: str) -> Optional[str]:
        try:
            data = self.request(f"/profiles/{profile_id}", params={"include": "bundleId"})
        except RemoteAPIError as e:
            debug(f"Could not load bundle ID of profile {profile_id}: {e}")
            return None
        resource = data.get("data")
        if not resource:
            return None
        return Profile.from_api(resource).bundle_id_id

    def create_profile(
        self,
        name: str,
        bundle_id_id: str,
        certificate_ids: List[str],
        profile_type: str,
    ) -> Profile:
        console.print(f"[blue]Creating provisioning profile '{name}'...")
        body = {
            "data": {
                "type": "profiles",
                "attributes": {"name": name, "profileType": profile_type},
                "relationships": {
                    "bundleId": {"data": {"type": "bundleIds", "id": bundle_id_id}},
                    "certificates": {
                        "data": [
                            {"type": "certificates", "id": certificate_id}
                            for certificate_id in certificate_ids
                        ]
                    },
                },
            }
        }
        try:
            data = self.request("/profiles", method="POST", body=body)
        except RemoteAPIError as e:
            message = e.message.lower()
            if "multiple profiles found" in message or "duplicate" in message:
                raise DuplicateResourceConflict(
                    e.message, status_code=e.status_code, details=e.details
                )
            raise
        return Profile.from_api(data["data"])

    def delete_profile(self, profile_id: str) -> None:
        self.request(f"/profiles/{profile_id}", method="DELETE")

    def download_profile(self, profile_id: str) -> bytes:
        """Download profile content, waiting for freshly created profiles to be populated"""
        delay = DOWNLOAD_BASE_DELAY
        last_error = None

        for attempt in range(1, DOWNLOAD_ATTEMPTS + 1):
            try:
                data = self.request(
                    f"/profiles/{profile_id}",
                    params={"fields[profiles]": "profileContent"},
                )
                content = ((data.get("data") or {}).get("attributes") or {}).get(
                    "profileContent"
                )
                if content:
                    decoded = base64.b64decode(content)
                    if looks_like_profile(decoded):
                        return decoded
                    last_error = "profileContent is not a provisioning profile"
                else:
                    last_error = "profileContent is empty"
            except RemoteAPIError as e:
                if e.status_code in (401, 403):
                    raise
                last_error = e.message
            except ValueError as e:
                last_error = f"profileContent is not valid base64: {e}"

            if attempt < DOWNLOAD_ATTEMPTS:
                console.print(
                    f"[yellow]Profile content not ready ({last_error}), "
                    f"retrying in {delay}s ({attempt}/{DOWNLOAD_ATTEMPTS})"
                )
                self.sleep(delay)
                delay = min(delay * 2, DOWNLOAD_MAX_DELAY)

        raise RemoteAPIError(
            f"Cannot download profile: profileContent not available after "
            f"{DOWNLOAD_ATTEMPTS} attempts. Profile ID: {profile_id}. Last error: {last_error}",
            remediation="Wait a few minutes and run the command again, or download the profile from the developer portal.",
        )
