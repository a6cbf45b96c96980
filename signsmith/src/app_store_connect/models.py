import base64
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union

CERTIFICATE_TYPE_DEVELOPMENT = "IOS_DEVELOPMENT"
CERTIFICATE_TYPE_DISTRIBUTION = "IOS_DISTRIBUTION"

PROFILE_TYPE_APP_STORE = "IOS_APP_STORE"
PROFILE_TYPE_AD_HOC = "IOS_APP_ADHOC"
PROFILE_TYPE_DEVELOPMENT = "IOS_APP_DEVELOPMENT"
PROFILE_TYPES = [PROFILE_TYPE_APP_STORE, PROFILE_TYPE_AD_HOC, PROFILE_TYPE_DEVELOPMENT]


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse the timestamps App Store Connect and our metadata files use, always tz-aware"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # 2024-01-01T00:00:00.000+0000 -> +00:00
        text = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", text)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _relationship_ids(resource: dict, name: str) -> List[str]:
    data = (resource.get("relationships") or {}).get(name, {}).get("data")
    if data is None:
        return []
    if isinstance(data, dict):
        data = [data]
    return [item["id"] for item in data if item.get("id")]


@dataclass
class BundleId:
    id: str
    identifier: str
    name: str
    platform: Optional[str] = None
    seed_id: Optional[str] = None

    @classmethod
    def from_api(cls, resource: dict) -> "BundleId":
        attributes = resource.get("attributes", {})
        return cls(
            id=resource["id"],
            identifier=attributes.get("identifier", ""),
            name=attributes.get("name", ""),
            platform=attributes.get("platform"),
            seed_id=attributes.get("seedId"),
        )


@dataclass
class Certificate:
    id: str
    certificate_type: str
    name: str
    display_name: Optional[str] = None
    serial_number: Optional[str] = None
    expiration_date: Optional[datetime] = None
    content: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_api(cls, resource: dict) -> "Certificate":
        attributes = resource.get("attributes", {})
        return cls(
            id=resource["id"],
            certificate_type=attributes.get("certificateType", ""),
            name=attributes.get("name", ""),
            display_name=attributes.get("displayName"),
            serial_number=attributes.get("serialNumber"),
            expiration_date=parse_datetime(attributes.get("expirationDate")),
            content=attributes.get("certificateContent"),
        )

    @property
    def der_bytes(self) -> Optional[bytes]:
        if not self.content:
            return None
        return base64.b64decode(self.content)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiration_date is None:
            return False
        return self.expiration_date <= (now or utc_now())


@dataclass
class Profile:
    id: str
    name: str
    profile_type: str
    uuid: Optional[str] = None
    profile_state: Optional[str] = None
    expiration_date: Optional[datetime] = None
    bundle_id_id: Optional[str] = None
    certificate_ids: List[str] = field(default_factory=list)
    content: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_api(cls, resource: dict) -> "Profile":
        attributes = resource.get("attributes", {})
        bundle_ids = _relationship_ids(resource, "bundleId")
        return cls(
            id=resource["id"],
            name=attributes.get("name", ""),
            profile_type=attributes.get("profileType", ""),
            uuid=attributes.get("uuid"),
            profile_state=attributes.get("profileState"),
            expiration_date=parse_datetime(attributes.get("expirationDate")),
            bundle_id_id=bundle_ids[0] if bundle_ids else None,
            certificate_ids=_relationship_ids(resource, "certificates"),
            content=attributes.get("profileContent"),
        )
