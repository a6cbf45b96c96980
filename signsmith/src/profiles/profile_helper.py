from typing import Optional

from signsmith.src.app_store_connect.models import (
    PROFILE_TYPE_AD_HOC,
    PROFILE_TYPE_APP_STORE,
    PROFILE_TYPE_DEVELOPMENT,
)

PROFILE_NAME_SUFFIXES = {
    PROFILE_TYPE_APP_STORE: "App Store",
    PROFILE_TYPE_AD_HOC: "Ad Hoc",
    PROFILE_TYPE_DEVELOPMENT: "Development",
}


def generate_profile_name(bundle_identifier: str, profile_type: str) -> str:
    suffix = PROFILE_NAME_SUFFIXES.get(profile_type, profile_type)
    return f"{bundle_identifier} {suffix}"


def code_sign_identity_for_certificate(certificate_name: Optional[str]) -> Optional[str]:
    name = certificate_name or ""
    if "Distribution" in name:
        return "iPhone Distribution"
    if "Development" in name:
        return "iPhone Developer"
    return None
