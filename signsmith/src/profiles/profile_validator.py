from datetime import datetime, timedelta
from typing import Dict, List, Optional

from signsmith.src.app_store_connect.models import Certificate, Profile, utc_now

EXPIRY_WARNING_DAYS = 30


def validate_profile(
    profile: Profile,
    certificates: List[Certificate],
    now: Optional[datetime] = None,
) -> List[str]:
    """Return the reasons a profile should not be used, empty when it is fine"""
    now = now or utc_now()
    problems = []

    if profile.expiration_date is not None:
        if profile.expiration_date <= now:
            problems.append("expired")
        elif profile.expiration_date <= now + timedelta(days=EXPIRY_WARNING_DAYS):
            problems.append(f"expires within {EXPIRY_WARNING_DAYS} days")

    if profile.profile_state and profile.profile_state != "ACTIVE":
        problems.append(f"state is {profile.profile_state}")

    by_id: Dict[str, Certificate] = {c.id: c for c in certificates}
    for certificate_id in profile.certificate_ids:
        certificate = by_id.get(certificate_id)
        if certificate is None:
            problems.append(f"certificate {certificate_id} no longer exists")
        elif certificate.is_expired(now):
            problems.append(f"certificate {certificate_id} is expired")

    return problems
