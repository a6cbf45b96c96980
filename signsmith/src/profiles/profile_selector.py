from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from signsmith.logger import get_console
from signsmith.src.app_store_connect.models import Certificate, Profile
from signsmith.src.profiles.profile_validator import validate_profile

console = get_console()

_NO_EXPIRY = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ProfileSelection:
    best: Optional[Profile] = None
    to_delete: List[Profile] = field(default_factory=list)

    @property
    def best_is_valid(self) -> bool:
        return self.best is not None


def select_best_profile(
    profiles: List[Profile],
    certificates: List[Certificate],
    now: Optional[datetime] = None,
) -> ProfileSelection:
    """Keep the valid profile that expires last, everything else gets deleted"""
    selection = ProfileSelection()
    valid = []

    for profile in profiles:
        problems = validate_profile(profile, certificates, now)
        if problems:
            console.print(f"[yellow]Profile '{profile.name}' is invalid: {', '.join(problems)}")
            selection.to_delete.append(profile)
        else:
            valid.append(profile)

    # ties on expiry go to the highest id so the result does not depend on input order
    valid.sort(key=lambda p: (p.expiration_date or _NO_EXPIRY, p.id), reverse=True)
    if valid:
        selection.best = valid[0]
        selection.to_delete.extend(valid[1:])

    return selection
