import plistlib
import re
from pathlib import Path
from typing import Optional, Union

from asn1crypto.cms import ContentInfo

from signsmith.logger import debug, get_console
from signsmith.src.app_store_connect.models import Profile
from signsmith.src.errors import ProtocolError
from signsmith.src.utils.config_loader import get_profiles_dir

console = get_console()

_PLIST_RE = re.compile(rb"<\?xml.*?</plist>", re.DOTALL)


def read_profile_plist(data: bytes) -> dict:
    """Decode the plist inside a .mobileprovision without the security tool"""
    try:
        content_info = ContentInfo.load(data)
        plist_data = content_info["content"]["encap_content_info"]["content"].native
        return plistlib.loads(plist_data)
    except (ValueError, TypeError, KeyError, plistlib.InvalidFileException) as e:
        debug(f"Profile is not CMS wrapped ({e}), looking for an embedded plist")

    match = _PLIST_RE.search(data)
    if not match:
        raise ValueError("No plist found in provisioning profile")
    return plistlib.loads(match.group(0))


def profile_uuid(data: bytes) -> Optional[str]:
    try:
        return read_profile_plist(data).get("UUID")
    except (ValueError, plistlib.InvalidFileException):
        return None


class ProfileDownloader:
    """Downloads profiles into the directory Xcode reads them from"""

    def __init__(self, api, profiles_dir: Optional[Union[str, Path]] = None):
        self.api = api
        self.profiles_dir = Path(profiles_dir) if profiles_dir else get_profiles_dir()

    def installed_path(self, uuid: str) -> Path:
        return self.profiles_dir / f"{uuid}.mobileprovision"

    def is_installed(self, uuid: str) -> bool:
        path = self.installed_path(uuid)
        if not path.is_file():
            return False
        return profile_uuid(path.read_bytes()) == uuid

    def install(self, profile: Profile) -> Path:
        if profile.uuid and self.is_installed(profile.uuid):
            console.print(f"[green]Profile {profile.uuid} already installed")
            return self.installed_path(profile.uuid)

        content = self.api.download_profile(profile.id)
        uuid = profile.uuid or profile_uuid(content)
        if not uuid:
            raise ProtocolError(f"Could not read the UUID of profile {profile.id}")
        profile.uuid = uuid

        self.profiles_dir.mkdir(parents=True, exist_ok=True)
        path = self.installed_path(uuid)
        path.write_bytes(content)
        console.print(f"[green]Installed profile '{profile.name}' to {path}")
        return path
