from signsmith.logger import get_console
from signsmith.src.app_store_connect.models import BundleId

console = get_console()


def ensure_bundle_id(api, identifier: str, platform: str = "IOS") -> BundleId:
    """Return the bundle ID resource for identifier, registering it when missing"""
    for bundle_id in api.fetch_bundle_ids(identifier):
        if bundle_id.identifier == identifier:
            return bundle_id

    bundle_id = api.create_bundle_id(identifier, platform=platform)
    console.print(f"[green]Registered bundle ID {identifier}")
    return bundle_id
