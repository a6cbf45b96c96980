import json
from functools import wraps

from rich.table import Table

from signsmith.logger import get_console
from signsmith.src.app_store_connect.api import AppStoreConnectAPI
from signsmith.src.app_store_connect.credentials import CredentialResolver
from signsmith.src.certificates.keychain_helper import KeychainHelper
from signsmith.src.errors import SignsmithError
from signsmith.src.storage.certificate_storage import CertificateStorage
from signsmith.src.storage.secret_store import KeychainSecretStore
from signsmith.src.utils.config_loader import (
    get_certificate_name,
    get_keychain_name,
    get_keychain_password,
)

console = get_console()


def handle_errors(func):
    """Print SignsmithErrors nicely and turn them into exit code 1"""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SignsmithError as e:
            console.print(f"[red]Error: {e.message}")
            if e.remediation:
                console.print(f"[yellow]{e.remediation}")
            return 1

    return wrapper


def resolve_credentials(args):
    return CredentialResolver().get(
        key_id=args.key_id,
        issuer_id=args.issuer_id,
        key_content=args.key_content,
        key_file_path=str(args.key_file) if args.key_file else None,
    )


def build_api(credentials) -> AppStoreConnectAPI:
    return AppStoreConnectAPI(credentials)


def build_keychain(args) -> KeychainHelper:
    return KeychainHelper(
        keychain_name=getattr(args, "keychain_name", None) or get_keychain_name(),
        keychain_password=getattr(args, "keychain_password", None) or get_keychain_password(),
    )


def build_secret_store(args) -> KeychainSecretStore:
    return KeychainSecretStore(getattr(args, "keychain_name", None) or get_keychain_name())


def build_storage(args) -> CertificateStorage:
    return CertificateStorage(getattr(args, "project_root", None) or ".")


def certificate_name(args) -> str:
    return getattr(args, "certificate_name", None) or get_certificate_name()


def print_result(title: str, result: dict) -> None:
    table = Table(title=title)
    table.add_column("Key")
    table.add_column("Value")
    for key, value in result.items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


def write_result(args, result: dict) -> None:
    if not getattr(args, "output_json", None):
        return
    args.output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output_json, "w") as f:
        json.dump(result, f, indent=2)
    console.print(f"[green]Result written to {args.output_json}")
