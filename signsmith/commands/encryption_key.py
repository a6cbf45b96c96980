import os
import shutil
import subprocess

from signsmith.commands.common import build_secret_store, console, handle_errors
from signsmith.src.app_store_connect.credentials import ISSUER_ID_ENV
from signsmith.src.certificates.certificate_manager import ENCRYPTION_KEY_ENV
from signsmith.src.errors import LocalStoreError, MissingCredentialError
from signsmith.src.utils.config_loader import get_setting
from signsmith.src.utils.environment import is_ci


def copy_to_clipboard(text: str) -> bool:
    for command in (["pbcopy"], ["xclip", "-selection", "clipboard"], ["wl-copy"]):
        if shutil.which(command[0]):
            result = subprocess.run(command, input=text, text=True, capture_output=True)
            return result.returncode == 0
    return False


@handle_errors
def run_encryption_key_command(args):
    if is_ci():
        raise LocalStoreError(
            "The encryption key can't be read on CI",
            f"Run this command on the Mac that created the certificate and store the key in {ENCRYPTION_KEY_ENV}.",
        )

    issuer_id = args.issuer_id or get_setting("app_store_connect", "issuer_id", ISSUER_ID_ENV)
    if not issuer_id:
        raise MissingCredentialError(
            "Missing App Store Connect Issuer ID.",
            f"Set {ISSUER_ID_ENV} environment variable or pass --issuer-id.",
        )

    key = build_secret_store(args).retrieve_encryption_key(issuer_id) or os.environ.get(
        ENCRYPTION_KEY_ENV
    )
    if not key:
        raise LocalStoreError(
            f"No certificate encryption key stored for issuer {issuer_id}",
            "Run `signsmith ensure-certificates` first to create the certificate and its key.",
        )

    if args.show:
        print(key)
        return 0

    if copy_to_clipboard(key):
        console.print(
            f"[green]Encryption key copied to the clipboard. Add it to CI as {ENCRYPTION_KEY_ENV}."
        )
        return 0

    raise LocalStoreError(
        "No clipboard tool available", "Run again with --show to print the key."
    )
