from signsmith.commands.common import (
    build_api,
    build_keychain,
    build_secret_store,
    build_storage,
    certificate_name,
    handle_errors,
    print_result,
    resolve_credentials,
    write_result,
)
from signsmith.logger import get_console
from signsmith.src.certificates.certificate_manager import (
    CertificateManager,
    code_sign_identity_for,
)

console = get_console()


@handle_errors
def run_ensure_certificates_command(args):
    credentials = resolve_credentials(args)
    manager = CertificateManager(
        api=build_api(credentials),
        storage=build_storage(args),
        keychain=build_keychain(args),
        secret_store=build_secret_store(args),
        issuer_id=credentials.issuer_id,
        certificate_name=certificate_name(args),
        encryption_key=args.encryption_key,
    )

    result = manager.ensure_certificate().to_dict()
    result["code_sign_identity"] = code_sign_identity_for(result.get("name"))

    print_result("Distribution certificate", result)
    write_result(args, result)
    return 0
