from signsmith.arguments import PROFILE_TYPE_CHOICES
from signsmith.commands.common import (
    build_api,
    build_keychain,
    build_storage,
    certificate_name,
    handle_errors,
    print_result,
    resolve_credentials,
    write_result,
)
from signsmith.src.certificates.certificate_selector import CertificateSelector
from signsmith.src.profiles.profile_downloader import ProfileDownloader
from signsmith.src.profiles.profile_manager import ProfileManager
from signsmith.src.xcode.project_detector import ProjectDetector, resolve_project_path


@handle_errors
def run_ensure_profile_command(args):
    credentials = resolve_credentials(args)
    api = build_api(credentials)

    project_path = None
    if args.project_path and not args.skip_project_update:
        project_path = resolve_project_path(args.project_path, args.bundle_id)

    manager = ProfileManager(
        api=api,
        certificate_selector=CertificateSelector(
            build_keychain(args), build_storage(args), certificate_name(args)
        ),
        downloader=ProfileDownloader(api, args.profiles_dir),
        detector=None if args.skip_project_update else ProjectDetector(args.project_root),
    )

    result = manager.ensure_profile(
        args.bundle_id,
        profile_type=PROFILE_TYPE_CHOICES[args.profile_type],
        certificate_id=args.certificate_id,
        profile_name=args.profile_name,
        project_path=project_path,
    ).to_dict()

    print_result("Provisioning profile", result)
    write_result(args, result)
    return 0
