import json

from signsmith.commands.common import console, handle_errors
from signsmith.src.errors import ProjectFileError
from signsmith.src.xcode.project_detector import ProjectDetector, resolve_project_path
from signsmith.src.xcode.raw_patcher import RawProjectPatcher
from signsmith.src.xcode.signing_updater import apply_signing


def load_values(args) -> dict:
    """Merge a saved ensure-profile result with the values given on the command line"""
    values = {}
    if args.from_json:
        with open(args.from_json) as f:
            values.update(json.load(f))

    overrides = {
        "project_path": str(args.project_path) if args.project_path else None,
        "bundle_id": args.bundle_id,
        "team_id": args.team_id,
        "uuid": args.profile_uuid,
        "code_sign_identity": args.code_sign_identity,
    }
    values.update({k: v for k, v in overrides.items() if v})
    return values


@handle_errors
def run_patch_project_command(args):
    values = load_values(args)
    bundle_id = values.get("bundle_id")
    uuid = values.get("uuid")
    if not uuid:
        raise ProjectFileError("No provisioning profile UUID given", "Pass --profile-uuid or --from-json.")

    project_path = values.get("project_path")
    if project_path:
        project_path = resolve_project_path(project_path, bundle_id) if bundle_id else project_path
    elif bundle_id:
        project_path = ProjectDetector(args.project_root).find_project_with_bundle_id(bundle_id)
    else:
        raise ProjectFileError("No project to patch", "Pass --project-path or --bundle-id.")

    if args.raw_only or not bundle_id:
        patcher = RawProjectPatcher(project_path)
        reports = [patcher.set_value("PROVISIONING_PROFILE", uuid)]
        if values.get("team_id"):
            reports.append(patcher.set_value("DEVELOPMENT_TEAM", values["team_id"]))
        reports.append(patcher.remove_key("PROVISIONING_PROFILE_SPECIFIER"))
    else:
        reports = list(
            apply_signing(
                project_path,
                bundle_id,
                uuid,
                values.get("team_id"),
                values.get("code_sign_identity"),
            ).raw_patches.values()
        )

    for report in reports:
        for line, old, new in report.occurrences:
            action = "removed" if new is None else f"{old!r} -> {new!r}"
            console.print(f"  {report.key} line {line}: {action}")
    console.print(f"[green]Project {project_path} is up to date")
    return 0
