import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from signsmith.logger import get_console
from signsmith.src.errors import ProjectFileError
from signsmith.src.xcode.pbxproj import PBXProjectFile
from signsmith.src.xcode.project_parser import targets_for_bundle_id
from signsmith.src.xcode.raw_patcher import PatchReport, RawProjectPatcher

console = get_console()


def _variants(settings: dict, key: str) -> List[str]:
    pattern = re.compile(re.escape(key) + r"\[sdk=[^\]]*\]$")
    return [k for k in settings if pattern.match(k)]


def set_with_variants(settings: dict, key: str, value: str) -> None:
    settings[key] = value
    for variant in _variants(settings, key):
        settings[variant] = value


def remove_with_variants(settings: dict, key: str) -> None:
    settings.pop(key, None)
    for variant in _variants(settings, key):
        del settings[variant]


def _load_targets(project_path, bundle_id: str):
    project = PBXProjectFile.load(project_path)
    targets = targets_for_bundle_id(project, bundle_id)
    if not targets:
        raise ProjectFileError(
            f"No target with bundle identifier {bundle_id} in {project.path}"
        )
    return project, targets


def update_provisioning(
    project_path: Union[str, Path],
    bundle_id: str,
    profile_uuid: str,
    profile_specifier: Optional[str] = None,
) -> int:
    """Point the matching targets at a profile UUID, returns changed configurations"""
    project, targets = _load_targets(project_path, bundle_id)
    for target in targets:
        for configuration in target.configurations:
            set_with_variants(configuration.settings, "PROVISIONING_PROFILE", profile_uuid)
            if profile_specifier:
                set_with_variants(
                    configuration.settings, "PROVISIONING_PROFILE_SPECIFIER", profile_specifier
                )
            else:
                remove_with_variants(configuration.settings, "PROVISIONING_PROFILE_SPECIFIER")
    return project.save()


def update_signing(
    project_path: Union[str, Path],
    bundle_id: str,
    team_id: Optional[str] = None,
    code_sign_style: Optional[str] = "Manual",
    code_sign_identity: Optional[str] = None,
) -> int:
    """Set team, signing style and identity on the project and the matching targets"""
    project, targets = _load_targets(project_path, bundle_id)
    values = {
        "DEVELOPMENT_TEAM": team_id,
        "CODE_SIGN_STYLE": code_sign_style,
        "CODE_SIGN_IDENTITY": code_sign_identity,
    }
    configurations = list(project.project_configurations())
    for target in targets:
        configurations.extend(target.configurations)

    for configuration in configurations:
        for key, value in values.items():
            if value:
                set_with_variants(configuration.settings, key, value)
    return project.save()


@dataclass
class SigningReport:
    project_path: str
    structured_changes: int = 0
    raw_patches: Dict[str, PatchReport] = field(default_factory=dict)


def apply_signing(
    project_path: Union[str, Path],
    bundle_id: str,
    profile_uuid: str,
    team_id: Optional[str] = None,
    code_sign_identity: Optional[str] = None,
) -> SigningReport:
    """Wire a resolved profile into the project.

    The structured edit runs first, then the raw text patch forces the same values
    into every assignment in the file.
    """
    report = SigningReport(project_path=str(project_path))
    report.structured_changes += update_signing(
        project_path, bundle_id, team_id, "Manual", code_sign_identity
    )
    report.structured_changes += update_provisioning(project_path, bundle_id, profile_uuid)

    patcher = RawProjectPatcher(project_path)
    if team_id:
        report.raw_patches["DEVELOPMENT_TEAM"] = patcher.set_value("DEVELOPMENT_TEAM", team_id)
    report.raw_patches["PROVISIONING_PROFILE"] = patcher.set_value(
        "PROVISIONING_PROFILE", profile_uuid
    )
    report.raw_patches["PROVISIONING_PROFILE_SPECIFIER"] = patcher.remove_key(
        "PROVISIONING_PROFILE_SPECIFIER"
    )

    console.print(
        f"[green]Updated signing of {bundle_id} in {project_path} "
        f"({report.structured_changes} configuration(s) rewritten)"
    )
    return report
