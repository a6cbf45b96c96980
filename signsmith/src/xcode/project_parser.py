import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Optional, Union

from signsmith.src.errors import ProjectFileError
from signsmith.src.xcode.pbxproj import BuildConfiguration, PBXProjectFile, Target

_VARIABLE_RE = re.compile(r"\$[({]([A-Za-z0-9_]+)(?::[^)}]*)?[)}]")


def resolve_setting(
    value: Optional[str],
    settings: Dict[str, object],
    fallback: Optional[Dict[str, object]] = None,
) -> Optional[str]:
    """Expand $(VAR) and ${VAR} references using the configuration's own build settings"""
    if not isinstance(value, str):
        return value
    fallback = fallback or {}

    def lookup(match):
        name = match.group(1)
        replacement = settings.get(name, fallback.get(name))
        if isinstance(replacement, str):
            return replacement
        return match.group(0)

    # nested references resolve over a few passes
    for _ in range(5):
        expanded = _VARIABLE_RE.sub(lookup, value)
        if expanded == value:
            break
        value = expanded
    return value


def project_settings(project: PBXProjectFile, configuration_name: str) -> dict:
    for configuration in project.project_configurations():
        if configuration.name == configuration_name:
            return configuration.settings
    return {}


def configuration_bundle_id(project: PBXProjectFile, configuration: BuildConfiguration) -> Optional[str]:
    return resolve_setting(
        configuration.settings.get("PRODUCT_BUNDLE_IDENTIFIER"),
        configuration.settings,
        project_settings(project, configuration.name),
    )


def targets_for_bundle_id(project: PBXProjectFile, bundle_id: str) -> List[Target]:
    matches = []
    for target in project.native_targets():
        for configuration in target.configurations:
            if configuration_bundle_id(project, configuration) == bundle_id:
                matches.append(target)
                break
    return matches


def project_contains_bundle_id(project_path: Union[str, Path], bundle_id: str) -> bool:
    try:
        project = PBXProjectFile.load(project_path)
    except (ProjectFileError, OSError, UnicodeDecodeError):
        return False
    return bool(targets_for_bundle_id(project, bundle_id))


def workspace_projects(workspace_path: Union[str, Path]) -> List[Path]:
    """Projects referenced from a .xcworkspace"""
    workspace_path = Path(workspace_path)
    contents = workspace_path / "contents.xcworkspacedata"
    if not contents.is_file():
        return []

    try:
        tree = ET.parse(contents)
    except ET.ParseError as e:
        raise ProjectFileError(f"Invalid workspace {workspace_path}: {e}")

    projects = []
    for ref in tree.iter("FileRef"):
        location = ref.get("location", "")
        kind, _, relative = location.partition(":")
        if not relative.endswith(".xcodeproj"):
            continue
        if kind == "absolute":
            path = Path(relative)
        else:
            path = workspace_path.parent / relative
        if path.is_dir():
            projects.append(path)
    return projects


def list_targets(project_path: Union[str, Path], configuration_name: str = "Release") -> List[dict]:
    """Signing related settings of every native target"""
    project = PBXProjectFile.load(project_path)
    targets = []
    for target in project.native_targets():
        configuration = target.configuration(configuration_name) or (
            target.configurations[0] if target.configurations else None
        )
        settings = configuration.settings if configuration else {}
        targets.append(
            {
                "name": target.name,
                "bundle_id": configuration_bundle_id(project, configuration) if configuration else None,
                "signing_style": settings.get("CODE_SIGN_STYLE"),
                "team_id": settings.get("DEVELOPMENT_TEAM"),
                "profile_specifier": settings.get("PROVISIONING_PROFILE_SPECIFIER"),
                "profile_uuid": settings.get("PROVISIONING_PROFILE"),
                "code_sign_identity": settings.get("CODE_SIGN_IDENTITY"),
            }
        )
    return targets
