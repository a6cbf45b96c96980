import os
from pathlib import Path
from typing import Iterator, List, Optional, Union

from signsmith.logger import debug, get_console
from signsmith.src.errors import ProjectFileError
from signsmith.src.xcode.project_parser import project_contains_bundle_id, workspace_projects

console = get_console()

MAX_DEPTH = 2
WALK_DEPTH = 4
SKIPPED_DIRS = {"Pods", "build", "DerivedData", "node_modules", "Carthage", "fastlane"}
FLUTTER_PROJECT = Path("ios") / "Runner.xcodeproj"


def _is_bundle(path: Path) -> bool:
    return path.suffix in (".xcodeproj", ".xcworkspace")


def _searchable(path: Path) -> bool:
    return (
        path.is_dir()
        and not path.name.startswith(".")
        and path.name not in SKIPPED_DIRS
        and not _is_bundle(path)
    )


class ProjectDetector:
    """Finds the Xcode project of an app checkout"""

    def __init__(self, root: Union[str, Path] = "."):
        self.root = Path(root)

    def detect(self) -> Optional[Path]:
        """Workspace or project of the app, Flutter layout first"""
        flutter = self.root / FLUTTER_PROJECT
        if flutter.is_dir():
            return flutter
        return self._search(self.root, 0)

    def _search(self, directory: Path, depth: int) -> Optional[Path]:
        workspaces = sorted(directory.glob("*.xcworkspace"))
        if workspaces:
            return workspaces[0]
        projects = sorted(directory.glob("*.xcodeproj"))
        if projects:
            return projects[0]
        if depth >= MAX_DEPTH:
            return None
        for child in sorted(directory.iterdir()):
            if _searchable(child):
                found = self._search(child, depth + 1)
                if found:
                    return found
        return None

    def _walk(self) -> Iterator[Path]:
        root_depth = len(self.root.resolve().parts)
        for dirpath, dirnames, _ in os.walk(self.root.resolve()):
            current = Path(dirpath)
            bundles = [current / d for d in dirnames if _is_bundle(Path(d))]
            yield from sorted(bundles)
            if len(current.parts) - root_depth >= WALK_DEPTH:
                dirnames[:] = []
            else:
                dirnames[:] = sorted(d for d in dirnames if _searchable(current / d))

    @staticmethod
    def _projects_of(path: Path) -> List[Path]:
        if path.suffix == ".xcworkspace":
            return workspace_projects(path)
        return [path]

    def find_project_with_bundle_id(self, bundle_id: str) -> Path:
        candidates = []
        detected = self.detect()
        if detected:
            candidates.append(detected)
        candidates.extend(self._walk())

        seen = set()
        for candidate in candidates:
            for project in self._projects_of(candidate):
                key = project.resolve()
                if key in seen:
                    continue
                seen.add(key)
                debug(f"Looking for {bundle_id} in {project}")
                if project_contains_bundle_id(project, bundle_id):
                    console.print(f"[green]Found {bundle_id} in {project}")
                    return project

        raise ProjectFileError(
            f"No Xcode project with a target using bundle identifier {bundle_id} found under {self.root}",
            "Pass the project path explicitly with --project-path.",
        )


def resolve_project_path(path: Union[str, Path], bundle_id: str) -> Path:
    """Turn a workspace into the project inside it that builds bundle_id"""
    path = Path(path)
    if path.suffix != ".xcworkspace":
        return path
    for project in workspace_projects(path):
        if project_contains_bundle_id(project, bundle_id):
            return project
    raise ProjectFileError(f"No project in {path} has a target using bundle identifier {bundle_id}")
