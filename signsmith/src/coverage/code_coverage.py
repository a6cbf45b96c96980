import json
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple, Union

from signsmith.src.errors import CoverageError

GENERATED_SUFFIX = ".generated.swift"


@dataclass
class CoverageConfig:
    targets: List[str]
    file_name_include: List[str] = field(default_factory=list)
    file_name_exclude: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "CoverageConfig":
        return cls(
            targets=list(data.get("targets") or []),
            file_name_include=[s.lower() for s in data.get("file_name_include") or []],
            file_name_exclude=[s.lower() for s in data.get("file_name_exclude") or []],
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CoverageConfig":
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def includes_file(self, file_name: str) -> bool:
        name = file_name.lower()
        if name.endswith(GENERATED_SUFFIX):
            return False
        if not any(part in name for part in self.file_name_include):
            return False
        return not any(part in name for part in self.file_name_exclude)


@dataclass
class CoverageResult:
    percentage: float
    files: List[Tuple[str, float]]

    @property
    def file_count(self) -> int:
        return len(self.files)


def load_report(path: Union[str, Path]) -> dict:
    """Read an xccov JSON report, or produce one from an .xcresult bundle"""
    path = Path(path)
    if path.suffix == ".xcresult":
        result = subprocess.run(
            ["xcrun", "xccov", "view", "--report", "--json", str(path)],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise CoverageError(f"xccov failed for {path}: {result.stderr.strip()}")
        return json.loads(result.stdout)

    with open(path) as f:
        return json.load(f)


def compute_coverage(report: dict, config: CoverageConfig) -> CoverageResult:
    files = []
    for target in report.get("targets", []):
        target_name = target.get("name", "").split(".")[0]
        if target_name not in config.targets:
            continue
        for file in target.get("files", []):
            name = file.get("name", "")
            if config.includes_file(name):
                files.append((name, float(file.get("lineCoverage", 0)) * 100))

    if not files:
        raise CoverageError(
            f"No files matched the coverage configuration for targets {', '.join(config.targets)}"
        )
    percentage = sum(coverage for _, coverage in files) / len(files)
    return CoverageResult(percentage=percentage, files=files)


def check_coverage(report: dict, config: CoverageConfig, minimum: float) -> CoverageResult:
    if not 0 <= minimum <= 100:
        raise CoverageError(f"Minimum coverage must be between 0 and 100, got {minimum}")
    result = compute_coverage(report, config)
    if result.percentage < minimum:
        raise CoverageError(
            f"Code coverage {result.percentage:.2f}% is below the minimum of {minimum}%"
        )
    return result
