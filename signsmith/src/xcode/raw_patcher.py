import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple, Union

from signsmith.logger import get_console
from signsmith.src.xcode.pbxproj import pbxproj_path, quote_value

console = get_console()


@dataclass
class PatchReport:
    key: str
    # (line number, old value, new value); new value is None for removed lines
    occurrences: List[Tuple[int, str, object]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.occurrences)

    @property
    def changed(self) -> bool:
        return bool(self.occurrences)


def _assignment_re(key: str):
    return re.compile(
        r"^(?P<lead>\s*)(?P<kq>[\"']?)(?P<key>"
        + re.escape(key)
        + r"(?:\[sdk=[^\]]*\])?)(?P=kq)\s*=\s*(?P<vq>[\"']?)(?P<value>[^\"';\r\n]*?)(?P=vq)(?P<end>\s*;)"
    )


class RawProjectPatcher:
    """Line based rewriting of build settings in project.pbxproj.

    Other build steps regenerate the project file and drop structured edits, so the
    signing values are also forced in with plain text substitution. Both plain keys and
    their [sdk=...] variants are handled, and running it again with the same values
    leaves the file untouched.
    """

    def __init__(self, project_path: Union[str, Path]):
        self.path = pbxproj_path(project_path)

    def _read_lines(self) -> List[str]:
        with open(self.path, encoding="utf-8", newline="") as f:
            return f.read().splitlines(keepends=True)

    def _write_lines(self, lines: List[str]) -> None:
        with open(self.path, "w", encoding="utf-8", newline="") as f:
            f.write("".join(lines))

    def set_value(self, key: str, value: str) -> PatchReport:
        pattern = _assignment_re(key)
        report = PatchReport(key)
        lines = self._read_lines()

        for index, line in enumerate(lines):
            match = pattern.match(line)
            if not match or match.group("value") == value:
                continue
            quote = match.group("vq")
            if quote:
                rendered = f"{quote}{value}{quote}"
            else:
                rendered = quote_value(value)
            lines[index] = line[: match.start("vq")] + rendered + line[match.start("end") :]
            report.occurrences.append((index + 1, match.group("value"), value))

        if report.changed:
            self._write_lines(lines)
            console.print(f"[green]Patched {report.count} {key} occurrence(s) in {self.path}")
        return report

    def remove_key(self, key: str) -> PatchReport:
        pattern = _assignment_re(key)
        report = PatchReport(key)
        kept = []

        for index, line in enumerate(self._read_lines()):
            match = pattern.match(line)
            if match:
                report.occurrences.append((index + 1, match.group("value"), None))
            else:
                kept.append(line)

        if report.changed:
            self._write_lines(kept)
            console.print(f"[green]Removed {report.count} {key} line(s) from {self.path}")
        return report
