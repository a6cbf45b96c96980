import copy
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from signsmith.src.errors import ProjectFileError

# Strings made only of these characters are written without quotes, like Xcode does
_BARE_RE = re.compile(r"^[A-Za-z0-9_$/:.]+$")
_BARE_TOKEN_RE = re.compile(r"[^\s;,=(){}\"']+")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}


def pbxproj_path(project_path: Union[str, Path]) -> Path:
    """Accept either the .xcodeproj bundle or the project.pbxproj file inside it"""
    path = Path(project_path)
    if path.suffix == ".xcodeproj" or path.is_dir():
        path = path / "project.pbxproj"
    if not path.is_file():
        raise ProjectFileError(f"Project file not found: {path}")
    return path


class _Parser:
    """Parser for the old-style (OpenStep) plist text Xcode writes"""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.spans: Dict[int, Tuple[int, int]] = {}

    def error(self, message: str) -> ProjectFileError:
        line = self.text.count("\n", 0, self.pos) + 1
        return ProjectFileError(f"Malformed project file at line {line}: {message}")

    def skip(self) -> None:
        text = self.text
        while self.pos < len(text):
            char = text[self.pos]
            if char.isspace():
                self.pos += 1
            elif text.startswith("/*", self.pos):
                end = text.find("*/", self.pos + 2)
                if end < 0:
                    raise self.error("unterminated comment")
                self.pos = end + 2
            elif text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                self.pos = len(text) if end < 0 else end + 1
            else:
                break

    def expect(self, char: str) -> None:
        self.skip()
        if self.text[self.pos : self.pos + 1] != char:
            raise self.error(f"expected '{char}'")
        self.pos += 1

    def parse(self) -> dict:
        value = self.parse_value()
        if not isinstance(value, dict):
            raise self.error("root object is not a dictionary")
        return value

    def parse_value(self):
        self.skip()
        if self.pos >= len(self.text):
            raise self.error("unexpected end of file")
        char = self.text[self.pos]
        if char == "{":
            return self.parse_dict()
        if char == "(":
            return self.parse_array()
        return self.parse_string()

    def parse_dict(self) -> dict:
        start = self.pos
        self.pos += 1
        result = {}
        while True:
            self.skip()
            if self.text[self.pos : self.pos + 1] == "}":
                self.pos += 1
                break
            key = self.parse_string()
            self.expect("=")
            result[key] = self.parse_value()
            self.expect(";")
        self.spans[id(result)] = (start, self.pos)
        return result

    def parse_array(self) -> list:
        self.pos += 1
        items = []
        while True:
            self.skip()
            if self.text[self.pos : self.pos + 1] == ")":
                self.pos += 1
                return items
            items.append(self.parse_value())
            self.skip()
            if self.text[self.pos : self.pos + 1] == ",":
                self.pos += 1
            elif self.text[self.pos : self.pos + 1] != ")":
                raise self.error("expected ',' or ')'")

    def parse_string(self) -> str:
        self.skip()
        quote = self.text[self.pos : self.pos + 1]
        if quote in ('"', "'"):
            return self.parse_quoted(quote)
        match = _BARE_TOKEN_RE.match(self.text, self.pos)
        if not match:
            raise self.error("expected a string")
        self.pos = match.end()
        return match.group(0)

    def parse_quoted(self, quote: str) -> str:
        self.pos += 1
        chars = []
        text = self.text
        while self.pos < len(text):
            char = text[self.pos]
            if char == quote:
                self.pos += 1
                return "".join(chars)
            if char == "\\":
                escaped = text[self.pos + 1 : self.pos + 2]
                if escaped == "U":
                    chars.append(chr(int(text[self.pos + 2 : self.pos + 6], 16)))
                    self.pos += 6
                    continue
                chars.append(_ESCAPES.get(escaped, escaped))
                self.pos += 2
                continue
            chars.append(char)
            self.pos += 1
        raise self.error("unterminated string")


def quote_value(value: str) -> str:
    if value and _BARE_RE.match(value):
        return value
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def serialize_value(value, indent: str, newline: str) -> str:
    if isinstance(value, dict):
        lines = ["{"]
        for key in sorted(value):
            item = serialize_value(value[key], indent + "\t", newline)
            lines.append(f"{indent}\t{quote_value(key)} = {item};")
        lines.append(f"{indent}}}")
        return newline.join(lines)
    if isinstance(value, list):
        lines = ["("]
        inner = indent + "\t"
        for item in value:
            lines.append(f"{inner}{serialize_value(item, inner, newline)},")
        lines.append(f"{indent})")
        return newline.join(lines)
    return quote_value(str(value))


@dataclass
class BuildConfiguration:
    object_id: str
    name: str
    settings: dict
    span: Tuple[int, int]
    indent: str
    original: dict = field(repr=False, default_factory=dict)

    @property
    def dirty(self) -> bool:
        return self.settings != self.original


@dataclass
class Target:
    object_id: str
    name: str
    product_type: Optional[str]
    configurations: List[BuildConfiguration]

    def configuration(self, name: str) -> Optional[BuildConfiguration]:
        for configuration in self.configurations:
            if configuration.name == name:
                return configuration
        return None


class PBXProjectFile:
    """A parsed project.pbxproj.

    Edits are made on the buildSettings dictionaries of the configurations. Saving
    re-emits only the buildSettings blocks that changed and keeps the rest of the
    file byte for byte.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = pbxproj_path(path)
        self.reload()

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PBXProjectFile":
        return cls(path)

    def reload(self) -> None:
        with open(self.path, encoding="utf-8", newline="") as f:
            self.text = f.read()
        parser = _Parser(self.text)
        self.root = parser.parse()
        self._spans = parser.spans
        self.objects: Dict[str, dict] = self.root.get("objects", {})
        self._configurations: Dict[str, BuildConfiguration] = {}

    @property
    def newline(self) -> str:
        return "\r\n" if "\r\n" in self.text else "\n"

    def _indent_at(self, offset: int) -> str:
        line_start = self.text.rfind("\n", 0, offset) + 1
        line = self.text[line_start:offset]
        return line[: len(line) - len(line.lstrip())]

    def _configuration(self, object_id: str) -> Optional[BuildConfiguration]:
        if object_id in self._configurations:
            return self._configurations[object_id]
        obj = self.objects.get(object_id)
        if not obj or obj.get("isa") != "XCBuildConfiguration":
            return None
        settings = obj.setdefault("buildSettings", {})
        span = self._spans.get(id(settings))
        if span is None:
            raise ProjectFileError(f"Configuration {object_id} has no buildSettings block")
        configuration = BuildConfiguration(
            object_id=object_id,
            name=obj.get("name", ""),
            settings=settings,
            span=span,
            indent=self._indent_at(span[0]),
            original=copy.deepcopy(settings),
        )
        self._configurations[object_id] = configuration
        return configuration

    def _configurations_of(self, obj: dict) -> List[BuildConfiguration]:
        config_list = self.objects.get(obj.get("buildConfigurationList", ""), {})
        configurations = []
        for config_id in config_list.get("buildConfigurations", []):
            configuration = self._configuration(config_id)
            if configuration is not None:
                configurations.append(configuration)
        return configurations

    def native_targets(self) -> List[Target]:
        targets = []
        for object_id, obj in self.objects.items():
            if not isinstance(obj, dict) or obj.get("isa") != "PBXNativeTarget":
                continue
            targets.append(
                Target(
                    object_id=object_id,
                    name=obj.get("name", ""),
                    product_type=obj.get("productType"),
                    configurations=self._configurations_of(obj),
                )
            )
        return targets

    def project_configurations(self) -> List[BuildConfiguration]:
        project = self.objects.get(self.root.get("rootObject", ""), {})
        return self._configurations_of(project)

    def save(self) -> int:
        """Write changed configurations back, returns how many were rewritten"""
        dirty = [c for c in self._configurations.values() if c.dirty]
        if not dirty:
            return 0

        text = self.text
        for configuration in sorted(dirty, key=lambda c: c.span[0], reverse=True):
            start, end = configuration.span
            block = serialize_value(configuration.settings, configuration.indent, self.newline)
            text = text[:start] + block + text[end:]

        with open(self.path, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        self.reload()
        return len(dirty)
