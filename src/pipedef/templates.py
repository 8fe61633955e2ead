# templates.py
"""
Local declarations of template parameters.

Remote templates are never fetched. When a copy of a template file is
available locally its `parameters` section is used to check the values a
pipeline passes; otherwise the template is reported as unverifiable.

Lookup layout:
    self templates        -> <pipeline dir>/<path>
    repository templates  -> <templates_dir>/<repository name>/<path>
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from .errors import TemplateDeclarationError
from .model import SELF_ALIAS, Repository, TemplateRef

PARAMETER_TYPES = ("string", "number", "boolean", "object", "stringList")

# Structural parameter types accept any YAML value here.
_OBJECT_LIKE = (
    "step", "stepList", "job", "jobList",
    "deployment", "deploymentList", "stage", "stageList",
)

_MISSING = object()


@dataclass(frozen=True)
class TemplateParameter:
    name: str
    type: str = "object"
    default: Any = _MISSING
    values: Optional[Tuple[Any, ...]] = None

    @property
    def required(self) -> bool:
        return self.default is _MISSING

    def accepts(self, value: Any) -> bool:
        """True if value matches the declared type."""
        if self.type == "string":
            return isinstance(value, str)
        if self.type == "boolean":
            return isinstance(value, bool)
        if self.type == "number":
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self.type == "stringList":
            return isinstance(value, list) and all(isinstance(v, str) for v in value)
        return True


@dataclass(frozen=True)
class TemplateSchema:
    """Parameters a template declares, keyed by name."""
    location: str
    parameters: Dict[str, TemplateParameter] = field(default_factory=dict)

    @property
    def required(self) -> List[str]:
        return [p.name for p in self.parameters.values() if p.required]


def infer_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return "stringList"
    return "object"


def _parameter_from_entry(entry: Any, location: str) -> TemplateParameter:
    if not isinstance(entry, dict) or "name" not in entry:
        raise TemplateDeclarationError(location, f"parameter entry must be a mapping with a 'name': {entry!r}")

    ptype = entry.get("type", "string")
    if ptype in _OBJECT_LIKE:
        ptype = "object"
    if ptype not in PARAMETER_TYPES:
        raise TemplateDeclarationError(location, f"parameter {entry['name']!r} has unknown type {ptype!r}")

    values = entry.get("values")
    if values is not None and not isinstance(values, list):
        raise TemplateDeclarationError(location, f"'values' of parameter {entry['name']!r} must be a list")

    return TemplateParameter(
        name=str(entry["name"]),
        type=ptype,
        default=entry.get("default", _MISSING),
        values=tuple(values) if values is not None else None,
    )


def parse_declaration(data: Any, location: str) -> TemplateSchema:
    """
    Parse the `parameters` section of a template document.

    Accepts the list form:
        parameters:
          - name: rust
            type: string
            default: stable
    and the legacy mapping form, where each value is the default:
        parameters:
          rust: stable
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise TemplateDeclarationError(location, "template document must be a mapping")

    section = data.get("parameters") or []
    params: Dict[str, TemplateParameter] = {}

    if isinstance(section, list):
        for entry in section:
            p = _parameter_from_entry(entry, location)
            if p.name in params:
                raise TemplateDeclarationError(location, f"parameter {p.name!r} is declared twice")
            params[p.name] = p
    elif isinstance(section, dict):
        for name, default in section.items():
            params[str(name)] = TemplateParameter(name=str(name), type=infer_type(default), default=default)
    else:
        raise TemplateDeclarationError(location, "'parameters' must be a list or a mapping")

    return TemplateSchema(location=location, parameters=params)


def load_declaration(path: str | Path) -> TemplateSchema:
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise TemplateDeclarationError(str(p), f"invalid YAML: {e}") from e
    return parse_declaration(data, str(p))


class TemplateCatalog:
    """Resolves template references to local parameter declarations."""

    def __init__(self, templates_dir: str | Path | None = None, pipeline_dir: str | Path | None = None):
        self.templates_dir = Path(templates_dir).expanduser() if templates_dir else None
        self.pipeline_dir = Path(pipeline_dir) if pipeline_dir else None
        self._known: Dict[Tuple[str, str], Optional[TemplateSchema]] = {}

    @staticmethod
    def _key(ref: TemplateRef, repo: Optional[Repository]) -> Tuple[str, str]:
        owner = SELF_ALIAS if ref.is_self or repo is None else repo.name
        return owner, ref.path

    def register(self, repository_name: str, path: str, params: Sequence[TemplateParameter]) -> None:
        """Declare a template in memory (repository_name 'self' for local templates)."""
        location = f"{repository_name}:{path}"
        self._known[(repository_name, path)] = TemplateSchema(
            location=location,
            parameters={p.name: p for p in params},
        )

    def locate(self, ref: TemplateRef, repo: Optional[Repository]) -> Optional[Path]:
        if ref.is_self:
            base = self.pipeline_dir
        elif repo is not None and self.templates_dir is not None:
            base = self.templates_dir / repo.name
        else:
            base = None
        if base is None:
            return None
        candidate = base / ref.path.lstrip("/")
        return candidate if candidate.is_file() else None

    def lookup(self, ref: TemplateRef, repo: Optional[Repository]) -> Optional[TemplateSchema]:
        """Return the declaration for ref, or None when it cannot be verified locally."""
        key = self._key(ref, repo)
        if key not in self._known:
            path = self.locate(ref, repo)
            self._known[key] = load_declaration(path) if path is not None else None
        return self._known[key]
