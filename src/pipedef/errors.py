# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

# Process exit codes:
#   1 => the pipeline is invalid (or an evaluated plan failed)
#   2 => bad invocation or configuration
#   3 => input could not be read or parsed as YAML
EXIT_INVALID = 1
EXIT_USAGE = 2
EXIT_UNREADABLE = 3

ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single finding about a pipeline document.

    `pointer` is a JSON pointer into the document (e.g. /stages/0/jobs/1),
    so findings line up with the rows printed by `pipedef flatten`.
    """
    severity: str
    code: str
    pointer: str
    message: str

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR

    def __str__(self) -> str:
        where = self.pointer or "/"
        return f"{self.severity}[{self.code}] {where}: {self.message}"


class PipedefError(Exception):
    """Base class for every error raised by pipedef."""
    exit_code = EXIT_INVALID


class PipelineLoadError(PipedefError):
    """The document could not be read or is not a YAML mapping."""
    exit_code = EXIT_UNREADABLE

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Could not load pipeline from {source}: {reason}")


@dataclass
class SchemaError(PipedefError):
    """The document parsed as YAML but does not match the pipeline schema."""
    source: str
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def __str__(self) -> str:
        lines = [f"{self.source}: {len(self.diagnostics)} schema error(s)"]
        lines.extend(f"  {d}" for d in self.diagnostics)
        return "\n".join(lines)


class TemplateRefError(PipedefError, ValueError):
    """A `template:` value is not of the form <path>@<repository-alias>."""

    def __init__(self, ref: str, reason: str):
        self.ref = ref
        self.reason = reason
        super().__init__(f"Invalid template reference {ref!r}: {reason}")


class TemplateDeclarationError(PipedefError):
    """A local template file has a malformed `parameters` section."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid template declaration in {path}: {reason}")


class ConfigError(PipedefError):
    exit_code = EXIT_USAGE


def pointer(*parts: object) -> str:
    """Build a JSON pointer (RFC 6901) from path segments."""
    escaped = (str(p).replace("~", "~0").replace("/", "~1") for p in parts)
    return "".join("/" + p for p in escaped)
