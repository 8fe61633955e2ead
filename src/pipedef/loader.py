# loader.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .errors import WARNING, Diagnostic, PipelineLoadError, SchemaError, pointer
from .model import Pipeline
from .schema import KNOWN_TOP_LEVEL_KEYS, PipelineSchema, diagnostics_from, to_model

STDIN = "-"


# ----------------------------------------------------------------------
# Reading
# ----------------------------------------------------------------------

def read_text(source: str | Path) -> str:
    """Read a document from a file path, or from stdin when source is '-'."""
    if str(source) == STDIN:
        return sys.stdin.read()

    path = Path(source).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise PipelineLoadError(str(source), "file not found")
    except (OSError, UnicodeDecodeError) as e:
        raise PipelineLoadError(str(source), str(e)) from e


def source_name(source: str | Path) -> str:
    return "<stdin>" if str(source) == STDIN else str(source)


def load_document(source: str | Path, *, text: Optional[str] = None) -> Dict[str, Any]:
    """
    Load a single YAML pipeline document as a plain mapping.

    Raises:
        PipelineLoadError: unreadable input, YAML syntax errors, or a top level
            that is not a mapping.
    """
    name = source_name(source)
    if text is None:
        text = read_text(source)

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PipelineLoadError(name, f"invalid YAML: {e}") from e

    if data is None:
        raise PipelineLoadError(name, "document is empty")
    if not isinstance(data, dict):
        raise PipelineLoadError(name, f"top level must be a mapping, got {type(data).__name__}")
    return data


def iter_documents(source: str | Path) -> Iterator[Any]:
    """Yield every document of a (possibly multi-document) YAML stream."""
    name = source_name(source)
    text = read_text(source)
    try:
        yield from yaml.safe_load_all(text)
    except yaml.YAMLError as e:
        raise PipelineLoadError(name, f"invalid YAML: {e}") from e


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def parse_pipeline(raw: Dict[str, Any], source: Optional[str] = None) -> Tuple[Pipeline, List[Diagnostic]]:
    """
    Validate a raw mapping against the pipeline schema.

    Returns the pipeline plus non-fatal findings (unknown top-level keys).

    Raises:
        SchemaError: with one diagnostic per schema violation.
    """
    try:
        doc = PipelineSchema.model_validate(raw)
    except ValidationError as e:
        raise SchemaError(source=source or "<document>", diagnostics=diagnostics_from(e)) from e

    warnings = [
        Diagnostic(
            severity=WARNING,
            code="unknown-key",
            pointer=pointer(key),
            message=f"top-level key {key!r} is not part of the pipeline schema",
        )
        for key in raw
        if key not in KNOWN_TOP_LEVEL_KEYS
    ]
    return to_model(doc, source=source), warnings


def load_pipeline(source: str | Path) -> Pipeline:
    """Load and parse a pipeline document, ignoring non-fatal findings."""
    name = source_name(source)
    pipeline, _warnings = parse_pipeline(load_document(source), source=name)
    return pipeline
