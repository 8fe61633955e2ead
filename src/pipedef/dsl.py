# dsl.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from .model import REPOSITORY_TYPES, Pipeline, Repository, Stage, TemplateJob, TemplateRef


# ---------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------

def repository(
    alias: str,
    name: str,
    *,
    endpoint: Optional[str] = None,
    type: str = "github",
    ref: Optional[str] = None,
) -> Repository:
    """Declare a repository that templates resolve against."""
    if type not in REPOSITORY_TYPES:
        raise ValueError(f"repository({alias!r}): unknown type {type!r}, expected one of {REPOSITORY_TYPES}")
    return Repository(alias=alias, type=type, name=name, endpoint=endpoint, ref=ref)


def template_job(ref: Union[str, TemplateRef], **parameters: Any) -> TemplateJob:
    """A job that runs `ref` ("path@alias") with the given parameters."""
    if isinstance(ref, str):
        ref = TemplateRef.parse(ref)
    return TemplateJob(template=ref, parameters=dict(parameters))


def stage(
    name: str,
    *jobs: TemplateJob,
    display_name: Optional[str] = None,
    depends_on: Optional[Sequence[str]] = None,
    condition: Optional[str] = None,
) -> Stage:
    if not jobs:
        raise ValueError(f"stage({name!r}) must have at least one job")
    return Stage(
        name=name,
        display_name=display_name,
        jobs=tuple(jobs),
        depends_on=tuple(depends_on) if depends_on is not None else None,
        condition=condition,
    )


def pipeline(*stages: Stage, repositories: Iterable[Repository] = (), name: Optional[str] = None) -> Pipeline:
    return Pipeline(stages=list(stages), repositories=list(repositories), name=name)


class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("rust", ["stable", "nightly"]).jobs(
            lambda v: template_job("rust/test.yml@templates", rust=v, id=v)
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def jobs(self, builder: Callable[[Any], TemplateJob]) -> List[TemplateJob]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


# ---------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------

def _stage_dict(s: Stage) -> Dict[str, Any]:
    out: Dict[str, Any] = {"stage": s.name}
    if s.display_name is not None:
        out["displayName"] = s.display_name
    if s.depends_on is not None:
        out["dependsOn"] = list(s.depends_on)
    if s.condition is not None:
        out["condition"] = s.condition
    jobs = []
    for j in s.jobs:
        entry: Dict[str, Any] = {"template": str(j.template)}
        if j.parameters:
            entry["parameters"] = dict(j.parameters)
        jobs.append(entry)
    out["jobs"] = jobs
    return out


def _repository_dict(r: Repository) -> Dict[str, Any]:
    out = {"repository": r.alias, "type": r.type, "name": r.name}
    if r.endpoint is not None:
        out["endpoint"] = r.endpoint
    if r.ref is not None:
        out["ref"] = r.ref
    return out


def to_dict(p: Pipeline) -> Dict[str, Any]:
    """Convert a pipeline back into the document schema (key order preserved)."""
    out: Dict[str, Any] = {}
    if p.name is not None:
        out["name"] = p.name
    out["stages"] = [_stage_dict(s) for s in p.stages]
    out["resources"] = {"repositories": [_repository_dict(r) for r in p.repositories]}
    return out


def to_yaml(p: Pipeline) -> str:
    return yaml.safe_dump(to_dict(p), sort_keys=False, default_flow_style=False)


# ---------------------------------------------------------------------
# Authoring files
# ---------------------------------------------------------------------

def load_authoring_file(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a python file path.

    The file must define either:
      - pipeline() -> Pipeline
      - PIPELINE = Pipeline(...)
    """
    src = Path(path).expanduser().resolve()
    if not src.exists():
        raise FileNotFoundError(f"Authoring file not found: {src}")
    if src.suffix != ".py":
        raise ValueError(f"Authoring file must be a .py file, got: {src.name}")

    globals_dict = runpy.run_path(str(src), run_name=f"pipedef_authoring_{src.stem}")

    result = None
    if "pipeline" in globals_dict and callable(globals_dict["pipeline"]) and globals_dict["pipeline"] is not pipeline:
        result = globals_dict["pipeline"]()
    elif "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]

    if not isinstance(result, Pipeline):
        raise TypeError(
            "Authoring file must define pipeline() -> Pipeline or PIPELINE = Pipeline. "
            "Import the helper under another name if you need it: `from pipedef.dsl import pipeline as pl`."
        )
    result.source = str(src)
    return result
