# schema.py
"""
Wire schema for pipeline documents.

These pydantic models mirror the YAML keys exactly (camelCase aliases) and
only enforce shape. Cross-references between stages, jobs and repositories
are checked afterwards by `pipedef.validate`.
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ERROR, Diagnostic, pointer
from .model import ENDPOINT_REQUIRED, Pipeline, Repository, Stage, TemplateJob, TemplateRef

STAGE_ID_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"

KNOWN_TOP_LEVEL_KEYS = ("stages", "resources", "name", "trigger", "pr", "variables")


def _one_or_many(value: Any) -> Any:
    return [value] if isinstance(value, str) else value


# `dependsOn: a` is shorthand for `dependsOn: [a]`.
DependsOn = Annotated[Optional[List[str]], BeforeValidator(_one_or_many)]


# -------------------- Schemas --------------------

class TemplateJobSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    template: str
    parameters: Optional[Dict[str, Any]] = None

    @field_validator("template")
    @classmethod
    def _parse_ref(cls, v: str) -> str:
        TemplateRef.parse(v)  # raises TemplateRefError (a ValueError)
        return v


class StageSchema(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    stage: str = Field(pattern=STAGE_ID_PATTERN)
    display_name: Optional[str] = Field(default=None, alias="displayName")
    jobs: List[TemplateJobSchema]
    depends_on: DependsOn = Field(default=None, alias="dependsOn")
    condition: Optional[str] = None


class RepositorySchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    repository: str = Field(min_length=1)
    type: Literal["github", "githubenterprise", "bitbucket", "git"]
    name: str = Field(min_length=1)
    endpoint: Optional[str] = None
    ref: Optional[str] = None

    @model_validator(mode="after")
    def _hosted_repos(self) -> RepositorySchema:
        if self.type in ENDPOINT_REQUIRED:
            if not self.endpoint:
                raise ValueError(f"repository {self.repository!r} of type {self.type!r} needs an endpoint")
            owner, _, repo = self.name.partition("/")
            if not owner or not repo or "/" in repo:
                raise ValueError(f"repository name {self.name!r} must look like <owner>/<repo>")
        return self


class ResourcesSchema(BaseModel):
    # Other resource kinds (pipelines, containers, ...) are passed through.
    model_config = ConfigDict(extra="allow")

    repositories: List[RepositorySchema] = Field(default_factory=list)


class PipelineSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    stages: List[StageSchema] = Field(min_length=1)
    resources: ResourcesSchema
    name: Optional[str] = None
    trigger: Any = None
    pr: Any = None
    variables: Any = None


# -------------------- Conversion --------------------

def _depends_on(value: Optional[List[str]]) -> Optional[Tuple[str, ...]]:
    return tuple(value) if value is not None else None


def to_model(doc: PipelineSchema, source: Optional[str] = None) -> Pipeline:
    stages = [
        Stage(
            name=s.stage,
            display_name=s.display_name,
            jobs=tuple(
                TemplateJob(template=TemplateRef.parse(j.template), parameters=dict(j.parameters or {}))
                for j in s.jobs
            ),
            depends_on=_depends_on(s.depends_on),
            condition=s.condition,
        )
        for s in doc.stages
    ]
    repos = [
        Repository(alias=r.repository, type=r.type, name=r.name, endpoint=r.endpoint, ref=r.ref)
        for r in doc.resources.repositories
    ]
    return Pipeline(stages=stages, repositories=repos, source=source, name=doc.name)


def diagnostics_from(exc: ValidationError) -> List[Diagnostic]:
    """Turn pydantic errors into located schema diagnostics."""
    out: List[Diagnostic] = []
    for err in exc.errors():
        msg = err.get("msg", "invalid value")
        if err.get("type") == "missing":
            msg = f"required key {err['loc'][-1]!r} is missing"
            loc = err["loc"][:-1]
        else:
            loc = err["loc"]
        out.append(Diagnostic(severity=ERROR, code="schema", pointer=pointer(*loc), message=msg))
    return out
