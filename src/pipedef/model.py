# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from .errors import TemplateRefError

SELF_ALIAS = "self"

REPOSITORY_TYPES = ("github", "githubenterprise", "bitbucket", "git")
# Hosted repository types authenticate through a service connection.
ENDPOINT_REQUIRED = ("github", "githubenterprise", "bitbucket")


@dataclass(frozen=True)
class TemplateRef:
    """A parsed `<path>@<repository-alias>` reference."""
    path: str
    alias: str = SELF_ALIAS

    @property
    def is_self(self) -> bool:
        return self.alias == SELF_ALIAS

    @classmethod
    def parse(cls, ref: str) -> TemplateRef:
        text = (ref or "").strip()
        if not text:
            raise TemplateRefError(ref, "reference is empty")
        if text.count("@") > 1:
            raise TemplateRefError(ref, "more than one '@'")

        path, sep, alias = text.partition("@")
        if not path:
            raise TemplateRefError(ref, "template path is empty")
        if sep and not alias:
            raise TemplateRefError(ref, "repository alias after '@' is empty")
        return cls(path=path, alias=alias or SELF_ALIAS)

    def __str__(self) -> str:
        return self.path if self.is_self else f"{self.path}@{self.alias}"


@dataclass(frozen=True)
class Repository:
    """An external repository that template references resolve against."""
    alias: str
    type: str
    name: str
    endpoint: Optional[str] = None
    ref: Optional[str] = None


@dataclass(frozen=True)
class TemplateJob:
    """A job that points at an externally hosted, parameterized template."""
    template: TemplateRef
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def declared_id(self) -> Optional[str]:
        value = self.parameters.get("id")
        return str(value) if value is not None else None


@dataclass(frozen=True)
class Stage:
    """
    An ordered unit of pipeline execution.

    depends_on is None when the document leaves `dependsOn` out, which
    means "the previous stage" for every stage except the first.
    """
    name: str
    display_name: Optional[str] = None
    jobs: Tuple[TemplateJob, ...] = ()
    depends_on: Optional[Tuple[str, ...]] = None
    condition: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def job_ids(self) -> List[str]:
        """
        Job identifiers in document order.

        A job is named by its `id` parameter, else by its template file stem;
        derived names get a numeric suffix so they never collide.
        """
        explicit = {j.declared_id for j in self.jobs if j.declared_id}
        taken: set[str] = set()
        out: List[str] = []
        for j in self.jobs:
            jid = j.declared_id
            if jid is None:
                base = PurePosixPath(j.template.path).stem or "job"
                jid, n = base, 2
                while jid in taken or jid in explicit:
                    jid = f"{base}_{n}"
                    n += 1
            out.append(jid)
            taken.add(jid)
        return out


@dataclass
class Pipeline:
    stages: List[Stage]
    repositories: List[Repository] = field(default_factory=list)
    source: Optional[str] = None
    name: Optional[str] = None

    def stage(self, name: str) -> Stage:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(f"No stage named {name!r}. Known stages: {[s.name for s in self.stages]}")

    def repository(self, alias: str) -> Optional[Repository]:
        for repo in self.repositories:
            if repo.alias == alias:
                return repo
        return None

    def effective_dependencies(self) -> Dict[str, List[str]]:
        """Resolve implicit document-order dependencies to explicit stage names."""
        deps: Dict[str, List[str]] = {}
        previous: Optional[str] = None
        for s in self.stages:
            if s.depends_on is None:
                deps[s.name] = [previous] if previous not in (None, s.name) else []
            else:
                deps[s.name] = list(s.depends_on)
            previous = s.name
        return deps
