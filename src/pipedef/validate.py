# validate.py
"""
Referential-integrity and parameter checks for a parsed pipeline.

Every rule runs to completion so one pass reports all findings.
"""
from __future__ import annotations

import shlex
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from .dag import build_stage_graph, find_cycle_nodes
from .errors import ERROR, WARNING, Diagnostic, SchemaError, pointer
from .loader import STDIN, load_document, parse_pipeline, source_name
from .model import Pipeline, Stage, TemplateJob
from .plan import argument_entries
from .templates import TemplateCatalog, TemplateSchema


@dataclass
class ValidationReport:
    source: str
    diagnostics: List[Diagnostic] = field(default_factory=list)
    pipeline: Optional[Pipeline] = None

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == WARNING]

    @property
    def ok(self) -> bool:
        return not self.errors

    def passed(self, strict: bool = False) -> bool:
        return self.ok and not (strict and self.warnings)

    def codes(self) -> List[str]:
        return [d.code for d in self.diagnostics]


def _err(code: str, where: str, message: str) -> Diagnostic:
    return Diagnostic(severity=ERROR, code=code, pointer=where, message=message)


def _warn(code: str, where: str, message: str) -> Diagnostic:
    return Diagnostic(severity=WARNING, code=code, pointer=where, message=message)


# ----------------------------------------------------------------------
# Rules
# ----------------------------------------------------------------------

def check_stages(pipeline: Pipeline) -> List[Diagnostic]:
    out: List[Diagnostic] = []
    counts = Counter(s.name for s in pipeline.stages)
    seen: set[str] = set()

    for i, s in enumerate(pipeline.stages):
        if s.name in seen:
            out.append(_err("duplicate-stage", pointer("stages", i, "stage"), f"stage id {s.name!r} is used more than once"))
        seen.add(s.name)

        if not s.jobs:
            out.append(_err("empty-stage", pointer("stages", i, "jobs"), f"stage {s.name!r} has no jobs"))

        for dep in s.depends_on or ():
            if dep not in counts:
                out.append(_err(
                    "unknown-stage-dependency",
                    pointer("stages", i, "dependsOn"),
                    f"stage {s.name!r} depends on unknown stage {dep!r}",
                ))

    # Cycle check over resolvable edges only; unknown names are reported above.
    deps = {
        name: [d for d in needs if d in counts]
        for name, needs in pipeline.effective_dependencies().items()
    }
    adj, indeg = build_stage_graph(deps)
    stuck = find_cycle_nodes(adj, indeg)
    if stuck:
        first = min(i for i, s in enumerate(pipeline.stages) if s.name in stuck)
        out.append(_err(
            "stage-cycle",
            pointer("stages", first, "dependsOn"),
            f"stage dependencies form a cycle through {stuck}",
        ))
    return out


def check_repositories(pipeline: Pipeline) -> List[Diagnostic]:
    out: List[Diagnostic] = []
    seen: set[str] = set()
    used = {
        j.template.alias
        for s in pipeline.stages
        for j in s.jobs
        if not j.template.is_self
    }

    for k, repo in enumerate(pipeline.repositories):
        where = pointer("resources", "repositories", k, "repository")
        if repo.alias in seen:
            out.append(_err("duplicate-repository", where, f"repository alias {repo.alias!r} is declared more than once"))
            continue
        seen.add(repo.alias)
        if repo.alias not in used:
            out.append(_warn("unused-repository", where, f"repository {repo.alias!r} is not referenced by any job"))
    return out


def check_job_ids(stage: Stage, index: int) -> List[Diagnostic]:
    out: List[Diagnostic] = []
    seen: set[str] = set()
    for j, jid in enumerate(stage.job_ids()):
        if jid in seen:
            out.append(_err(
                "duplicate-job",
                pointer("stages", index, "jobs", j, "parameters", "id"),
                f"job id {jid!r} is used more than once in stage {stage.name!r}",
            ))
        seen.add(jid)
    return out


def _is_plain_value(value: Any) -> bool:
    if value is None or isinstance(value, (str, int, float, bool)):
        return True
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def check_arguments(job: TemplateJob, where: str) -> List[Diagnostic]:
    """test_list entries must split like shell words."""
    out: List[Diagnostic] = []
    test_list = job.parameters.get("test_list")
    if not isinstance(test_list, (str, list)):
        return out
    for k, entry in enumerate(argument_entries(job)):
        try:
            shlex.split(entry)
        except ValueError as e:
            at = f"{where}/parameters/test_list" + ("" if isinstance(test_list, str) else f"/{k}")
            out.append(_err("parameter-value", at, f"test_list entry {entry!r} cannot be split into arguments: {e}"))
    return out


def check_parameters(job: TemplateJob, schema: Optional[TemplateSchema], where: str) -> List[Diagnostic]:
    out: List[Diagnostic] = check_arguments(job, where)

    if schema is None:
        out.append(_warn(
            "unverifiable-template",
            f"{where}/template",
            f"no local declaration for {job.template}; its parameters cannot be checked",
        ))
        for name, value in job.parameters.items():
            if not _is_plain_value(value):
                out.append(_warn(
                    "parameter-value",
                    f"{where}/parameters{pointer(name)}",
                    f"parameter {name!r} should be a scalar or a list of strings",
                ))
        return out

    for name, value in job.parameters.items():
        ppath = f"{where}/parameters{pointer(name)}"
        decl = schema.parameters.get(name)
        if decl is None:
            out.append(_err(
                "unknown-parameter",
                ppath,
                f"{job.template} does not declare parameter {name!r} (declared: {sorted(schema.parameters)})",
            ))
            continue
        if not decl.accepts(value):
            out.append(_err(
                "parameter-type",
                ppath,
                f"parameter {name!r} expects {decl.type}, got {type(value).__name__} {value!r}",
            ))
        elif decl.values is not None and value not in decl.values:
            out.append(_err(
                "parameter-choice",
                ppath,
                f"parameter {name!r} must be one of {list(decl.values)}, got {value!r}",
            ))

    for name in schema.required:
        if name not in job.parameters:
            out.append(_err(
                "missing-parameter",
                f"{where}/parameters",
                f"{job.template} requires parameter {name!r}",
            ))
    return out


def check_templates(pipeline: Pipeline, catalog: TemplateCatalog) -> List[Diagnostic]:
    out: List[Diagnostic] = []
    declared = {r.alias for r in pipeline.repositories}

    for i, s in enumerate(pipeline.stages):
        out.extend(check_job_ids(s, i))
        for j, job in enumerate(s.jobs):
            where = pointer("stages", i, "jobs", j)
            ref = job.template
            if not ref.is_self and ref.alias not in declared:
                out.append(_err(
                    "unresolved-repository",
                    f"{where}/template",
                    f"template {ref} uses repository alias {ref.alias!r}, which resources.repositories does not declare",
                ))
                continue
            schema = catalog.lookup(ref, pipeline.repository(ref.alias))
            out.extend(check_parameters(job, schema, where))
    return out


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def validate_pipeline(pipeline: Pipeline, catalog: Optional[TemplateCatalog] = None) -> ValidationReport:
    if catalog is None:
        pipeline_dir = None
        if pipeline.source and pipeline.source != "<stdin>":
            pipeline_dir = Path(pipeline.source).parent
        catalog = TemplateCatalog(pipeline_dir=pipeline_dir)

    diagnostics: List[Diagnostic] = []
    diagnostics.extend(check_stages(pipeline))
    diagnostics.extend(check_repositories(pipeline))
    diagnostics.extend(check_templates(pipeline, catalog))
    return ValidationReport(source=pipeline.source or "<document>", diagnostics=diagnostics, pipeline=pipeline)


def check(source: str | Path, catalog: Optional[TemplateCatalog] = None, templates_dir: str | Path | None = None) -> ValidationReport:
    """
    Load, parse and validate a pipeline file.

    Schema violations are returned as report diagnostics; unreadable input
    raises PipelineLoadError.
    """
    name = source_name(source)
    raw = load_document(source)
    try:
        pipeline, findings = parse_pipeline(raw, source=name)
    except SchemaError as e:
        return ValidationReport(source=name, diagnostics=list(e.diagnostics))

    if catalog is None:
        pipeline_dir = None if str(source) == STDIN else Path(source).parent
        catalog = TemplateCatalog(templates_dir=templates_dir, pipeline_dir=pipeline_dir)

    report = validate_pipeline(pipeline, catalog)
    report.diagnostics[:0] = findings
    return report
