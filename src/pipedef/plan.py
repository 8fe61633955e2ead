# plan.py
"""
Execution expectations implied by a pipeline document.

Nothing here runs anything. `build_plan` lists which invocations an
orchestration engine would schedule, and `evaluate` derives job, stage and
pipeline status from per-invocation results, honouring `allow_fail`.
"""
from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .dag import stage_levels
from .model import Pipeline, TemplateJob, TemplateRef

# Status strings (same vocabulary at every level)
OK = "ok"
OK_WITH_ISSUES = "ok(with-issues)"
FAILED = "failed"
FAILED_ALLOWED = "failed(allowed)"
SKIPPED = "skipped"


@dataclass(frozen=True)
class Invocation:
    key: str          # <stage>/<job>/<index>
    args: List[str]


@dataclass(frozen=True)
class JobPlan:
    id: str
    template: TemplateRef
    toolchain: Optional[str]
    allow_fail: bool
    cross: bool
    all_features: bool
    invocations: List[Invocation]


@dataclass(frozen=True)
class StagePlan:
    name: str
    label: str
    depends_on: List[str]
    jobs: List[JobPlan]


@dataclass
class PipelinePlan:
    stages: List[StagePlan]
    levels: List[List[str]]

    def stage(self, name: str) -> StagePlan:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(name)

    @property
    def invocation_keys(self) -> List[str]:
        return [inv.key for s in self.stages for j in s.jobs for inv in j.invocations]


@dataclass
class Outcome:
    status: str
    stages: Dict[str, str] = field(default_factory=dict)
    jobs: Dict[str, str] = field(default_factory=dict)   # "<stage>/<job>" -> status

    @property
    def failed(self) -> bool:
        return self.status == FAILED


def argument_entries(job: TemplateJob) -> List[str]:
    test_list = job.parameters.get("test_list")
    if not test_list:
        return []
    if isinstance(test_list, str):
        return [test_list]
    return [str(entry) for entry in test_list]


def _argument_groups(stage_name: str, job_id: str, job: TemplateJob) -> List[List[str]]:
    entries = argument_entries(job)
    if not entries:
        return [[]]
    groups = []
    for i, entry in enumerate(entries):
        try:
            groups.append(shlex.split(entry))
        except ValueError as e:
            raise ValueError(f"{stage_name}/{job_id}/{i}: cannot split test_list entry {entry!r}: {e}") from e
    return groups


def _flag(job: TemplateJob, name: str) -> bool:
    return job.parameters.get(name) is True


def plan_job(stage_name: str, job_id: str, job: TemplateJob) -> JobPlan:
    toolchain = job.parameters.get("rust")
    return JobPlan(
        id=job_id,
        template=job.template,
        toolchain=str(toolchain) if toolchain is not None else None,
        allow_fail=_flag(job, "allow_fail"),
        cross=_flag(job, "cross"),
        all_features=_flag(job, "all_features"),
        invocations=[
            Invocation(key=f"{stage_name}/{job_id}/{i}", args=args)
            for i, args in enumerate(_argument_groups(stage_name, job_id, job))
        ],
    )


def _require_unique(pipeline: Pipeline) -> None:
    names = [s.name for s in pipeline.stages]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate stage ids found: {dupes}")

    for s in pipeline.stages:
        ids = s.job_ids()
        if len(set(ids)) != len(ids):
            dupes = sorted({j for j in ids if ids.count(j) > 1})
            raise ValueError(f"Duplicate job ids found in stage {s.name!r}: {dupes}")


def build_plan(pipeline: Pipeline) -> PipelinePlan:
    """
    Raises:
        ValueError: duplicate stage or job ids, unknown stage dependencies,
            a dependency cycle, or a test_list entry that cannot be split.
    """
    _require_unique(pipeline)
    levels = stage_levels(pipeline)
    deps = pipeline.effective_dependencies()

    stages = [
        StagePlan(
            name=s.name,
            label=s.label,
            depends_on=deps[s.name],
            jobs=[plan_job(s.name, jid, job) for jid, job in zip(s.job_ids(), s.jobs)],
        )
        for s in pipeline.stages
    ]
    return PipelinePlan(stages=stages, levels=levels)


def _job_status(job: JobPlan, results: Mapping[str, bool]) -> str:
    if all(results[inv.key] for inv in job.invocations):
        return OK
    return FAILED_ALLOWED if job.allow_fail else FAILED


def evaluate(plan: PipelinePlan, results: Mapping[str, bool]) -> Outcome:
    """
    Derive statuses from invocation results (True = passed).

    A stage runs only when every stage it depends on finished ok (with or
    without issues); otherwise it is skipped. A job failure fails its
    stage unless the job allows failure.

    Raises:
        ValueError: a stage that would run has invocations without a result.
    """
    outcome = Outcome(status=OK)
    by_name = {s.name: s for s in plan.stages}

    for level in plan.levels:
        for name in level:
            stage = by_name[name]
            if any(outcome.stages.get(d) not in (OK, OK_WITH_ISSUES) for d in stage.depends_on):
                outcome.stages[name] = SKIPPED
                for job in stage.jobs:
                    outcome.jobs[f"{name}/{job.id}"] = SKIPPED
                continue

            missing = [inv.key for job in stage.jobs for inv in job.invocations if inv.key not in results]
            if missing:
                raise ValueError(f"No result for invocation(s): {missing}")

            statuses = []
            for job in stage.jobs:
                status = _job_status(job, results)
                outcome.jobs[f"{name}/{job.id}"] = status
                statuses.append(status)

            if FAILED in statuses:
                outcome.stages[name] = FAILED
            elif FAILED_ALLOWED in statuses:
                outcome.stages[name] = OK_WITH_ISSUES
            else:
                outcome.stages[name] = OK

    stage_statuses = set(outcome.stages.values())
    if FAILED in stage_statuses or SKIPPED in stage_statuses:
        outcome.status = FAILED
    elif OK_WITH_ISSUES in stage_statuses:
        outcome.status = OK_WITH_ISSUES
    return outcome
