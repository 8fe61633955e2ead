"""Console output formatting utilities for pipedef."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from ..errors import Diagnostic
    from ..plan import Outcome, PipelinePlan
    from ..validate import ValidationReport


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> None:
        for d in diagnostics:
            print(f"  {d}")

    def print_report(self, report: ValidationReport, strict: bool = False) -> None:
        """Print validation findings and a one-line verdict."""
        self.print_header(report.source)
        self.print_diagnostics(report.diagnostics)
        verdict = "VALID" if report.passed(strict) else "INVALID"
        print(f"{verdict}: {len(report.errors)} error(s), {len(report.warnings)} warning(s)")

    def print_plan(self, plan: PipelinePlan) -> None:
        """Print stage levels, jobs and invocations."""
        self.print_header("PLAN")
        by_name = {s.name: s for s in plan.stages}
        for level_idx, level in enumerate(plan.levels):
            print(f"=== Level {level_idx + 1}: {level} ===")
            for name in level:
                stage = by_name[name]
                print(f"STAGE: {stage.name} ({stage.label})")
                for job in stage.jobs:
                    extras = []
                    if job.toolchain:
                        extras.append(f"toolchain={job.toolchain}")
                    if job.allow_fail:
                        extras.append("allow_fail")
                    if job.cross:
                        extras.append("cross")
                    if job.all_features:
                        extras.append("all_features")
                    suffix = f" [{', '.join(extras)}]" if extras else ""
                    print(f"  JOB: {job.id} -> {job.template}{suffix}")
                    for inv in job.invocations:
                        args = " ".join(inv.args) or "(no arguments)"
                        print(f"    {inv.key}: {args}")

    def print_outcome(self, outcome: Outcome) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for stage, status in outcome.stages.items():
            print(f"  {stage}: {status.upper()}")
        print(f"PIPELINE: {outcome.status.upper()}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
