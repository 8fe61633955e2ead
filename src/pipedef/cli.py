# cli.py
from __future__ import annotations

import re
import sys
from pathlib import Path

import click

from pipedef.dsl import load_authoring_file, to_yaml
from pipedef.errors import (
    EXIT_INVALID,
    EXIT_USAGE,
    PipedefError,
    PipelineLoadError,
    SchemaError,
    TemplateDeclarationError,
)
from pipedef.flatten import COLUMNS, filter_rows, flatten_documents, format_rows
from pipedef.loader import STDIN, iter_documents, load_pipeline
from pipedef.plan import build_plan, evaluate
from pipedef.settings import Settings, load_settings
from pipedef.ui.console import Console, get_console, set_console
from pipedef.validate import check, validate_pipeline


def _settings(ctx, **overrides) -> Settings:
    return load_settings(ctx.obj.get("config_files", ()), overrides=overrides)


def _compile_regex(ctx, param, value):
    try:
        re.compile(value)
    except re.error as e:
        raise click.BadParameter(f"invalid regular expression {value!r}: {e}")
    return value


def _fail(ctx, exc: Exception) -> None:
    """Report an exception and exit with its code."""
    console = get_console()
    if isinstance(exc, SchemaError):
        console.print_error("Invalid pipeline", f"{exc.source} does not match the pipeline schema", details=[str(d) for d in exc.diagnostics])
    elif isinstance(exc, PipedefError):
        console.print_error(type(exc).__name__, str(exc))
    else:
        console.print_exception(exc)
    sys.exit(getattr(exc, "exit_code", EXIT_INVALID))


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option(
    "--config",
    "config_files",
    multiple=True,
    type=click.Path(dir_okay=False),
    help="Extra TOML config file (may be repeated; earlier files win)",
)
@click.pass_context
def cli(ctx, debug, config_files):
    """pipedef: check, plan and flatten CI pipeline definitions."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["config_files"] = config_files
    try:
        settings = load_settings(config_files, overrides={"debug": debug or None})
    except PipedefError as e:
        _fail(ctx, e)
    console.debug = settings.debug
    ctx.obj["debug"] = settings.debug


@cli.command()
@click.argument("files", nargs=-1, required=True)
@click.option("--templates-dir", default=None, help="Directory holding local copies of repository templates")
@click.option("--strict/--no-strict", default=None, help="Treat warnings as failures")
@click.pass_context
def validate(ctx, files, templates_dir, strict):
    """Check pipeline files against the schema and their references."""
    console = get_console()
    try:
        settings = _settings(ctx, templates_dir=templates_dir, strict=strict)
    except PipedefError as e:
        _fail(ctx, e)

    exit_code = 0
    for f in files:
        try:
            report = check(f, templates_dir=settings.templates_dir)
        except PipelineLoadError as e:
            console.print_error("Failed to load pipeline", str(e))
            exit_code = max(exit_code, e.exit_code)
            continue
        except TemplateDeclarationError as e:
            console.print_error("Failed to load template declaration", str(e))
            exit_code = max(exit_code, e.exit_code)
            continue
        except KeyboardInterrupt:
            console.print_info("\nInterrupted by user")
            sys.exit(130)
        except Exception as e:
            _fail(ctx, e)

        console.print_report(report, strict=settings.strict)
        if not report.passed(settings.strict):
            exit_code = max(exit_code, EXIT_INVALID)

    sys.exit(exit_code)


@cli.command()
@click.argument("file")
@click.option("--fail", "failures", multiple=True, help="Invocation key (<stage>/<job>/<index>) to treat as failed")
@click.option("--evaluate/--no-evaluate", "do_evaluate", default=False, help="Evaluate the outcome (implied by --fail)")
@click.pass_context
def plan(ctx, file, failures, do_evaluate):
    """Show the stages, jobs and invocations a pipeline implies."""
    console = get_console()
    try:
        pipeline_plan = build_plan(load_pipeline(file))
    except Exception as e:
        _fail(ctx, e)

    console.print_plan(pipeline_plan)
    if not (failures or do_evaluate):
        return

    keys = pipeline_plan.invocation_keys
    unknown = sorted(set(failures) - set(keys))
    if unknown:
        console.print_error(
            "Unknown invocation",
            f"No invocation matches: {', '.join(unknown)}",
            details=keys,
        )
        sys.exit(EXIT_USAGE)

    outcome = evaluate(pipeline_plan, {k: k not in failures for k in keys})
    console.print_outcome(outcome)
    if outcome.failed:
        sys.exit(EXIT_INVALID)


@cli.command()
@click.argument("files", nargs=-1)
@click.option("-s", "--separator", default=None, help="Field separator (\\t for tab)")
@click.option("-l", "--left-guard", default=None, help="Opening delimiter of every field")
@click.option("-r", "--right-guard", default=None, help="Closing delimiter of every field (defaults to the left guard)")
@click.option("-t", "--hide-type", is_flag=True, default=False, help="Omit the type column")
@click.option("-p", "--print-header", is_flag=True, default=False, help="Print a header row")
@click.option("-m", "--multi-documents", type=int, default=None, help="Read every YAML document and prefix an index column starting here")
@click.option("-x", "--regex", default=".*", show_default=True, callback=_compile_regex, help="Only print rows whose column matches")
@click.option("-c", "--column", type=click.Choice(COLUMNS, case_sensitive=False), default="value", show_default=True)
@click.pass_context
def flatten(ctx, files, separator, left_guard, right_guard, hide_type, print_header, multi_documents, regex, column):
    """Print every node of a document as pointer/type/value rows ('-' reads stdin)."""
    try:
        settings = _settings(ctx, separator=separator, guard=left_guard)
    except PipedefError as e:
        _fail(ctx, e)

    console = get_console()
    exit_code = 0
    for f in files or (STDIN,):
        try:
            docs = list(iter_documents(f))
            if multi_documents is None:
                docs = docs[:1]
            rows = flatten_documents(docs, start=multi_documents or 0)
            rows = filter_rows(rows, regex, column.lower())
        except PipelineLoadError as e:
            console.print_error("Failed to read document", str(e))
            exit_code = max(exit_code, e.exit_code)
            continue
        except Exception as e:
            _fail(ctx, e)

        lines = format_rows(
            rows,
            separator=settings.separator.replace("\\t", "\t"),
            guard=settings.guard,
            right_guard=right_guard,
            show_type=settings.show_type and not hide_type,
            header=print_header,
            with_index=multi_documents is not None,
        )
        for line in lines:
            click.echo(line)

    sys.exit(exit_code)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", default="-", help="Output file ('-' for stdout)")
@click.option("--check/--no-check", "run_check", default=True, show_default=True, help="Validate before writing")
@click.pass_context
def render(ctx, file, output, run_check):
    """Render a Python authoring file to pipeline YAML."""
    console = get_console()
    try:
        p = load_authoring_file(file)
    except Exception as e:
        _fail(ctx, e)

    if run_check:
        report = validate_pipeline(p)
        if not report.ok:
            console.print_report(report)
            sys.exit(EXIT_INVALID)

    text = to_yaml(p)
    if output == "-":
        click.echo(text, nl=False)
    else:
        Path(output).write_text(text, encoding="utf-8")
        console.print_info(f"Wrote {output}")


if __name__ == "__main__":
    cli()
