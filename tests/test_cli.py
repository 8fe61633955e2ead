from pathlib import Path

import yaml
from click.testing import CliRunner

from pipedef.cli import cli

EXAMPLES = Path(__file__).parent.parent / "examples"


def _run(*args, **kwargs):
    return CliRunner().invoke(cli, list(map(str, args)), **kwargs)


def test_validate_clean_pipeline(sample_path, templates_dir):
    result = _run("validate", sample_path, "--templates-dir", templates_dir, "--strict")
    assert result.exit_code == 0, result.output
    assert "VALID: 0 error(s), 0 warning(s)" in result.output
    assert "INVALID" not in result.output


def test_validate_strict_fails_on_unverifiable_templates(sample_path):
    assert _run("validate", sample_path).exit_code == 0

    result = _run("validate", "--strict", sample_path)
    assert result.exit_code == 1
    assert "warning[unverifiable-template] /stages/2/jobs/1/template" in result.output


def test_validate_reports_errors(write_yaml):
    path = write_yaml("""
stages:
  - stage: build
    jobs: [{template: rust/check.yml@nowhere}]
resources: {repositories: []}
""")
    result = _run("validate", path)
    assert result.exit_code == 1
    assert "error[unresolved-repository] /stages/0/jobs/0/template" in result.output


def test_validate_unreadable_file(tmp_path):
    result = _run("validate", tmp_path / "missing.yml")
    assert result.exit_code == 3
    assert "file not found" in result.output


def test_validate_reads_settings_from_config_file(tmp_path, sample_path, templates_dir):
    cfg = tmp_path / "pipedef.toml"
    cfg.write_text(f"[pipedef]\nstrict = true\ntemplates_dir = {str(templates_dir)!r}\n", encoding="utf-8")
    result = _run("--config", cfg, "validate", sample_path)
    assert result.exit_code == 0, result.output


def test_plan_prints_invocations(sample_path):
    result = _run("plan", sample_path)
    assert result.exit_code == 0, result.output
    assert "cargo_testing/nightly/1: --features=config-file" in result.output
    assert "compilation_check/check/0: (no arguments)" in result.output


def test_plan_evaluates_failures(sample_path):
    ok = _run("plan", sample_path, "--fail", "clippy_check/clippy/0")
    assert ok.exit_code == 0, ok.output
    assert "PIPELINE: OK(WITH-ISSUES)" in ok.output

    failed = _run("plan", sample_path, "--fail", "cargo_testing/nightly/1")
    assert failed.exit_code == 1
    assert "cargo_testing: FAILED" in failed.output

    unknown = _run("plan", sample_path, "--fail", "nope/0")
    assert unknown.exit_code == 2


def test_flatten_with_regex_and_tab_separator(sample_path):
    result = _run("flatten", sample_path, "-x", "config-file", "-s", "\\t", "-l", "")
    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == [
        "/stages/2/jobs/0/parameters/test_list/1\tString\t--features=config-file",
        "/stages/2/jobs/1/parameters/test_list/1\tString\t--features=config-file",
    ]


def test_flatten_multi_documents_from_stdin():
    result = _run("flatten", "-m", "1", "-t", input="a: 1\n---\nb: x\n")
    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ['"1", "/a", "1"', '"2", "/b", "x"']


def test_render_authoring_file(sample_path, tmp_path):
    out = tmp_path / "rendered.yml"
    result = _run("render", EXAMPLES / "rust_crate_pipeline.py", "-o", out)
    assert result.exit_code == 0, result.output
    assert yaml.safe_load(out.read_text()) == yaml.safe_load(sample_path.read_text())


def test_validate_keeps_going_after_a_bad_template_declaration(write_yaml):
    write_yaml("parameters: 5\n", name="a/broken.yml")
    bad = write_yaml("""
stages:
  - stage: s
    jobs: [{template: broken.yml}]
resources: {repositories: []}
""", name="a/pipeline.yml")
    good = write_yaml("""
stages:
  - stage: s
    jobs: [{template: fine.yml}]
resources: {repositories: []}
""", name="b/pipeline.yml")

    result = _run("validate", bad, good)
    assert result.exit_code == 1
    assert "'parameters' must be a list or a mapping" in result.output
    assert "VALID: 0 error(s), 1 warning(s)" in result.output.splitlines()


def test_validate_interrupted(monkeypatch, sample_path):
    def _interrupt(*args, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr("pipedef.cli.check", _interrupt)
    result = _run("validate", sample_path)
    assert result.exit_code == 130
    assert "Interrupted by user" in result.output


def test_bad_config_file_is_a_usage_error(tmp_path, sample_path):
    cfg = tmp_path / "pipedef.toml"
    cfg.write_text("[pipedef]\nstrict = maybe\n", encoding="utf-8")
    assert _run("--config", cfg, "validate", sample_path).exit_code == 2

    cfg.write_text("[pipedef]\ncolour = true\n", encoding="utf-8")
    result = _run("--config", cfg, "validate", sample_path)
    assert result.exit_code == 2
    assert "Unknown setting(s)" in result.output


def test_plan_rejects_duplicate_stage_ids(write_yaml):
    path = write_yaml("""
stages:
  - stage: a
    jobs: [{template: x.yml, parameters: {id: first}}]
  - stage: a
    jobs: [{template: x.yml, parameters: {id: second}}]
resources: {repositories: []}
""")
    result = _run("plan", path, "--fail", "a/first/0")
    assert result.exit_code == 1
    assert "Duplicate stage ids found" in result.output
    assert "PIPELINE" not in result.output


def test_flatten_invalid_regex_is_a_usage_error(sample_path):
    result = _run("flatten", sample_path, "-x", "(")
    assert result.exit_code == 2
    assert "invalid regular expression" in result.output


def test_flatten_skips_unreadable_files(tmp_path, write_yaml):
    path = write_yaml("a: 1\n")
    result = _run("flatten", tmp_path / "missing.yml", path, "-t")
    assert result.exit_code == 3
    assert '"/a", "1"' in result.output
    assert "file not found" in result.output
