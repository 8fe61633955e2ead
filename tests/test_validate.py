from pipedef.errors import ERROR, WARNING
from pipedef.templates import TemplateCatalog, TemplateParameter
from pipedef.validate import check, validate_pipeline
from pipedef.loader import load_pipeline

HEADER = """
resources:
  repositories:
    - repository: templates
      type: github
      name: bazaah/azure-templates
      endpoint: bazaah
"""


def test_sample_pipeline_is_clean_with_local_templates(sample_path, templates_dir):
    report = check(sample_path, templates_dir=templates_dir)

    assert report.diagnostics == []
    assert report.ok
    assert report.passed(strict=True)


def test_remote_templates_without_declarations_are_unverifiable(sample_path):
    report = check(sample_path)

    assert report.ok
    assert report.codes() == ["unverifiable-template"] * 4
    assert all(d.severity == WARNING for d in report.diagnostics)
    assert report.diagnostics[0].pointer == "/stages/0/jobs/0/template"
    assert not report.passed(strict=True)


def test_schema_errors_become_report_diagnostics(write_yaml):
    report = check(write_yaml("stages: []\nresources: {}\n"))
    assert not report.ok
    assert report.codes() == ["schema"]
    assert report.pipeline is None


def test_unresolved_alias_and_unused_repository(write_yaml):
    path = write_yaml("""
stages:
  - stage: build
    jobs:
      - template: rust/check.yml@tmpl
""" + HEADER)
    report = check(path)

    by_code = {d.code: d for d in report.diagnostics}
    assert by_code["unresolved-repository"].pointer == "/stages/0/jobs/0/template"
    assert by_code["unresolved-repository"].severity == ERROR
    assert by_code["unused-repository"].pointer == "/resources/repositories/0/repository"
    assert "unverifiable-template" not in by_code


def test_duplicate_stages_repositories_and_jobs(write_yaml):
    path = write_yaml("""
stages:
  - stage: test
    jobs:
      - template: rust/test.yml@templates
        parameters: {id: stable}
      - template: rust/test.yml@templates
        parameters: {id: stable}
  - stage: test
    jobs:
      - template: rust/test.yml@templates
""" + HEADER + """
    - repository: templates
      type: git
      name: other
""")
    report = check(path)
    codes = report.codes()

    assert codes.count("duplicate-stage") == 1
    assert codes.count("duplicate-repository") == 1
    assert codes.count("duplicate-job") == 1
    dup_job = next(d for d in report.diagnostics if d.code == "duplicate-job")
    assert dup_job.pointer == "/stages/0/jobs/1/parameters/id"


def test_stage_dependency_errors(write_yaml):
    path = write_yaml("""
stages:
  - stage: a
    dependsOn: [c]
    jobs: [{template: rust/check.yml@templates}]
  - stage: b
    jobs: [{template: rust/check.yml@templates}]
  - stage: c
    jobs: [{template: rust/check.yml@templates}]
  - stage: d
    dependsOn: [nope]
    jobs: []
""" + HEADER)
    report = check(path)
    codes = report.codes()

    assert "stage-cycle" in codes
    assert "unknown-stage-dependency" in codes
    assert "empty-stage" in codes
    unknown = next(d for d in report.diagnostics if d.code == "unknown-stage-dependency")
    assert unknown.pointer == "/stages/3/dependsOn"


def test_parameters_are_checked_against_declarations(write_yaml, templates_dir):
    path = write_yaml("""
stages:
  - stage: tests
    jobs:
      - template: rust/test.yml@templates
        parameters:
          rust: beta-2
          cross: "yes"
          test_list: [--all, 3]
          verbose: true
""" + HEADER)
    report = check(path, templates_dir=templates_dir)
    found = {(d.code, d.pointer) for d in report.diagnostics}

    base = "/stages/0/jobs/0/parameters"
    assert ("parameter-choice", f"{base}/rust") in found
    assert ("parameter-type", f"{base}/cross") in found
    assert ("parameter-type", f"{base}/test_list") in found
    assert ("unknown-parameter", f"{base}/verbose") in found
    assert ("missing-parameter", base) in found
    assert not report.ok


def test_nested_parameter_values_warn_when_unverifiable(write_yaml):
    path = write_yaml("""
stages:
  - stage: s
    jobs:
      - template: rust/test.yml@templates
        parameters:
          matrix: {linux: ubuntu}
""" + HEADER)
    report = check(path)
    assert ("parameter-value", "/stages/0/jobs/0/parameters/matrix") in {(d.code, d.pointer) for d in report.diagnostics}
    assert report.ok


def test_validate_pipeline_with_registered_declarations(sample_path):
    catalog = TemplateCatalog()
    catalog.register("bazaah/azure-templates", "rust/check.yml", [
        TemplateParameter(name="rust", type="string"),
        TemplateParameter(name="all_features", type="boolean", default=False),
    ])
    report = validate_pipeline(load_pipeline(sample_path), catalog)

    assert report.codes().count("unverifiable-template") == 3
    assert report.ok


def test_unsplittable_test_list_entries_are_located(write_yaml):
    path = write_yaml("""
stages:
  - stage: s
    jobs:
      - template: rust/test.yml@templates
        parameters:
          test_list: ["--all", "--features='a b"]
      - template: rust/test.yml@templates
        parameters:
          id: single
          test_list: "--bins 'x"
""" + HEADER)
    report = check(path)
    bad = [(d.code, d.pointer) for d in report.errors]

    assert bad == [
        ("parameter-value", "/stages/0/jobs/0/parameters/test_list/1"),
        ("parameter-value", "/stages/0/jobs/1/parameters/test_list"),
    ]
    assert not report.ok
