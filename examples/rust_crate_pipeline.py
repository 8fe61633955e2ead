# rust_crate_pipeline.py
# Authoring file for examples/azure-pipelines.yml:
#   pipedef render examples/rust_crate_pipeline.py -o examples/azure-pipelines.yml
from __future__ import annotations

from pipedef.dsl import matrix, repository, stage, template_job
from pipedef.dsl import pipeline as pl

TEST_LIST = ["--all", "--features=config-file"]


def pipeline():
    return pl(
        stage(
            "compilation_check",
            template_job("rust/check.yml@templates", rust="stable", all_features=True),
            display_name="Compilation check",
        ),
        stage(
            "clippy_check",
            # clippy findings are reported but never fail the run
            template_job("rust/clippy.yml@templates", rust="stable", allow_fail=True),
            display_name="Clippy check",
        ),
        stage(
            "cargo_testing",
            *matrix("rust", ["stable", "nightly"]).jobs(
                lambda channel: template_job(
                    "rust/test.yml@templates",
                    rust=channel,
                    id=channel,
                    cross=True,
                    allow_fail=False,
                    test_list=list(TEST_LIST),
                )
            ),
            display_name="Cargo test(s)",
        ),
        repositories=[
            repository("templates", "bazaah/azure-templates", endpoint="bazaah"),
        ],
    )
