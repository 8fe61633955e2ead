import pytest

from pipedef.errors import TemplateRefError
from pipedef.model import Pipeline, Stage, TemplateJob, TemplateRef


def test_template_ref_splits_path_and_alias():
    ref = TemplateRef.parse("rust/test.yml@templates")
    assert ref.path == "rust/test.yml"
    assert ref.alias == "templates"
    assert not ref.is_self
    assert str(ref) == "rust/test.yml@templates"


def test_template_ref_without_alias_is_self():
    ref = TemplateRef.parse("ci/build.yml")
    assert ref.is_self
    assert str(ref) == "ci/build.yml"
    assert TemplateRef.parse("ci/build.yml@self").is_self


@pytest.mark.parametrize("bad", ["", "   ", "rust/test.yml@", "@templates", "a@b@c"])
def test_template_ref_rejects_malformed(bad):
    with pytest.raises(TemplateRefError):
        TemplateRef.parse(bad)


def _job(ref, **params):
    return TemplateJob(template=TemplateRef.parse(ref), parameters=params)


def test_job_ids_prefer_id_parameter_and_dedupe_stems():
    s = Stage(
        name="tests",
        jobs=(
            _job("rust/test.yml@t", id="stable"),
            _job("rust/test.yml@t"),
            _job("rust/test.yml@t"),
            _job("rust/check.yml@t", id="test"),
        ),
    )
    assert s.job_ids() == ["stable", "test_2", "test_3", "test"]


def test_effective_dependencies_follow_document_order():
    p = Pipeline(stages=[
        Stage(name="a", jobs=(_job("x.yml"),)),
        Stage(name="b", jobs=(_job("x.yml"),)),
        Stage(name="c", jobs=(_job("x.yml"),), depends_on=()),
        Stage(name="d", jobs=(_job("x.yml"),), depends_on=("a", "c")),
    ])
    assert p.effective_dependencies() == {"a": [], "b": ["a"], "c": [], "d": ["a", "c"]}


def test_pipeline_stage_lookup():
    p = Pipeline(stages=[Stage(name="a", display_name="Alpha")])
    assert p.stage("a").label == "Alpha"
    with pytest.raises(KeyError):
        p.stage("missing")
