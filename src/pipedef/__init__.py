from .dsl import matrix, pipeline, repository, stage, template_job, to_yaml
from .loader import load_pipeline
from .model import Pipeline, Repository, Stage, TemplateJob, TemplateRef
from .plan import build_plan, evaluate
from .validate import ValidationReport, check, validate_pipeline

__all__ = [
    "matrix", "pipeline", "repository", "stage", "template_job", "to_yaml",
    "load_pipeline", "Pipeline", "Repository", "Stage", "TemplateJob", "TemplateRef",
    "build_plan", "evaluate", "ValidationReport", "check", "validate_pipeline",
]
