"""Domain models for sheetsync.

This package contains the frozen dataclasses shared across the application:
configuration sections, sheet schemas, job lifecycle records, merge results
and transfer metrics.
"""

from .config_models import AppConfig, ApiConfig, FieldConfig, SheetConfig
from .job_run import JobContext, JobOutcome, JobRun, JobStatus
from .merge_result import MergeResult

__all__ = [
    # Configuration models
    "ApiConfig",
    "AppConfig",
    "FieldConfig",
    "SheetConfig",
    # Job models
    "JobContext",
    "JobOutcome",
    "JobRun",
    "JobStatus",
    # Processing models
    "MergeResult",
]
