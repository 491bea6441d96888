"""
Pipeline error taxonomy.

Fatal conditions are raised as exceptions. Data quality findings are not
errors: they travel inside the validation report.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for refresh pipeline failures."""


class SourceUnavailableError(PipelineError):
    """The source store could not be read or written within the timeout."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Source unavailable during {operation}: {detail}")


class ReplaceFailure(PipelineError):
    """A materialized table replace was rolled back; its previous state is intact."""

    def __init__(self, artifact: str, detail: str):
        self.artifact = artifact
        self.detail = detail
        super().__init__(f"Replace of {artifact} failed: {detail}")


class PipelineBusyError(PipelineError):
    """Another run holds the pipeline lock."""

    def __init__(self, pipeline_name: str, holder: Optional[str] = None):
        self.pipeline_name = pipeline_name
        self.holder = holder
        message = f"Pipeline '{pipeline_name}' is already running"
        if holder:
            message += f" (run {holder})"
        super().__init__(message)


class DataQualityGateError(PipelineError):
    """Strict mode only: the validation report contained findings."""

    def __init__(self, finding_count: int):
        self.finding_count = finding_count
        super().__init__(f"Validation reported {finding_count} finding(s) under strict mode")
