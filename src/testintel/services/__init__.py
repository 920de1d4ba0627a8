"""Service-layer helpers shared by the pipeline and the CLI."""

from testintel.services.errors import (
    PipelineError,
    PopulateError,
    ProblemDetail,
    ProblemError,
    SchemaError,
    log_problem,
    problem,
)

__all__ = [
    "PipelineError",
    "PopulateError",
    "ProblemDetail",
    "ProblemError",
    "SchemaError",
    "log_problem",
    "problem",
]
