"""Shared error taxonomy and Problem Details helpers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4


def generate_correlation_id() -> str:
    """
    Return a new correlation identifier for tracing errors.

    Returns
    -------
    str
        UUID4 correlation identifier.
    """
    return str(uuid4())


@dataclass(frozen=True)
class ProblemDetail:
    """
    RFC 9457 Problem Details payload.

    Fields mirror the standard shape with optional extras for diagnostics.
    """

    type: str
    title: str
    detail: str
    instance: str = field(default_factory=generate_correlation_id)
    code: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize to a JSON-friendly dict.

        Returns
        -------
        dict[str, Any]
            Problem detail payload as a plain dictionary.
        """
        payload: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "detail": self.detail,
            "instance": self.instance,
        }
        if self.code is not None:
            payload["code"] = self.code
        if self.extras:
            payload["extras"] = self.extras
        return payload


def problem(
    code: str,
    title: str,
    detail: str,
    *,
    extras: dict[str, Any] | None = None,
) -> ProblemDetail:
    """
    Create a ProblemDetail under the testintel problem namespace.

    Parameters
    ----------
    code
        Stable problem code naming the failing stage (e.g., 'collect.tests').
    title
        Human-readable error summary.
    detail
        Detailed description of the error.
    extras
        Optional structured context for diagnostics.

    Returns
    -------
    ProblemDetail
        Structured problem payload.
    """
    return ProblemDetail(
        type=f"https://problems.testintel.dev/{code}",
        title=title,
        detail=detail,
        code=code,
        extras=extras or {},
    )


def log_problem(logger: logging.Logger | logging.LoggerAdapter, detail: ProblemDetail) -> None:
    """Emit a Problem Detail as a structured error log."""
    logger.error(json.dumps(detail.to_dict(), default=str))


class ProblemError(Exception):
    """Base exception carrying a ProblemDetail payload."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail.detail)
        self.problem_detail = detail

    @property
    def code(self) -> str | None:
        """Stable problem code of the payload."""
        return self.problem_detail.code


class PipelineError(ProblemError):
    """Collection pipeline failure; `code` names the stage that aborted."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail)


class SchemaError(ProblemError):
    """The schema script could not be applied; nothing was committed."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail)


class PopulateError(ProblemError):
    """A row-insertion pass failed and was rolled back."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail)

    @property
    def table(self) -> str | None:
        """Table whose population pass failed."""
        value = self.problem_detail.extras.get("table")
        return str(value) if value is not None else None
