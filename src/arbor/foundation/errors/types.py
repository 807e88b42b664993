"""JSON type aliases and failure diagnostics.

Uses Pydantic models so failure reports serialize cleanly into structured logs.
"""

from __future__ import annotations

import traceback
from typing import Annotated, Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

# ═══════════════════════════════════════════════════════════════════════════════
# Type Aliases
# ═══════════════════════════════════════════════════════════════════════════════

JsonPrimitive = Union[str, int, float, bool, None]
JsonValue = Union[JsonPrimitive, list[Any], dict[str, Any]]
JsonDict = dict[str, Any]
JsonMapping = Mapping[str, Any]

# ═══════════════════════════════════════════════════════════════════════════════
# Failure Reports
# ═══════════════════════════════════════════════════════════════════════════════


class FailureReport(BaseModel):
    """Diagnostic snapshot of a task that ended in the ``failed`` state."""

    model_config = ConfigDict(
        frozen=True, str_strip_whitespace=True, extra="forbid",
        json_schema_extra={"title": "Failure Report", "examples": [{
            "task_id": 7, "task_name": "fetch", "error_type": "ValueError",
            "message": "bad payload", "observed": False,
        }]},
    )

    task_id: Annotated[int, Field(ge=0)]
    task_name: Annotated[str, Field(min_length=1)]
    error_type: Annotated[str, Field(min_length=1)]
    message: str = ""
    details: str | None = Field(default=None, repr=False)
    observed: bool = False

    @computed_field
    @property
    def summary(self) -> str:
        """One-line description suitable for a log event."""
        msg = f": {self.message}" if self.message else ""
        return f"{self.task_name}#{self.task_id} raised {self.error_type}{msg}"

    @classmethod
    def from_exception(cls, task_id: int, task_name: str, exc: BaseException, *, observed: bool) -> FailureReport:
        """Build a report from a captured exception, including its traceback."""
        return cls(
            task_id=task_id,
            task_name=task_name,
            error_type=type(exc).__name__,
            message=str(exc),
            details="".join(traceback.format_exception(exc)),
            observed=observed,
        )
