"""
Domain Errors

Exception taxonomy shared by the Boards client, the session store and the
workflow stages. Every error can render itself as a flat dict so API and
CLI layers can show an actionable message without leaking tracebacks.
"""

from typing import Any, Optional


class BoardPilotError(Exception):
    """Base class for all boardpilot errors."""

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "message": str(self)}


class ConfigurationError(BoardPilotError):
    """Credential material or profile configuration is missing or inconsistent."""


class ApiError(BoardPilotError):
    """
    Error returned by (or while reaching) the Boards REST API.

    Attributes:
        status_code: HTTP status code, None for connectivity failures
        body: Raw response body or the underlying transport error text
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class RateLimitError(ApiError):
    """Throttling persisted after all retries were spent."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class AuthenticationError(ApiError):
    """Client-credential token exchange failed."""


class SessionNotFoundError(BoardPilotError):
    """No live session exists for the given id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class SessionConflictError(BoardPilotError):
    """An optimistic update was based on a stale session version."""

    def __init__(self, session_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Session {session_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.session_id = session_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class StageError(BoardPilotError):
    """
    A workflow stage could not complete.

    The message is prefixed with a stage-qualified verb phrase and the
    original exception is kept both as ``cause`` and as ``__cause__``.
    """

    stage = "workflow"
    action = "run workflow stage"

    def __init__(self, detail: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to {self.action}: {detail}")
        self.detail = detail
        self.cause = cause

    @classmethod
    def wrap(cls, cause: BaseException) -> "StageError":
        error = cls(str(cause) or type(cause).__name__, cause=cause)
        error.__cause__ = cause
        return error

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["stage"] = self.stage
        data["detail"] = self.detail
        return data


class SpecificationError(StageError):
    stage = "specify"
    action = "specify work item"


class PlanningError(StageError):
    stage = "plan"
    action = "create plan"


class ExecutionError(StageError):
    stage = "execute"
    action = "execute plan"


class PlanNotFoundError(ExecutionError):
    def __init__(self) -> None:
        super().__init__("No execution plan found in session. Run 'plan' first.")


class ToolError(BoardPilotError):
    """A registry tool failed; ``tool`` names it."""

    def __init__(self, tool: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.tool = tool
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["tool"] = self.tool
        return data


class UnknownToolError(ToolError):
    def __init__(self, tool: str):
        super().__init__(tool, f"Unknown tool: {tool}")


class NoFieldsToUpdateError(ToolError):
    def __init__(self, work_item_id: int):
        super().__init__(
            "update_work_item",
            f"Failed to update work item {work_item_id}: No fields provided for update",
        )
        self.work_item_id = work_item_id
