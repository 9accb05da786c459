"""Error taxonomy for the Next Best Action engine.

Every error carries a stable ``kind`` so callers (HTTP layer, bulk counters,
Celery tasks) can act on it without parsing messages. ``to_dict`` is the
structured result handed to users; provider exception text never goes there.
"""

from typing import Any, Dict, Optional


class NBAError(Exception):
    kind: str = "nba-error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "error", "error_kind": self.kind, "message": self.message}


class NotFound(NBAError):
    """HCP or recommendation absent."""

    kind = "not-found"


class AssemblyFailure(NBAError):
    """One of the decision-context reads failed."""

    kind = "assembly-failure"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ModelInvocationFailure(NBAError):
    """Network, timeout, non-2xx or empty output from the model provider."""

    kind = "model-invocation-failure"


class ComplianceRejected(NBAError):
    kind = "compliance-rejected"

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


class InvalidTransition(NBAError):
    kind = "invalid-transition"

    def __init__(self, message: str, current: Optional[str] = None, target: Optional[str] = None):
        super().__init__(message)
        self.current = current
        self.target = target

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["current_state"] = self.current
        data["target_state"] = self.target
        return data


class ValidationError(NBAError):
    """Malformed input to a public operation."""

    kind = "validation-error"
