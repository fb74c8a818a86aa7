from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

PRECONDITION_SKIP = "PRECONDITION_SKIP"
REMOTE_REJECTION = "REMOTE_REJECTION"
TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
DEPENDENCY_UNRESOLVED = "DEPENDENCY_UNRESOLVED"

FAILURE_KINDS = {PRECONDITION_SKIP, REMOTE_REJECTION, TRANSPORT_FAILURE, DEPENDENCY_UNRESOLVED}


@dataclass(frozen=True)
class EditResult:
    """Outcome of one remote step: a value on success, a failure kind otherwise."""

    value: Optional[Any] = None
    kind: Optional[str] = None
    message: Optional[str] = None
    cause: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: Any = None) -> "EditResult":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: str, message: str, cause: Optional[BaseException] = None) -> "EditResult":
        if kind not in FAILURE_KINDS:
            raise ValueError(f"Unknown failure kind: {kind}")
        return cls(kind=kind, message=message, cause=cause)

    @classmethod
    def rejected(cls, message: str) -> "EditResult":
        return cls.failure(REMOTE_REJECTION, message)

    @classmethod
    def unresolved(cls, message: str) -> "EditResult":
        return cls.failure(DEPENDENCY_UNRESOLVED, message)

    @classmethod
    def transport(cls, exc: BaseException) -> "EditResult":
        return cls.failure(TRANSPORT_FAILURE, f"{type(exc).__name__}: {exc}", cause=exc)

    @classmethod
    def capture(cls, fn: Callable[..., Any], *args: Any) -> "EditResult":
        """Call fn and wrap its return value; exceptions become transport failures."""
        try:
            value = fn(*args)
        except Exception as exc:
            return cls.transport(exc)
        if isinstance(value, EditResult):
            return value
        return cls.success(value)

    def then(self, fn: Callable[[Any], Any]) -> "EditResult":
        """Feed the success value to the next step; failures pass through untouched."""
        if not self.ok:
            return self
        return EditResult.capture(fn, self.value)

    def describe(self) -> str:
        if self.ok:
            return f"OK: {self.value}"
        return f"{self.kind}: {self.message}"
