"""
Result Types

Small value objects passed between pipeline steps.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class StepResult(Generic[T]):
    """Outcome of one fallible pipeline step."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "StepResult[T]":
        return StepResult(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "StepResult[T]":
        return StepResult(ok=False, error=error, error_code=code)


@dataclass
class GateDecision:
    """Classification produced by the confidence gate."""

    confidence: float
    should_send: bool
    reasoning: str


@dataclass
class AIResponseResult:
    """
    Drafted reply plus its gate decision.

    Ephemeral: produced per inbound text message and consumed by the
    orchestrator. ``error`` is set when drafting failed; in that case
    ``response`` is empty and ``should_send`` is False.
    """

    response: str
    confidence: float
    should_send: bool
    reasoning: str = ""
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> "AIResponseResult":
        return cls(response="", confidence=0.0, should_send=False, error=error)
