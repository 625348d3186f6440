"""Error taxonomy shared by pipeline stages and their adapters."""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    TRANSIENT = "transient"
    PERSISTENCE = "persistence"
    FATAL = "fatal"


class PipelineError(Exception):
    """Base class for every failure a pipeline knows how to classify."""

    kind: ClassVar[ErrorKind] = ErrorKind.FATAL

    def __init__(self, message: str, *, item_ref: str | None = None) -> None:
        super().__init__(message)
        self.item_ref = item_ref


class ValidationError(PipelineError):
    """Malformed or unclassifiable input; recorded and skipped, never retried."""

    kind: ClassVar[ErrorKind] = ErrorKind.VALIDATION


class TransientError(PipelineError):
    """Network, rate-limit or lock-timeout failure; retried with backoff."""

    kind: ClassVar[ErrorKind] = ErrorKind.TRANSIENT


class PersistenceError(PipelineError):
    """Constraint violation or connection loss during a batch; rolled back and retried."""

    kind: ClassVar[ErrorKind] = ErrorKind.PERSISTENCE


class FatalError(PipelineError):
    """Programming or configuration error; aborts the run immediately."""

    kind: ClassVar[ErrorKind] = ErrorKind.FATAL


class UnknownPipelineError(FatalError):
    """Raised when a pipeline or stage name is not registered."""


class PipelineConflictError(FatalError):
    """Raised when a pipeline is started while another run of it is active."""


class StageAborted(PipelineError):  # noqa: N818
    """Raised by a stage that gave up on a batch while ``abort_on_error`` is set."""

    def __init__(self, stage: str, message: str, *, kind: ErrorKind) -> None:
        super().__init__(message)
        self.stage = stage
        self.cause_kind = kind


RETRYABLE_ERRORS: tuple[type[PipelineError], ...] = (TransientError, PersistenceError)
