"""Shift-rotation scheduling for field crews."""

import logging

from .api import SchedulingService
from .deviations import TransferResult
from .errors import (
    CompositionViolation,
    IllegalDeviation,
    InsufficientCrew,
    InvalidPattern,
    InvalidRange,
    InvalidStateTransition,
    NotFound,
    OverlapConflict,
    SchedulingError,
)
from .generator import FROM_DATE, FULL, GenerationResult, WorkerSeed
from .validation import CompositionIssue

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "FROM_DATE",
    "FULL",
    "CompositionIssue",
    "CompositionViolation",
    "GenerationResult",
    "IllegalDeviation",
    "InsufficientCrew",
    "InvalidPattern",
    "InvalidRange",
    "InvalidStateTransition",
    "NotFound",
    "OverlapConflict",
    "SchedulingError",
    "SchedulingService",
    "TransferResult",
    "WorkerSeed",
]
