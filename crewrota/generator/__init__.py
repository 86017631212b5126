from .api import generate_slots_for_period
from .engine import FROM_DATE, FULL, MAX_GENERATION_DAYS, GenerationResult, SlotGenerator, WorkerSeed

__all__ = [
    "FROM_DATE",
    "FULL",
    "MAX_GENERATION_DAYS",
    "GenerationResult",
    "SlotGenerator",
    "WorkerSeed",
    "generate_slots_for_period",
]
