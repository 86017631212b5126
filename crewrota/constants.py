from __future__ import annotations

from typing import Set

FIXED_CYCLE = "FIXED_CYCLE"
WEEK_INDEXED = "WEEK_INDEXED"
PATTERN_MODES: Set[str] = {FIXED_CYCLE, WEEK_INDEXED}

WORK = "WORK"
REST = "REST"
ABSENCE = "ABSENCE"
ROTATION_STATES: Set[str] = {WORK, REST}
SLOT_STATES: Set[str] = {WORK, REST, ABSENCE}

DRAFT = "DRAFT"
PENDING_APPROVAL = "PENDING_APPROVAL"
PUBLISHED = "PUBLISHED"
ARCHIVED = "ARCHIVED"
PERIOD_STATUSES: Set[str] = {DRAFT, PENDING_APPROVAL, PUBLISHED, ARCHIVED}
GENERATABLE_STATUSES: Set[str] = {DRAFT, PENDING_APPROVAL}
PUBLISHABLE_STATUSES: Set[str] = {DRAFT, PENDING_APPROVAL}

GENERATED = "GENERATED"
REASSIGNED = "REASSIGNED"

EVENT_ABSENCE = "ABSENCE"
EVENT_SWAP = "SWAP"
EVENT_TRANSFER = "TRANSFER"

COVERED = "COVERED"
UNCOVERED_GAP = "UNCOVERED_GAP"

WEEKDAY_TOKENS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
