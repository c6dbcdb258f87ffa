"""OPRA request lifecycle: statuses, allowed transitions, request numbers."""

import random
from datetime import datetime
from enum import Enum

from opradraft.core.errors import PreconditionFailedError


class RequestStatus(str, Enum):
    DRAFT = "DRAFT"
    READY = "READY"
    SUBMITTED = "SUBMITTED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    FULFILLED = "FULFILLED"
    DENIED = "DENIED"
    APPEALED = "APPEALED"


TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.DRAFT: frozenset({RequestStatus.READY}),
    RequestStatus.READY: frozenset({RequestStatus.SUBMITTED}),
    RequestStatus.SUBMITTED: frozenset({
        RequestStatus.ACKNOWLEDGED, RequestStatus.FULFILLED, RequestStatus.DENIED,
    }),
    RequestStatus.ACKNOWLEDGED: frozenset({RequestStatus.FULFILLED, RequestStatus.DENIED}),
    RequestStatus.DENIED: frozenset({RequestStatus.APPEALED}),
    RequestStatus.APPEALED: frozenset({RequestStatus.FULFILLED, RequestStatus.DENIED}),
    RequestStatus.FULFILLED: frozenset(),
}


def parse_status(value: str) -> RequestStatus:
    try:
        return RequestStatus(value.upper())
    except ValueError as e:
        raise PreconditionFailedError(f"Unknown request status: {value!r}") from e


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS[current]


def check_transition(current: str, target: str) -> RequestStatus:
    """Validate ``current → target`` and return the target status."""
    src, dst = parse_status(current), parse_status(target)
    if not can_transition(src, dst):
        raise PreconditionFailedError(f"Cannot move request from {src.value} to {dst.value}")
    return dst


def assert_draft(status: str, action: str) -> None:
    """Edits, deletion, and PDF finalization are only allowed on drafts."""
    if parse_status(status) is not RequestStatus.DRAFT:
        raise PreconditionFailedError(f"Cannot {action} a request in {status} status; only drafts can be changed")


def generate_request_number(now: datetime | None = None, rng: random.Random | None = None) -> str:
    """Human-readable request number, ``OPRA-YYYY-MMDD-XXXX``."""
    now = now or datetime.now()
    rng = rng or random.Random()
    return f"OPRA-{now:%Y}-{now:%m%d}-{rng.randint(0, 9999):04d}"
