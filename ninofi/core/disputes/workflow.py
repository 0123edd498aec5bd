"""Dispute lifecycle.

open ──resolve──▶ resolved
  └───reject────▶ rejected

Both outcomes are final and carry the admin's resolution notes.
"""

from ninofi.common.enums import DisputeStatus
from ninofi.common.exceptions import BadRequestError, InvalidStateTransitionError

TRANSITIONS: dict[DisputeStatus, set[DisputeStatus]] = {
    DisputeStatus.OPEN: {DisputeStatus.RESOLVED, DisputeStatus.REJECTED},
    DisputeStatus.RESOLVED: set(),
    DisputeStatus.REJECTED: set(),
}


def check_resolution(current: DisputeStatus | str, target: DisputeStatus | str, notes: str | None) -> DisputeStatus:
    current, target = DisputeStatus(current), DisputeStatus(target)
    if target not in TRANSITIONS[current]:
        raise InvalidStateTransitionError("dispute", current.value, f"mark_{target.value}")
    if not notes or not notes.strip():
        raise BadRequestError("Resolution notes are required")
    return target


def is_open(status: DisputeStatus | str) -> bool:
    return DisputeStatus(status) == DisputeStatus.OPEN
