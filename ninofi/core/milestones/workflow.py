"""Milestone state machine.

pending ──submit──▶ submitted ──approve──▶ approved
   ▲                    │ ├──request_changes──▶ changes_requested ──submit──▶ submitted
   │                    │ └──reject──▶ rejected
"""

from decimal import Decimal

from ninofi.common.enums import MilestoneAction, MilestoneStatus
from ninofi.common.exceptions import BadRequestError, InvalidStateTransitionError

TRANSITIONS: dict[tuple[MilestoneStatus, MilestoneAction], MilestoneStatus] = {
    (MilestoneStatus.PENDING, MilestoneAction.SUBMIT): MilestoneStatus.SUBMITTED,
    (MilestoneStatus.CHANGES_REQUESTED, MilestoneAction.SUBMIT): MilestoneStatus.SUBMITTED,
    (MilestoneStatus.SUBMITTED, MilestoneAction.APPROVE): MilestoneStatus.APPROVED,
    (MilestoneStatus.SUBMITTED, MilestoneAction.REQUEST_CHANGES): MilestoneStatus.CHANGES_REQUESTED,
    (MilestoneStatus.SUBMITTED, MilestoneAction.REJECT): MilestoneStatus.REJECTED,
}

TERMINAL_STATUSES = {MilestoneStatus.APPROVED, MilestoneStatus.REJECTED}


def next_status(current: MilestoneStatus | str, action: MilestoneAction) -> MilestoneStatus:
    current = MilestoneStatus(current)
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidStateTransitionError("milestone", current.value, action.value) from None


def allowed_actions(current: MilestoneStatus | str) -> list[MilestoneAction]:
    current = MilestoneStatus(current)
    return [action for (status, action) in TRANSITIONS if status == current]


def validate_evidence(description: str, photos: list[str]) -> None:
    if not description or not description.strip():
        raise BadRequestError("Please describe the work completed")
    if not [p for p in photos if p and p.strip()]:
        raise BadRequestError("Please add at least one photo")


def check_milestone_budget(estimated_budget: Decimal | None, amounts: list[Decimal]) -> None:
    """Milestone amounts may not add up to more than the project's estimated budget."""
    if estimated_budget is None:
        return
    total = sum(amounts, Decimal("0.00"))
    if total > estimated_budget:
        raise BadRequestError(
            f"Milestone total {total} exceeds the estimated budget {estimated_budget}"
        )
