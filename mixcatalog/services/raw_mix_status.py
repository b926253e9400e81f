from sqlalchemy.orm import Session

from mixcatalog.core.time import utcnow
from mixcatalog.models.raw_mix import RawMix, RawMixStatus

# Valid state transitions for raw mix processing status
VALID_TRANSITIONS: dict[RawMixStatus, set[RawMixStatus]] = {
    RawMixStatus.PENDING: {RawMixStatus.PROCESSING},
    RawMixStatus.PROCESSING: {RawMixStatus.CANONICALIZED, RawMixStatus.FAILED},
    RawMixStatus.FAILED: {RawMixStatus.PENDING},
    RawMixStatus.CANONICALIZED: set(),
}

TERMINAL_STATUSES = {RawMixStatus.CANONICALIZED, RawMixStatus.FAILED}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""


def can_transition(current: RawMixStatus, target: RawMixStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def transition_status(
    db: Session,
    raw_mix: RawMix,
    target: RawMixStatus,
    error_message: str | None = None,
    canonicalized_mix_id: int | None = None,
    commit: bool = True,
) -> RawMix:
    """
    Move a raw mix to a new status.
    Raises InvalidStatusTransitionError if the transition is not allowed.
    """
    current = RawMixStatus(raw_mix.status)
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(
            f"Cannot transition raw mix {raw_mix.id} from '{current.value}' to '{target.value}'"
        )

    raw_mix.status = target.value
    if target in TERMINAL_STATUSES:
        raw_mix.processed_at = utcnow()
    if target == RawMixStatus.CANONICALIZED:
        raw_mix.canonicalized_mix_id = canonicalized_mix_id
        raw_mix.error_message = None
    elif target == RawMixStatus.FAILED:
        raw_mix.error_message = error_message
    elif target == RawMixStatus.PENDING:
        # Reset for retry
        raw_mix.error_message = None
        raw_mix.processed_at = None

    if commit:
        db.commit()
        db.refresh(raw_mix)
    return raw_mix


def mark_failed(db: Session, raw_mix: RawMix, error_message: str) -> RawMix:
    """Record a processing failure. Pending mixes pass through processing first."""
    if RawMixStatus(raw_mix.status) == RawMixStatus.PENDING:
        transition_status(db, raw_mix, RawMixStatus.PROCESSING, commit=False)
    return transition_status(db, raw_mix, RawMixStatus.FAILED, error_message=error_message)
