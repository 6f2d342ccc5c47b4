"""
Quote status transitions.

accepted is terminal; a sent quote can be withdrawn back to draft and a
rejected one reopened.
"""
from datetime import datetime
from typing import Optional

from .exceptions import InvalidStatusTransitionError
from .models import Quote, DRAFT, SENT, ACCEPTED, REJECTED, QUOTE_STATUSES, utcnow


VALID_QUOTE_TRANSITIONS = {
    DRAFT: [SENT],
    SENT: [ACCEPTED, REJECTED, DRAFT],
    ACCEPTED: [],  # terminal
    REJECTED: [DRAFT],
}


def allowed_transitions(status: str) -> list[str]:
    return list(VALID_QUOTE_TRANSITIONS.get(status, []))


def can_transition(current: str, requested: str) -> bool:
    return requested in VALID_QUOTE_TRANSITIONS.get(current, [])


def apply_status(quote: Quote, status: str, now: Optional[datetime] = None) -> Quote:
    """
    Move a quote to a new status in place.

    Raises:
        InvalidStatusTransitionError: unknown status or transition not allowed
    """
    if status not in QUOTE_STATUSES or not can_transition(quote.status, status):
        raise InvalidStatusTransitionError(quote.status, status, allowed_transitions(quote.status))

    now = now or utcnow()
    quote.status = status
    quote.updated_at = now
    if status == SENT:
        quote.sent_at = now
    elif status == ACCEPTED:
        quote.accepted_at = now
    return quote
