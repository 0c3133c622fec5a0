"""
Booking state machine.

Every legal booking status change is listed in BOOKING_TRANSITIONS together
with the parties allowed to trigger it and an optional guard. Anything not in
the table is rejected.

Usage:
    rule = find_transition(BookingStatus.PENDING, BookingStatus.CANCELLED)
    rule.allows(Party.CLIENT)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ...models import Booking, BookingStatus


class Party(str, Enum):
    """Role an actor plays relative to a specific booking"""

    CLIENT = "client"
    TRAINER = "trainer"
    ADMIN = "admin"
    SYSTEM = "system"


# A guard returns None when the move may proceed, or the reason it may not
Guard = Callable[[Booking, Optional[str]], Optional[str]]


def _trainer_assigned(booking: Booking, _reason: Optional[str]) -> Optional[str]:
    if not booking.trainer_id:
        return "A trainer must be assigned first"
    return None


def _payment_received(booking: Booking, _reason: Optional[str]) -> Optional[str]:
    if booking.payment_status != "paid":
        return "Payment has not been received for this booking"
    return None


def _agreement_completed(booking: Booking, _reason: Optional[str]) -> Optional[str]:
    if booking.agreement is None or booking.agreement.completed_at is None:
        return "Both parties must sign the agreement before the booking is confirmed"
    return None


def _reason_required(_booking: Booking, reason: Optional[str]) -> Optional[str]:
    if not reason or not reason.strip():
        return "A cancellation reason is required once a booking is confirmed"
    return None


@dataclass(frozen=True)
class BookingTransition:
    """A single valid booking status change"""

    from_status: BookingStatus
    to_status: BookingStatus
    actors: frozenset
    guard: Optional[Guard] = None

    def allows(self, party: Party) -> bool:
        return party in self.actors

    def check(self, booking: Booking, reason: Optional[str] = None) -> Optional[str]:
        return self.guard(booking, reason) if self.guard else None


_ANY_PARTY = frozenset({Party.CLIENT, Party.TRAINER, Party.ADMIN})

BOOKING_TRANSITIONS: list[BookingTransition] = [
    # --- Awaiting a trainer ---
    BookingTransition(BookingStatus.PENDING_ASSIGNMENT, BookingStatus.PENDING,
                      frozenset({Party.ADMIN}), _trainer_assigned),
    BookingTransition(BookingStatus.PENDING_ASSIGNMENT, BookingStatus.CANCELLED,
                      frozenset({Party.CLIENT, Party.ADMIN})),

    # --- Awaiting payment ---
    BookingTransition(BookingStatus.PENDING_PAYMENT, BookingStatus.PENDING,
                      frozenset({Party.ADMIN, Party.SYSTEM}), _payment_received),
    BookingTransition(BookingStatus.PENDING_PAYMENT, BookingStatus.CANCELLED, _ANY_PARTY),

    # --- Awaiting signatures ---
    BookingTransition(BookingStatus.PENDING, BookingStatus.CONFIRMED,
                      frozenset({Party.SYSTEM}), _agreement_completed),
    BookingTransition(BookingStatus.PENDING, BookingStatus.CANCELLED,
                      _ANY_PARTY | {Party.SYSTEM}),

    # --- Confirmed ---
    BookingTransition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED,
                      frozenset({Party.TRAINER, Party.ADMIN})),
    BookingTransition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED,
                      _ANY_PARTY, _reason_required),
]

TERMINAL_STATES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

_INDEX = {(t.from_status, t.to_status): t for t in BOOKING_TRANSITIONS}


def find_transition(from_status, to_status) -> Optional[BookingTransition]:
    """Look up the rule for a move, accepting enum members or raw values"""
    try:
        key = (BookingStatus(from_status), BookingStatus(to_status))
    except ValueError:
        return None
    return _INDEX.get(key)


def is_terminal(status) -> bool:
    return BookingStatus(status) in TERMINAL_STATES


def allowed_targets(from_status) -> list[BookingStatus]:
    """Statuses reachable from the given one, in table order"""
    current = BookingStatus(from_status)
    return [t.to_status for t in BOOKING_TRANSITIONS if t.from_status == current]
