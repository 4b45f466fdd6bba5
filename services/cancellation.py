"""
Cancellation Handler

Deletes a booking on behalf of its owner. The owner predicate is part of
the DELETE itself, so a booking owned by someone else is never touched.
Freed seats and credits need no bookkeeping: both are recounted from the
remaining booking rows.
"""

import logging

import mysql.connector

from services import errors

logger = logging.getLogger(__name__)

CANCELLED = 'CANCELLED'
CANCEL_FAILED = 'CANCEL_FAILED'


class CancellationResult:
    """
    Attributes:
        outcome (str): CANCELLED or CANCEL_FAILED
        kind (str or None): error kind for CANCEL_FAILED
            (NotFound, Forbidden, Unexpected)
        booking (dict or None): the booking row as it was before deletion
    """

    def __init__(self, outcome, kind=None, booking=None):
        self.outcome = outcome
        self.kind = kind
        self.booking = booking

    @property
    def ok(self):
        return self.outcome == CANCELLED


class CancellationHandler:
    """
    Args:
        store (BookingStore): data store
    """

    def __init__(self, store):
        self.store = store

    def cancel(self, user_id, booking_id):
        """
        Cancel the caller's booking

        Args:
            user_id (str): authenticated caller (never taken from the body)
            booking_id (int): booking to delete

        Returns:
            CancellationResult
        """
        try:
            with self.store.transaction() as tx:
                booking = tx.get_booking(booking_id)
                deleted = tx.delete_booking(booking_id, user_id)
        except mysql.connector.Error as e:
            logger.error(f"Cancel failed: User={user_id}, Booking={booking_id}, Error={e}", exc_info=True)
            return CancellationResult(CANCEL_FAILED, errors.UNEXPECTED)

        if deleted:
            logger.info(f"Booking cancelled: User={user_id}, Booking={booking_id}, Schedule={booking['schedule_id']}")
            return CancellationResult(CANCELLED, booking=booking)

        # Owner match with no deleted row: removed by a concurrent cancel
        if booking is None or booking['user_id'] == user_id:
            logger.warning(f"Cancel rejected (not found): User={user_id}, Booking={booking_id}")
            return CancellationResult(CANCEL_FAILED, errors.NOT_FOUND)

        logger.warning(
            f"Cancel rejected (not owner): User={user_id}, Booking={booking_id}, Owner={booking['user_id']}"
        )
        return CancellationResult(CANCEL_FAILED, errors.FORBIDDEN)
