"""
Booking Admission Controller

Admits or rejects one booking request inside a single transaction:

    1. lock the schedule row        -> SCHEDULE_NOT_FOUND
    2. duplicate (user, schedule)   -> ALREADY_BOOKED
    3. booked seats >= capacity     -> CLASS_FULL
    4. credits for the class month  -> NO_CREDITS (when enforce_credits)
    5. insert the booking           -> ERROR_INSERT_FAILED on any DB error

The schedule row lock serializes admissions for the same schedule, so the
count in step 3 and the insert in step 5 can never interleave with another
admission for that schedule. Requests for different schedules never wait
on each other. With enforce_credits the user's package row is locked after
the schedule row (always in that order), which serializes one user's
admissions for the month.

Only SUCCESS changes the store; every other outcome leaves it untouched.
"""

import logging

import mysql.connector

from services.credit_resolver import CreditResolver
from utils.date_utils import to_date

logger = logging.getLogger(__name__)

# Outcomes
SUCCESS = 'SUCCESS'
ALREADY_BOOKED = 'ALREADY_BOOKED'
CLASS_FULL = 'CLASS_FULL'
SCHEDULE_NOT_FOUND = 'SCHEDULE_NOT_FOUND'
NO_CREDITS = 'NO_CREDITS'
ERROR_INSERT_FAILED = 'ERROR_INSERT_FAILED'

OUTCOMES = (SUCCESS, ALREADY_BOOKED, CLASS_FULL, SCHEDULE_NOT_FOUND, NO_CREDITS, ERROR_INSERT_FAILED)


class AdmissionResult:
    """
    Terminal result of one admission attempt

    Attributes:
        outcome (str): one of OUTCOMES
        booking_id (int or None): created booking (SUCCESS only)
        schedule (dict or None): locked schedule row, when it exists
        booked (int or None): seats taken after the attempt
        credit_check (CreditCheck or None): set when credits were evaluated
    """

    def __init__(self, outcome, booking_id=None, schedule=None, booked=None, credit_check=None):
        self.outcome = outcome
        self.booking_id = booking_id
        self.schedule = schedule
        self.booked = booked
        self.credit_check = credit_check

    @property
    def ok(self):
        return self.outcome == SUCCESS

    def __repr__(self):
        return f"<AdmissionResult {self.outcome} booking={self.booking_id}>"


class _InsertFailed(Exception):
    """Raised inside the transaction so the context manager rolls back"""


class AdmissionController:
    """
    Args:
        store (BookingStore): data store
        enforce_credits (bool): check package credits inside the admitting
            transaction
        credit_resolver (CreditResolver): defaults to one over `store`
    """

    def __init__(self, store, enforce_credits=True, credit_resolver=None):
        self.store = store
        self.enforce_credits = enforce_credits
        self.credit_resolver = credit_resolver or CreditResolver(store)

    def admit(self, user_id, schedule_id):
        """
        Try to book one seat

        Args:
            user_id (str): authenticated caller
            schedule_id (int): target instance

        Returns:
            AdmissionResult: exactly one terminal outcome

        Raises:
            mysql.connector.Error: store unavailable before the insert step
                (nothing was written)
        """
        try:
            with self.store.transaction() as tx:
                result = self._admit_in(tx, user_id, schedule_id)
        except _InsertFailed as e:
            logger.error(
                f"Booking insert failed: User={user_id}, Schedule={schedule_id}, Error={e}"
            )
            return AdmissionResult(ERROR_INSERT_FAILED)

        capacity = result.schedule['capacity'] if result.schedule else None
        if result.ok:
            logger.info(
                f"Booking admitted: User={user_id}, Schedule={schedule_id}, "
                f"Booking={result.booking_id}, Count={result.booked}/{capacity}"
            )
        else:
            logger.info(
                f"Admission rejected: User={user_id}, Schedule={schedule_id}, "
                f"Outcome={result.outcome}, Count={result.booked}/{capacity}"
            )
        return result

    def _admit_in(self, tx, user_id, schedule_id):
        schedule = tx.lock_schedule(schedule_id)
        if not schedule:
            return AdmissionResult(SCHEDULE_NOT_FOUND)

        if tx.find_booking(user_id, schedule_id):
            return AdmissionResult(ALREADY_BOOKED, schedule=schedule)

        booked = tx.count_bookings(schedule_id)
        if booked >= schedule['capacity']:
            return AdmissionResult(CLASS_FULL, schedule=schedule, booked=booked)

        credit_check = None
        if self.enforce_credits:
            summary = self.credit_resolver.resolve_in(tx, user_id, schedule['start_time'], lock=True)
            credit_check = summary.check(schedule['class_type'], schedule.get('class_category'))
            if not credit_check.allowed:
                return AdmissionResult(NO_CREDITS, schedule=schedule, booked=booked,
                                       credit_check=credit_check)

        try:
            booking_id = tx.insert_booking(user_id, schedule_id, to_date(schedule['start_time']))
        except mysql.connector.Error as e:
            raise _InsertFailed(str(e)) from e

        return AdmissionResult(SUCCESS, booking_id=booking_id, schedule=schedule,
                               booked=booked + 1, credit_check=credit_check)
