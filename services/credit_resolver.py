"""
Credit Resolver

Computes how many monthly package credits a user has left per class type.

Matching a booking's class against a package line:
    - a line whose class_type equals the class `category` (case-insensitive)
      is charged first when the package has one
    - otherwise the class type and the line's class_type match when either
      contains the other (case-insensitive, surrounding spaces ignored);
      an empty string matches nothing
When several lines match one class, the first line in declaration order
is the one that gets charged.
"""

import logging

from models import PackageItem, UserPackage
from utils.date_utils import month_window

logger = logging.getLogger(__name__)

# Credit check verdicts
ALLOWED = 'ALLOWED'
NO_PACKAGE = 'NO_PACKAGE'
TYPE_NOT_COVERED = 'TYPE_NOT_COVERED'
NO_CREDITS_LEFT = 'NO_CREDITS_LEFT'


def _normalize(text):
    return (text or '').strip().lower()


def fuzzy_match(item_type, class_type):
    """
    Containment match between a package class_type and a class type

    Example:
        >>> fuzzy_match("Funcional", "Funcional Avanzado")
        True
        >>> fuzzy_match("funcional avanzado", "FUNCIONAL")
        True
        >>> fuzzy_match("Yoga", "Pilates")
        False
        >>> fuzzy_match("", "Yoga")
        False
    """
    a = _normalize(item_type)
    b = _normalize(class_type)
    if not a or not b:
        return False
    return a in b or b in a


def resolve_category(class_type, known_types):
    """
    Canonical category for a class type

    Args:
        class_type (str): free-text class type ("Funcional Avanzado")
        known_types (list[str]): package class types in declaration order

    Returns:
        str or None: first known type matching exactly, else first
            containment match, else None
    """
    for known in known_types:
        if _normalize(known) and _normalize(known) == _normalize(class_type):
            return known
    for known in known_types:
        if fuzzy_match(known, class_type):
            return known
    return None


class CreditCheck:
    """Result of checking one class against a user's credits"""

    def __init__(self, verdict, class_type=None, item_type=None, remaining=None):
        self.verdict = verdict
        self.class_type = class_type
        self.item_type = item_type
        self.remaining = remaining

    @property
    def allowed(self):
        return self.verdict == ALLOWED

    def message(self):
        if self.verdict == NO_PACKAGE:
            return "You do not have an active package for this month."
        if self.verdict == TYPE_NOT_COVERED:
            return f"Your package does not include {self.class_type} classes."
        if self.verdict == NO_CREDITS_LEFT:
            return f"You have no {self.item_type} credits left this month."
        return "Credits available."


class CreditSummary:
    """
    Remaining credits of one user for one calendar month

    Attributes:
        user_package (UserPackage or None): package covering the month
        package_name (str or None): its name
        items (list[PackageItem]): package lines in declaration order
        used (dict): class_type -> matched bookings
        window (tuple): (first_day, last_day)
    """

    def __init__(self, window, user_package=None, package_name=None, items=None, used=None):
        self.window = window
        self.user_package = user_package
        self.package_name = package_name
        self.items = items or []
        self.used = used or {}

    @property
    def has_package(self):
        return self.user_package is not None

    @property
    def remaining(self):
        """class_type -> remaining credits (may be <= 0), declaration order"""
        return {item.class_type: item.credits - self.used.get(item.class_type, 0)
                for item in self.items}

    def item_for(self, class_type, class_category=None):
        """
        Package line charged for a class, or None

        The line named by the class category wins when the package has one;
        otherwise the first line matching the class type by containment.
        """
        category = _normalize(class_category)
        if category:
            for item in self.items:
                if _normalize(item.class_type) == category:
                    return item
        for item in self.items:
            if fuzzy_match(item.class_type, class_type):
                return item
        return None

    def check(self, class_type, class_category=None):
        if not self.has_package:
            return CreditCheck(NO_PACKAGE, class_type=class_type)

        item = self.item_for(class_type, class_category)
        if item is None:
            return CreditCheck(TYPE_NOT_COVERED, class_type=class_type)

        left = self.remaining[item.class_type]
        if left <= 0:
            return CreditCheck(NO_CREDITS_LEFT, class_type, item.class_type, left)
        return CreditCheck(ALLOWED, class_type, item.class_type, left)

    def to_dict(self):
        first, last = self.window
        return {
            'month': first.strftime('%Y-%m'),
            'valid_from': first.isoformat(),
            'valid_until': last.isoformat(),
            'has_package': self.has_package,
            'package_id': self.user_package.package_id if self.user_package else None,
            'package_name': self.package_name,
            'credits': [
                {
                    'class_type': item.class_type,
                    'credits': item.credits,
                    'used': self.used.get(item.class_type, 0),
                    'remaining': item.credits - self.used.get(item.class_type, 0),
                }
                for item in self.items
            ],
        }


class CreditResolver:
    """
    Resolves credit summaries from the booking store

    Args:
        store (BookingStore): data store
    """

    def __init__(self, store):
        self.store = store

    def resolve(self, user_id, reference_date):
        """Summary for the calendar month of `reference_date` (own read transaction)"""
        with self.store.transaction() as tx:
            return self.resolve_in(tx, user_id, reference_date)

    def resolve_in(self, tx, user_id, reference_date, lock=False):
        """
        Summary computed inside an existing transaction

        Args:
            tx (StoreTransaction): open transaction
            user_id (str): user
            reference_date (date or datetime): any day of the month
            lock (bool): row-lock the user package (serializes one user's
                admissions for the month)

        Returns:
            CreditSummary: no package -> empty summary (not an error)
        """
        first, last = month_window(reference_date)
        row = tx.find_user_package(user_id, first, last, lock=lock)
        if not row:
            return CreditSummary((first, last))

        user_package = UserPackage(
            id=row['id'],
            user_id=row['user_id'],
            package_id=row['package_id'],
            valid_from=row['valid_from'],
            valid_until=row['valid_until'],
        )
        items = [PackageItem(r['class_type'], int(r['credits']), id=r['id'], package_id=r['package_id'])
                 for r in tx.list_package_items(row['package_id'])]

        summary = CreditSummary((first, last), user_package, row.get('package_name'), items,
                                {item.class_type: 0 for item in items})
        for booking in tx.list_month_bookings(user_id, first, last):
            item = summary.item_for(booking['class_type'], booking.get('class_category'))
            if item is not None:
                summary.used[item.class_type] += 1

        return summary

    def check(self, user_id, schedule):
        """
        Advisory pre-check for booking `schedule`

        Args:
            user_id (str): user
            schedule (dict): schedule row (start_time, class_type, class_category)

        Returns:
            CreditCheck
        """
        summary = self.resolve(user_id, schedule['start_time'])
        result = summary.check(schedule['class_type'], schedule.get('class_category'))
        logger.debug(
            f"Credit pre-check: User={user_id}, Schedule={schedule['id']}, "
            f"Verdict={result.verdict}, Remaining={result.remaining}"
        )
        return result


def backfill_categories(tx, overwrite=False):
    """
    Resolve `category` for classes that have none

    Args:
        tx (StoreTransaction): open transaction
        overwrite (bool): also re-resolve classes that already have one

    Returns:
        list[tuple]: (class_id, category) pairs that were updated
    """
    known_types = tx.list_package_item_types()
    updated = []
    for row in tx.list_classes():
        if row['category'] and not overwrite:
            continue
        category = resolve_category(row['type'], known_types)
        if category and category != row['category']:
            tx.update_class(row['id'], {'category': category})
            updated.append((row['id'], category))

    logger.info(f"Category backfill: Known={len(known_types)}, Updated={len(updated)}")
    return updated
