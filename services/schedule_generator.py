"""
Schedule Generator

Expands weekly scheduling rules into concrete schedule rows for a date
range. A (class_id, start_time) pair that already exists, or that an
earlier rule produced in the same run, is skipped.
"""

import logging
from datetime import datetime, time, timedelta

from models import ScheduledInstance, SchedulingRule
from services.errors import ValidationError
from utils.date_utils import day_name, parse_day_name, parse_time_of_day

logger = logging.getLogger(__name__)


def expand_rules(rules, start_date, end_date, existing_keys=(), default_duration=60):
    """
    Concrete instances for every (date, rule) pair in the range

    Args:
        rules (list[tuple[SchedulingRule, int or None]]): rules with the
            duration (minutes) of their class
        start_date (date): first day (inclusive)
        end_date (date): last day (inclusive)
        existing_keys (set): (class_id, start_time) pairs to skip
        default_duration (int): minutes used when a class has no duration

    Returns:
        list[ScheduledInstance]: new instances (id=None), by date then rule order

    Example:
        >>> rule = SchedulingRule(1, "Monday", time(18, 0), class_id=7)
        >>> expand_rules([(rule, 45)], date(2025, 11, 3), date(2025, 11, 9))
        [<ScheduledInstance class 7 2025-11-03 18:00-18:45>]
    """
    seen = set(existing_keys)
    created = []

    day = start_date
    while day <= end_date:
        name = day_name(day)
        for rule, duration in rules:
            if rule.day_of_week != name:
                continue

            start = datetime.combine(day, rule.start_time)
            key = (rule.class_id, start)
            if key in seen:
                continue
            seen.add(key)

            end = start + timedelta(minutes=duration or default_duration)
            created.append(ScheduledInstance(None, rule.class_id, start, end))
        day += timedelta(days=1)

    return created


class ScheduleGenerator:
    """
    Args:
        store (BookingStore): data store
        default_duration (int): minutes for classes without a duration
        max_days (int): longest accepted range
    """

    def __init__(self, store, default_duration=60, max_days=92):
        self.store = store
        self.default_duration = default_duration
        self.max_days = max_days

    def generate(self, start_date, end_date):
        """
        Create the missing schedule rows for [start_date, end_date]

        Returns:
            list[ScheduledInstance]: inserted instances

        Raises:
            ValidationError: end before start, or range too long
        """
        if end_date < start_date:
            raise ValidationError("End date must not be before start date.", code='INVALID_RANGE')
        if (end_date - start_date).days + 1 > self.max_days:
            raise ValidationError(f"Date range is limited to {self.max_days} days.", code='RANGE_TOO_LONG')

        with self.store.transaction() as tx:
            rules = [
                (SchedulingRule(row['id'], parse_day_name(row['day_of_week']),
                                parse_time_of_day(row['start_time']), row['class_id']),
                 row.get('duration'))
                for row in tx.list_rules()
            ]
            existing = tx.list_schedule_keys(
                datetime.combine(start_date, time.min),
                datetime.combine(end_date, time.max),
            )

            created = expand_rules(rules, start_date, end_date, existing, self.default_duration)
            tx.insert_schedules([(s.class_id, s.start_time, s.end_time) for s in created])

        logger.info(
            f"Schedule generated: Range={start_date}..{end_date}, Rules={len(rules)}, "
            f"Created={len(created)}, Existing={len(existing)}"
        )
        return created
