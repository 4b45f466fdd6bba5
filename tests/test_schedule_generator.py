"""Expanding weekly rules into schedule rows"""

from datetime import date, datetime, time

import pytest

from models import SchedulingRule
from services.errors import ValidationError
from services.schedule_generator import ScheduleGenerator, expand_rules


def test_expand_rules_one_week():
    monday = SchedulingRule(1, 'Monday', time(18, 0), class_id=7)
    friday = SchedulingRule(2, 'Friday', time(9, 30), class_id=8)

    created = expand_rules([(monday, 45), (friday, None)], date(2025, 11, 3), date(2025, 11, 9))

    assert [(s.class_id, s.start_time, s.end_time) for s in created] == [
        (7, datetime(2025, 11, 3, 18, 0), datetime(2025, 11, 3, 18, 45)),
        (8, datetime(2025, 11, 7, 9, 30), datetime(2025, 11, 7, 10, 30)),
    ]


def test_expand_rules_skips_existing_and_repeated_pairs():
    rule = SchedulingRule(1, 'Monday', time(18, 0), class_id=7)
    twin = SchedulingRule(2, 'Monday', time(18, 0), class_id=7)
    existing = {(7, datetime(2025, 11, 3, 18, 0))}

    created = expand_rules([(rule, 60), (twin, 60)], date(2025, 11, 3), date(2025, 11, 10), existing)

    assert [s.start_time for s in created] == [datetime(2025, 11, 10, 18, 0)]


def test_generate_inserts_missing_rows(store):
    class_id = store.add_class('Yoga Flow', 'Yoga', duration=75)
    with store.transaction() as tx:
        tx.insert_rule('Tuesday', time(8, 0), class_id)
        tx.insert_rule('Thursday', time(8, 0), class_id)
    store.add_schedule(class_id, datetime(2025, 11, 4, 8, 0), duration=75)

    created = ScheduleGenerator(store).generate(date(2025, 11, 1), date(2025, 11, 14))

    assert [s.start_time for s in created] == [
        datetime(2025, 11, 6, 8, 0),
        datetime(2025, 11, 11, 8, 0),
        datetime(2025, 11, 13, 8, 0),
    ]
    assert created[0].end_time == datetime(2025, 11, 6, 9, 15)

    # Running again creates nothing
    assert ScheduleGenerator(store).generate(date(2025, 11, 1), date(2025, 11, 14)) == []


@pytest.mark.parametrize('start, end, code', [
    (date(2025, 11, 10), date(2025, 11, 9), 'INVALID_RANGE'),
    (date(2025, 1, 1), date(2025, 12, 31), 'RANGE_TOO_LONG'),
])
def test_generate_rejects_bad_ranges(store, start, end, code):
    with pytest.raises(ValidationError) as exc:
        ScheduleGenerator(store).generate(start, end)
    assert exc.value.code == code
