# backend/tests/test_schedules.py

from datetime import date

import pytest

from appointments.exceptions import NotFoundError, UnsupportedRecurrenceError, ValidationError
from appointments.services.schedules import (
    create_schedule,
    delete_schedule,
    get_schedule,
    list_schedules,
    update_schedule,
)
from appointments.services.slots.availability import get_day_windows
from appointments.services.slots.invalidator import get_affected_dates, invalidate_template_cache

MONDAY = date(2025, 11, 17)


@pytest.fixture
def template(factory, db):
    template = factory.template(factory.provider())
    db.commit()
    return template


def holiday(**kw):
    data = {
        "name": "Holiday",
        "start_date": MONDAY,
        "priority": 5,
        "time_slots": [{"day_of_week": 1, "start_time": "10:00", "end_time": "12:00"}],
    }
    data.update(kw)
    return data


def cache_key(template_id, day):
    return f"availability:windows:{template_id}:{day.isoformat()}"


def test_create_schedule_with_time_slots(store, template):
    schedule = create_schedule(store, template.id, holiday())

    assert schedule.id is not None
    assert schedule.priority == 5
    assert schedule.is_recurring is False
    assert [(s.day_of_week, s.start_time, s.end_time) for s in schedule.time_slots] == [(1, "10:00", "12:00")]
    assert [s.id for s in list_schedules(store, template.id)] == [schedule.id]

    windows = get_day_windows(store, template, MONDAY)
    assert [(w.start_time, w.end_time) for w in windows.time_slots] == [("10:00", "12:00")]


def test_create_recurring_weekly(store, template):
    schedule = create_schedule(store, template.id, holiday(
        name="Friday afternoons",
        is_recurring=True,
        recurrence_type="WEEKLY",
        days_of_week=[5],
        time_slots=[{"day_of_week": 5, "start_time": "13:00", "end_time": "15:00"}],
    ))

    assert schedule.recurrence_type == "WEEKLY"
    assert schedule.days_of_week == [5]


@pytest.mark.parametrize("recurrence_type", ["BIMONTHLY", "QUARTERLY", "YEARLY", "CUSTOM"])
def test_unsupported_recurrence_is_refused(store, template, recurrence_type):
    with pytest.raises(UnsupportedRecurrenceError):
        create_schedule(store, template.id, holiday(
            is_recurring=True, recurrence_type=recurrence_type, days_of_week=[1],
        ))
    assert list_schedules(store, template.id) == []


@pytest.mark.parametrize("overrides", [
    {"name": "  "},
    {"end_date": date(2025, 11, 1)},
    {"days_of_week": [7]},
    {"is_recurring": True},
    {"is_recurring": True, "recurrence_type": "FORTNIGHTLY", "days_of_week": [1]},
    {"is_recurring": True, "recurrence_type": "WEEKLY"},
    {"is_recurring": True, "recurrence_type": "DAILY", "recurrence_interval": 0},
    {"is_recurring": True, "recurrence_type": "MONTHLY", "days_of_week": [1], "week_of_month": 6},
    {"is_recurring": True, "recurrence_type": "MONTHLY", "days_of_week": [1], "month_of_year": 13},
    {"time_slots": [{"day_of_week": 1, "start_time": "12:00", "end_time": "10:00"}]},
    {"time_slots": [{"day_of_week": 1, "start_time": "9am", "end_time": "10:00"}]},
    {"time_slots": [{"day_of_week": 8, "start_time": "09:00", "end_time": "10:00"}]},
])
def test_invalid_schedules_are_refused(store, template, overrides):
    with pytest.raises(ValidationError):
        create_schedule(store, template.id, holiday(**overrides))


def test_unknown_template_and_schedule(store):
    with pytest.raises(NotFoundError):
        create_schedule(store, 9999, holiday())
    with pytest.raises(NotFoundError):
        get_schedule(store, 9999)
    with pytest.raises(NotFoundError):
        list_schedules(store, 9999)


def test_create_invalidates_affected_dates(store, template, fake_redis):
    get_day_windows(store, template, MONDAY, redis=fake_redis)
    get_day_windows(store, template, date(2025, 11, 18), redis=fake_redis)

    create_schedule(store, template.id, holiday(), redis=fake_redis)

    assert cache_key(template.id, MONDAY) not in fake_redis.data
    assert cache_key(template.id, date(2025, 11, 18)) in fake_redis.data
    windows = get_day_windows(store, template, MONDAY, redis=fake_redis)
    assert windows.has_override


def test_update_replaces_slots_and_invalidates(store, template, fake_redis):
    schedule = create_schedule(store, template.id, holiday())
    get_day_windows(store, template, MONDAY, redis=fake_redis)

    updated = update_schedule(store, schedule.id, {
        "priority": 9,
        "time_slots": [{"day_of_week": 1, "start_time": "14:00", "end_time": "15:00"}],
    }, redis=fake_redis)

    assert updated.priority == 9
    assert updated.name == "Holiday"
    assert cache_key(template.id, MONDAY) not in fake_redis.data
    windows = get_day_windows(store, template, MONDAY, redis=fake_redis)
    assert [(w.start_time, w.end_time) for w in windows.time_slots] == [("14:00", "15:00")]


def test_making_schedule_recurring_invalidates_everything(store, template, fake_redis):
    schedule = create_schedule(store, template.id, holiday())
    get_day_windows(store, template, date(2025, 12, 1), redis=fake_redis)

    update_schedule(store, schedule.id, {
        "is_recurring": True, "recurrence_type": "WEEKLY", "days_of_week": [1],
    }, redis=fake_redis)

    assert fake_redis.keys(f"availability:windows:{template.id}:*") == []


def test_invalid_update_is_rolled_back(store, template, db):
    schedule = create_schedule(store, template.id, holiday())

    with pytest.raises(UnsupportedRecurrenceError):
        update_schedule(store, schedule.id, {"is_recurring": True, "recurrence_type": "YEARLY"})

    db.expire_all()
    assert get_schedule(store, schedule.id).is_recurring is False


def test_delete_schedule_restores_template_hours(store, template, fake_redis):
    schedule = create_schedule(store, template.id, holiday(), redis=fake_redis)
    get_day_windows(store, template, MONDAY, redis=fake_redis)

    delete_schedule(store, schedule.id, redis=fake_redis)

    with pytest.raises(NotFoundError):
        get_schedule(store, schedule.id)
    windows = get_day_windows(store, template, MONDAY, redis=fake_redis)
    assert not windows.has_override
    assert [(w.start_time, w.end_time) for w in windows.time_slots] == [("09:00", "17:00")]


def test_affected_dates():
    assert get_affected_dates(date(2025, 1, 1), date(2025, 1, 3)) == [
        date(2025, 1, 1), date(2025, 1, 2), date(2025, 1, 3),
    ]
    assert get_affected_dates(date(2025, 1, 1), None) is None
    assert get_affected_dates(date(2025, 1, 1), date(2027, 1, 1)) is None


def test_invalidation_without_redis_is_a_no_op():
    assert invalidate_template_cache(None, 1) == 0
