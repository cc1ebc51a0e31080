from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from plantpal.care import (
    CareIntervals,
    HealthStatus,
    TaskKind,
    apply_task_event,
    clamp_happiness,
    classify_happiness,
    compute_next_due_date,
    generate_schedule,
    happiness_delta,
    is_first_photo,
    resolve_happiness,
)
from plantpal.models import AgentSuggestion


class StubAgent:
    def __init__(self, suggestion):
        self.suggestion = suggestion
        self.payloads = []

    def run(self, action, payload):
        self.payloads.append((action, payload))
        return self.suggestion


@pytest.mark.parametrize(
    "value, expected",
    [
        (100, HealthStatus.HEALTHY),
        (75, HealthStatus.HEALTHY),
        (74, HealthStatus.NEEDS_ATTENTION),
        (50, HealthStatus.NEEDS_ATTENTION),
        (49, HealthStatus.NEGLECTED),
        (25, HealthStatus.NEGLECTED),
        (24, HealthStatus.EMERGENCY),
        (0, HealthStatus.EMERGENCY),
    ],
)
def test_classify_happiness_thresholds(value, expected):
    assert classify_happiness(value) == expected


def test_classify_happiness_is_total_and_monotonic():
    order = [
        HealthStatus.EMERGENCY,
        HealthStatus.NEGLECTED,
        HealthStatus.NEEDS_ATTENTION,
        HealthStatus.HEALTHY,
    ]
    ranks = [order.index(classify_happiness(value)) for value in range(0, 101)]
    assert ranks == sorted(ranks)


def test_clamp_keeps_values_in_range():
    assert clamp_happiness(-5) == 0
    assert clamp_happiness(130) == 100
    assert clamp_happiness(42.6) == 43


def test_happiness_stays_in_range_for_any_event_sequence():
    events = [
        (TaskKind.FERTILIZING, False),
        (TaskKind.WATERING, True),
        (TaskKind.FERTILIZING, True),
        (TaskKind.WATERING, False),
    ]
    for start in range(0, 101):
        happiness = start
        for _ in range(40):
            for kind, completed in events:
                happiness = apply_task_event(happiness, kind, completed)
                assert 0 <= happiness <= 100


def test_happiness_delta_per_task_kind():
    assert happiness_delta(TaskKind.WATERING, True) == 1
    assert happiness_delta(TaskKind.WATERING, False) == -1
    assert happiness_delta(TaskKind.FERTILIZING, True) == 3
    assert happiness_delta("fertilizing", False) == -3


def test_apply_task_event_clamps():
    assert apply_task_event(90, TaskKind.WATERING, True) == 91
    assert apply_task_event(100, TaskKind.FERTILIZING, True) == 100
    assert apply_task_event(2, TaskKind.FERTILIZING, False) == 0


def test_resolve_happiness_prefers_suggestion():
    assert resolve_happiness(91, None) == 91
    assert resolve_happiness(91, 40) == 40
    assert resolve_happiness(91, 0) == 0


def test_compute_next_due_date_adds_calendar_days():
    now = datetime(2026, 10, 19, 8, 30)
    assert compute_next_due_date(now, 7) == datetime(2026, 10, 26, 8, 30)
    assert compute_next_due_date(now, 14) == datetime(2026, 11, 2, 8, 30)


def test_compute_next_due_date_keeps_wall_clock_across_dst():
    try:
        tz = ZoneInfo("America/New_York")
    except ZoneInfoNotFoundError:
        pytest.skip("tz database not available")
    # 2026-03-08 に夏時間が始まる
    now = datetime(2026, 3, 5, 9, 0, tzinfo=tz)
    due = compute_next_due_date(now, 7)
    assert (due.date().isoformat(), due.hour) == ("2026-03-12", 9)


def test_compute_next_due_date_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        compute_next_due_date(datetime(2026, 1, 1), 0)


def test_generate_schedule_keeps_current_intervals_without_opinion():
    agent = StubAgent(AgentSuggestion())
    schedule = generate_schedule("Monstera", CareIntervals(watering=5, fertilizing=20), agent)

    assert schedule.watering_interval_days == 5
    assert schedule.fertilizing_interval_days == 20
    assert schedule.recommendations is None
    action, payload = agent.payloads[0]
    assert action == "generate_schedule"
    assert payload == {
        "species": "Monstera",
        "currentIntervals": {"watering": 5, "fertilizing": 20},
    }


def test_generate_schedule_uses_suggested_intervals():
    agent = StubAgent(
        AgentSuggestion(watering_interval_days=12, recommendations="Let the soil dry out.")
    )
    schedule = generate_schedule("Echinocactus", CareIntervals(), agent)

    assert schedule.watering_interval_days == 12
    assert schedule.fertilizing_interval_days == 14
    assert schedule.recommendations == "Let the soil dry out."


def test_is_first_photo():
    assert is_first_photo(1)
    assert not is_first_photo(0)
    assert not is_first_photo(2)
