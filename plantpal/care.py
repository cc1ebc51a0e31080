"""ハピネス値とお世話スケジュールの計算。

ここにある関数は永続化にも HTTP にも依存しない。AI への問い合わせは
``generate_schedule`` の ``agent`` 引数経由でのみ行う。
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from logging import getLogger
from typing import Optional

logger = getLogger(__name__)

HAPPINESS_MIN = 0
HAPPINESS_MAX = 100

DEFAULT_WATERING_INTERVAL_DAYS = 7
DEFAULT_FERTILIZING_INTERVAL_DAYS = 14


class TaskKind(str, Enum):
    WATERING = "watering"
    FERTILIZING = "fertilizing"


class HealthStatus(str, Enum):
    """ハピネス値から導出される状態。保存はせず、読むたびに計算する"""

    HEALTHY = "healthy"
    NEEDS_ATTENTION = "needs_attention"
    NEGLECTED = "neglected"
    EMERGENCY = "emergency"


# (下限, 状態) を閾値の高い順に並べる
HEALTH_THRESHOLDS = (
    (75, HealthStatus.HEALTHY),
    (50, HealthStatus.NEEDS_ATTENTION),
    (25, HealthStatus.NEGLECTED),
)

# お世話1回分のハピネス増減 (完了で +, 未実施で -)
TASK_HAPPINESS_POINTS = {
    TaskKind.WATERING: 1,
    TaskKind.FERTILIZING: 3,
}


@dataclass
class CareIntervals:
    watering: int = DEFAULT_WATERING_INTERVAL_DAYS
    fertilizing: int = DEFAULT_FERTILIZING_INTERVAL_DAYS


@dataclass
class Schedule:
    watering_interval_days: int
    fertilizing_interval_days: int
    recommendations: Optional[str] = None


def clamp_happiness(value) -> int:
    return max(HAPPINESS_MIN, min(HAPPINESS_MAX, int(round(value))))


def happiness_delta(task_kind: TaskKind, completed: bool) -> int:
    points = TASK_HAPPINESS_POINTS[TaskKind(task_kind)]
    return points if completed else -points


def apply_task_event(current_happiness: int, task_kind: TaskKind, completed: bool) -> int:
    """お世話の完了/未実施を反映した新しいハピネス値を返す"""
    return clamp_happiness(current_happiness + happiness_delta(task_kind, completed))


def resolve_happiness(computed: int, suggested: Optional[int]) -> int:
    """AI が提示したハピネス値があればそれを優先する。

    ローカルで計算した増減よりも AI の評価を採用するのは意図した挙動。
    """
    if suggested is None:
        return clamp_happiness(computed)
    return clamp_happiness(suggested)


def classify_happiness(value: int) -> HealthStatus:
    value = clamp_happiness(value)
    for lower_bound, status in HEALTH_THRESHOLDS:
        if value >= lower_bound:
            return status
    return HealthStatus.EMERGENCY


def compute_next_due_date(now: datetime, interval_days: int) -> datetime:
    """``now`` から ``interval_days`` 日後の日時。

    暦日で加算するので、壁時計の時刻は夏時間の切り替えをまたいでも変わらない。
    """
    if interval_days < 1:
        raise ValueError(f"interval_days must be >= 1, got {interval_days}")
    return now + timedelta(days=interval_days)


def generate_schedule(species: str, current: CareIntervals, agent) -> Schedule:
    payload = {
        "species": species,
        "currentIntervals": {
            "watering": current.watering,
            "fertilizing": current.fertilizing,
        },
    }
    suggestion = agent.run("generate_schedule", payload)

    # AI が値を返さなければ現在の間隔を維持する (エラーではない)
    watering = suggestion.watering_interval_days or current.watering
    fertilizing = suggestion.fertilizing_interval_days or current.fertilizing
    logger.info(
        f"スケジュール生成: species={species!r} 水やり={watering}日 施肥={fertilizing}日"
    )
    return Schedule(
        watering_interval_days=watering,
        fertilizing_interval_days=fertilizing,
        recommendations=suggestion.recommendations,
    )


def is_first_photo(photo_count: int) -> bool:
    return photo_count == 1
