import logging
from datetime import datetime
from typing import Optional

from sqlmodel import Session

from plantpal import models
from plantpal.care import (
    CareIntervals,
    TaskKind,
    apply_task_event,
    classify_happiness,
    compute_next_due_date,
    generate_schedule as plan_schedule,
    is_first_photo,
    resolve_happiness,
)
from plantpal.crud.utils import create_tasks_for_plant, recent_care_history

logger = logging.getLogger(__name__)


class UnknownActionError(Exception):
    pass


class InvalidActionDataError(Exception):
    pass


class TaskAlreadyCompletedError(Exception):
    pass


def generate_schedule(
    db: Session, plant: models.Plant, agent, now: Optional[datetime] = None
) -> models.AgentResponse:
    """AI にお世話間隔を問い合わせ、次回予定日とタスクを作成する"""
    now = now or datetime.now()
    schedule = plan_schedule(
        plant.species,
        CareIntervals(
            watering=plant.watering_interval_days,
            fertilizing=plant.fertilizing_interval_days,
        ),
        agent,
    )
    next_watering = compute_next_due_date(now, schedule.watering_interval_days)
    next_fertilizing = compute_next_due_date(now, schedule.fertilizing_interval_days)

    plant.watering_interval_days = schedule.watering_interval_days
    plant.fertilizing_interval_days = schedule.fertilizing_interval_days
    plant.next_watering = next_watering
    plant.next_fertilizing = next_fertilizing
    plant.updated_at = now
    db.add(plant)

    logger.info(f"📅 タスクを作成します: {plant.name}")
    create_tasks_for_plant(db, plant, next_watering, next_fertilizing)
    db.commit()
    db.refresh(plant)

    return models.AgentResponse(
        plantId=plant.id,
        watering_interval_days=plant.watering_interval_days,
        fertilizing_interval_days=plant.fertilizing_interval_days,
        recommendations=schedule.recommendations,
    )


def update_status(
    db: Session,
    plant: models.Plant,
    data: dict,
    agent,
    now: Optional[datetime] = None,
) -> models.AgentResponse:
    """お世話の完了/未実施を反映してハピネス値を更新する"""
    now = now or datetime.now()
    try:
        task_kind = TaskKind(data.get("taskType"))
    except (TypeError, ValueError):
        raise InvalidActionDataError(
            "taskType is required for update_status action (watering or fertilizing)"
        )
    completed = data.get("completed")
    if completed is None:
        completed = True
    if not isinstance(completed, bool):
        raise InvalidActionDataError("completed must be a boolean")

    computed = apply_task_event(plant.happiness, task_kind, completed)
    suggestion = agent.run(
        "update_status",
        {
            "taskType": task_kind.value,
            "completed": completed,
            "currentHappiness": plant.happiness,
            "careHistory": recent_care_history(db, plant.id),
        },
    )

    # AI が値を返した場合はローカル計算より優先する
    happiness = resolve_happiness(computed, suggestion.happiness)
    health_status = suggestion.health_status or classify_happiness(happiness)
    logger.info(
        f"{plant.name}: {task_kind.value} completed={completed} "
        f"ハピネス {plant.happiness} -> {happiness} (ローカル計算: {computed})"
    )

    plant.happiness = happiness
    plant.updated_at = now
    if completed and task_kind == TaskKind.WATERING:
        plant.last_watered = now
        plant.next_watering = compute_next_due_date(now, plant.watering_interval_days)
    elif completed and task_kind == TaskKind.FERTILIZING:
        plant.last_fertilized = now
        plant.next_fertilizing = compute_next_due_date(
            now, plant.fertilizing_interval_days
        )
    db.add(plant)
    db.commit()
    db.refresh(plant)

    return models.AgentResponse(
        plantId=plant.id,
        happiness=happiness,
        healthStatus=health_status,
        recommendations=suggestion.recommendations,
    )


def analyze_photo(
    db: Session,
    plant: models.Plant,
    data: dict,
    agent,
    now: Optional[datetime] = None,
) -> models.AgentResponse:
    """写真を記録し、AI の見た目評価でハピネス値を設定する。

    最初の写真の場合はスケジュール生成も行うが、その失敗で
    このリクエスト自体は失敗させない。
    """
    now = now or datetime.now()
    image_url = data.get("imageUrl")
    if not image_url or not isinstance(image_url, str):
        raise InvalidActionDataError("imageUrl is required for analyze_photo action")

    suggestion = agent.run("analyze_photo", {"imageUrl": image_url})

    photo_urls = [*(plant.photo_urls or []), image_url]
    happiness = resolve_happiness(plant.happiness, suggestion.happiness)
    health_status = suggestion.health_status or classify_happiness(happiness)

    plant.photo_urls = photo_urls
    plant.happiness = happiness
    plant.updated_at = now
    db.add(plant)
    db.commit()
    db.refresh(plant)

    if is_first_photo(len(photo_urls)):
        logger.info(f"最初の写真が登録されました。スケジュールを生成します: {plant.name}")
        try:
            generate_schedule(db, plant, agent, now)
        except Exception:
            logger.error(f"スケジュール生成に失敗しました: {plant.name}", exc_info=True)
            db.rollback()

    return models.AgentResponse(
        plantId=plant.id,
        happiness=happiness,
        healthStatus=health_status,
        recommendations=suggestion.recommendations,
    )


def dispatch(
    db: Session,
    plant: models.Plant,
    request: models.AgentRequest,
    agent,
    now: Optional[datetime] = None,
) -> models.AgentResponse:
    if request.action == "generate_schedule":
        return generate_schedule(db, plant, agent, now)
    if request.action == "update_status":
        return update_status(db, plant, request.data, agent, now)
    if request.action == "analyze_photo":
        return analyze_photo(db, plant, request.data, agent, now)
    raise UnknownActionError(f"Unknown action: {request.action}")


def complete_task(
    db: Session, task: models.Task, agent, now: Optional[datetime] = None
) -> models.AgentResponse:
    """タスクを完了にして、植物のハピネス値に反映する"""
    if task.completed:
        raise TaskAlreadyCompletedError(f"Task already completed: {task.id}")
    now = now or datetime.now()
    task.completed = True
    task.completed_at = now
    db.add(task)
    # update_status の commit でタスクの完了も一緒に確定する
    return update_status(
        db, task.plant, {"taskType": task.type.value, "completed": True}, agent, now
    )
