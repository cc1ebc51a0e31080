from datetime import datetime
from logging import getLogger
from typing import Optional

from sqlmodel import Session, select

from plantpal import models
from plantpal.care import TaskKind, clamp_happiness

logger = getLogger(__name__)


class NotFoundError(Exception):
    pass


class OwnershipError(Exception):
    pass


def get_owned_plant(db: Session, plant_id: str, user_id: str) -> models.Plant:
    plant = db.get(models.Plant, plant_id)
    if plant is None:
        raise NotFoundError("Plant not found")
    if plant.user_id != user_id:
        raise OwnershipError("Unauthorized: Plant belongs to different user")
    return plant


def get_owned_task(db: Session, task_id: str, user_id: str) -> models.Task:
    task = db.get(models.Task, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    if task.user_id != user_id:
        raise OwnershipError("Unauthorized: Task belongs to different user")
    return task


def create_plant(db: Session, data: models.PlantCreate, user_id: str) -> models.Plant:
    plant = models.Plant(
        **data.model_dump(exclude={"happiness"}),
        happiness=clamp_happiness(data.happiness),
        user_id=user_id,
    )
    db.add(plant)
    db.commit()
    db.refresh(plant)
    logger.info(f"植物を登録しました: {plant.name} (ID: {plant.id}, user: {user_id})")
    return plant


def list_plants(db: Session, user_id: str) -> list[models.Plant]:
    return db.exec(
        select(models.Plant)
        .where(models.Plant.user_id == user_id)
        .order_by(models.Plant.created_at)
    ).all()


def delete_plant(db: Session, plant: models.Plant):
    db.delete(plant)
    db.commit()
    logger.info(f"植物を削除しました: {plant.name} (ID: {plant.id})")


def list_tasks(
    db: Session,
    user_id: str,
    plant_id: Optional[str] = None,
    include_completed: bool = False,
) -> list[models.Task]:
    statement = select(models.Task).where(models.Task.user_id == user_id)
    if plant_id is not None:
        statement = statement.where(models.Task.plant_id == plant_id)
    if not include_completed:
        statement = statement.where(models.Task.completed == False)  # noqa: E712
    return db.exec(statement.order_by(models.Task.scheduled_date)).all()


def recent_care_history(db: Session, plant_id: str, limit: int = 10) -> list[dict]:
    """AI に渡す直近のお世話履歴 (完了済みタスク)"""
    tasks = db.exec(
        select(models.Task)
        .where(models.Task.plant_id == plant_id, models.Task.completed == True)  # noqa: E712
        .order_by(models.Task.completed_at.desc())
        .limit(limit)
    ).all()
    return [
        {"type": task.type.value, "completedAt": task.completed_at.isoformat()}
        for task in tasks
        if task.completed_at is not None
    ]


def create_tasks_for_plant(
    db: Session,
    plant: models.Plant,
    next_watering: Optional[datetime],
    next_fertilizing: Optional[datetime],
) -> list[models.Task]:
    """水やり・施肥のタスクを作成する。予定日が無い種類は作らない。

    commit は呼び出し側で行う。
    """
    created = []
    for kind, scheduled in (
        (TaskKind.WATERING, next_watering),
        (TaskKind.FERTILIZING, next_fertilizing),
    ):
        if scheduled is None:
            continue
        task = models.Task(
            plant_id=plant.id,
            plant_name=plant.name,
            type=kind,
            scheduled_date=scheduled,
            user_id=plant.user_id,
        )
        db.add(task)
        created.append(task)
        logger.info(f"✅ {kind.value} タスクを作成しました: {plant.name} -> {scheduled}")
    return created
