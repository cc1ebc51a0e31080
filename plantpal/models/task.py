from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship

from plantpal import db
from plantpal.care import TaskKind
from plantpal.models.plant import new_id

if TYPE_CHECKING:
    from plantpal.models.plant import Plant


class TaskBase(db.BaseModel):
    plant_id: str = Field(description="対象の植物ID", foreign_key="plants.id", index=True)
    plant_name: str = Field(description="作成時点の植物名")
    type: TaskKind = Field(description="お世話の種類 (watering / fertilizing)")
    scheduled_date: datetime = Field(description="予定日時")
    completed: bool = Field(default=False, description="完了済みかどうか")
    completed_at: Optional[datetime] = Field(default=None, nullable=True)
    user_id: str = Field(description="所有ユーザーのID", index=True)


class Task(TaskBase, table=True):
    __tablename__ = "tasks"

    id: str = Field(default_factory=new_id, primary_key=True)

    plant: "Plant" = Relationship(back_populates="tasks")


class TaskRead(TaskBase):
    id: str
