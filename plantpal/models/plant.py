from datetime import datetime
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel

from plantpal import db
from plantpal.care import (
    DEFAULT_FERTILIZING_INTERVAL_DAYS,
    DEFAULT_WATERING_INTERVAL_DAYS,
    HealthStatus,
    classify_happiness,
)

if TYPE_CHECKING:
    from plantpal.models.task import Task


def new_id() -> str:
    return uuid4().hex


class PlantBase(db.BaseModel):
    name: str = Field(description="ユーザーが付けた植物の名前")
    species: str = Field(default="", description="植物の種類 (学名/一般名)")
    happiness: int = Field(
        default=75,
        description="ハピネス値 (0〜100)。書き込みのたびに範囲内に丸める",
    )
    watering_interval_days: int = Field(
        default=DEFAULT_WATERING_INTERVAL_DAYS,
        description="水やり間隔 (日)",
    )
    fertilizing_interval_days: int = Field(
        default=DEFAULT_FERTILIZING_INTERVAL_DAYS,
        description="施肥間隔 (日)",
    )
    sprite_url: Optional[str] = Field(
        default=None,
        description="アバター画像のURL",
        nullable=True,
    )


class Plant(PlantBase, table=True):
    __tablename__ = "plants"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(description="所有ユーザーのID", index=True)
    last_watered: Optional[datetime] = Field(default=None, nullable=True)
    next_watering: Optional[datetime] = Field(default=None, nullable=True)
    last_fertilized: Optional[datetime] = Field(default=None, nullable=True)
    next_fertilizing: Optional[datetime] = Field(default=None, nullable=True)
    # 要素の追加ではなくリストごと差し替えること (JSON 列は変更を追跡しない)
    photo_urls: list[str] = Field(default_factory=list, sa_column=Column(JSON))

    tasks: list["Task"] = Relationship(
        back_populates="plant",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    @property
    def health_status(self) -> HealthStatus:
        return classify_happiness(self.happiness)


class PlantCreate(SQLModel):
    name: str = Field(min_length=1)
    species: str = ""
    happiness: int = 75
    watering_interval_days: int = Field(default=DEFAULT_WATERING_INTERVAL_DAYS, ge=1)
    fertilizing_interval_days: int = Field(
        default=DEFAULT_FERTILIZING_INTERVAL_DAYS, ge=1
    )
    sprite_url: Optional[str] = None


class PlantRead(PlantBase):
    id: str
    user_id: str
    last_watered: Optional[datetime] = None
    next_watering: Optional[datetime] = None
    last_fertilized: Optional[datetime] = None
    next_fertilizing: Optional[datetime] = None
    photo_urls: list[str] = []
    health_status: HealthStatus
