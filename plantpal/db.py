from datetime import datetime

from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine

from plantpal.config import DATABASE_URL


def build_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False)
    # FastAPI はスレッドプールで同期ルートを実行するため same_thread チェックを外す
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, echo=False, **kwargs)


engine = build_engine(DATABASE_URL)


class BaseModel(SQLModel):
    __abstract__ = True

    created_at: datetime = Field(
        default_factory=datetime.now,
    )
    updated_at: datetime = Field(
        default_factory=datetime.now,
        sa_column_kwargs={"onupdate": datetime.now},
    )


def get_db():
    with Session(engine) as session:
        yield session


def create_db_and_tables():
    from plantpal import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
