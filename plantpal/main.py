from contextlib import asynccontextmanager
from datetime import datetime, timezone
from logging import getLogger
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from plantpal import config, db, handler, models
from plantpal.ai import PlantAgentClient, get_agent_client
from plantpal.auth import get_current_user_id
from plantpal.config import set_logger
from plantpal.crud import utils as crud
from plantpal.session_store import SessionImageStore

set_logger()
logger = getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    db.create_db_and_tables()
    app.state.session_store = SessionImageStore(
        ttl_seconds=config.SESSION_IMAGE_TTL_SECONDS,
        max_entries=config.SESSION_IMAGE_MAX_ENTRIES,
    )
    logger.info("🚀 PlantPal API を起動しました")
    try:
        yield
    finally:
        app.state.session_store.clear()


app = FastAPI(title="PlantPal API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"] if part != "body") or "body"
        messages.append(f"{loc}: {error['msg']}")
    return "; ".join(messages)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """リクエストの形式エラーは 400 と文字列の detail で返す"""
    detail = format_validation_errors(exc)
    logger.warning(f"リクエスト検証エラー: {request.url.path} {detail}")
    return JSONResponse(status_code=400, content={"detail": detail})


def get_session_store(request: Request) -> SessionImageStore:
    return request.app.state.session_store


def owned_plant(session: Session, plant_id: str, user_id: str) -> models.Plant:
    try:
        return crud.get_owned_plant(session, plant_id, user_id)
    except crud.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except crud.OwnershipError as e:
        raise HTTPException(status_code=403, detail=str(e))


def to_plant_read(plant: models.Plant) -> models.PlantRead:
    return models.PlantRead(**plant.model_dump(), health_status=plant.health_status)


@app.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post(
    "/api/vertex/plant-agent",
    response_model=models.AgentResponse,
    response_model_exclude_none=True,
)
def plant_agent(
    request: models.AgentRequest,
    session: Session = Depends(db.get_db),
    user_id: str = Depends(get_current_user_id),
    agent: PlantAgentClient = Depends(get_agent_client),
):
    if not request.plantId or not request.action:
        raise HTTPException(
            status_code=400, detail="Missing required fields: plantId, action"
        )
    # 所有者の確認が済むまでは何も書き込まない
    plant = owned_plant(session, request.plantId, user_id)

    try:
        return handler.dispatch(session, plant, request, agent)
    except (handler.UnknownActionError, handler.InvalidActionDataError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"plant-agent API エラー: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {e}")


@app.post("/api/plants", response_model=models.PlantRead, status_code=201)
def create_plant(
    plant: models.PlantCreate,
    session: Session = Depends(db.get_db),
    user_id: str = Depends(get_current_user_id),
):
    return to_plant_read(crud.create_plant(session, plant, user_id))


@app.get("/api/plants", response_model=list[models.PlantRead])
def list_plants(
    session: Session = Depends(db.get_db),
    user_id: str = Depends(get_current_user_id),
):
    return [to_plant_read(plant) for plant in crud.list_plants(session, user_id)]


@app.get("/api/plants/{plant_id}", response_model=models.PlantRead)
def get_plant(
    plant_id: str,
    session: Session = Depends(db.get_db),
    user_id: str = Depends(get_current_user_id),
):
    return to_plant_read(owned_plant(session, plant_id, user_id))


@app.delete("/api/plants/{plant_id}")
def delete_plant(
    plant_id: str,
    session: Session = Depends(db.get_db),
    user_id: str = Depends(get_current_user_id),
):
    crud.delete_plant(session, owned_plant(session, plant_id, user_id))
    return {"ok": True}


@app.get("/api/tasks", response_model=list[models.TaskRead])
def list_tasks(
    plant_id: Optional[str] = None,
    include_completed: bool = False,
    session: Session = Depends(db.get_db),
    user_id: str = Depends(get_current_user_id),
):
    return crud.list_tasks(session, user_id, plant_id, include_completed)


@app.post(
    "/api/tasks/{task_id}/complete",
    response_model=models.AgentResponse,
    response_model_exclude_none=True,
)
def complete_task(
    task_id: str,
    session: Session = Depends(db.get_db),
    user_id: str = Depends(get_current_user_id),
    agent: PlantAgentClient = Depends(get_agent_client),
):
    try:
        task = crud.get_owned_task(session, task_id, user_id)
    except crud.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except crud.OwnershipError as e:
        raise HTTPException(status_code=403, detail=str(e))

    try:
        return handler.complete_task(session, task, agent)
    except handler.TaskAlreadyCompletedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"タスク完了処理でエラー: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {e}")


@app.post("/api/session/{session_id}/image")
def put_session_image(
    session_id: str,
    body: models.SessionImage,
    store: SessionImageStore = Depends(get_session_store),
):
    if not body.dataUrl or not isinstance(body.dataUrl, str):
        raise HTTPException(status_code=400, detail="dataUrl required")
    if len(body.dataUrl.encode("utf-8")) > config.SESSION_IMAGE_MAX_BYTES:
        raise HTTPException(status_code=413, detail="dataUrl too large")
    store.put(session_id, body.dataUrl)
    return {"ok": True}


@app.get("/api/session/{session_id}/image")
def get_session_image(
    session_id: str, store: SessionImageStore = Depends(get_session_store)
):
    data_url = store.get(session_id)
    if data_url is None:
        return {"found": False}
    return {"found": True, "dataUrl": data_url}


@app.delete("/api/session/{session_id}")
def delete_session(session_id: str, store: SessionImageStore = Depends(get_session_store)):
    store.delete(session_id)
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("plantpal.main:app", host="0.0.0.0", port=config.API_PORT)
