from typing import Any, Optional

from pydantic import BaseModel, Field

from plantpal.care import HealthStatus


class AgentRequest(BaseModel):
    """エージェントへの指示。保存はしない。

    必須項目の欠落はルーター側で 400 として扱うため、ここでは任意にしている。
    """

    plantId: Optional[str] = None
    action: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class AgentResponse(BaseModel):
    plantId: str
    status: str = "updated"
    happiness: Optional[int] = None
    healthStatus: Optional[HealthStatus] = None
    watering_interval_days: Optional[int] = None
    fertilizing_interval_days: Optional[int] = None
    recommendations: Optional[str] = None


class AgentSuggestion(BaseModel):
    """AI の応答を正規化したもの。各項目は AI が意見を返さなければ None"""

    happiness: Optional[int] = None
    health_status: Optional[HealthStatus] = None
    watering_interval_days: Optional[int] = None
    fertilizing_interval_days: Optional[int] = None
    recommendations: Optional[str] = None


class SessionImage(BaseModel):
    dataUrl: Any = None
