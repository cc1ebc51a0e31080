from .agent import AgentRequest, AgentResponse, AgentSuggestion, SessionImage
from .plant import Plant, PlantBase, PlantCreate, PlantRead
from .task import Task, TaskBase, TaskRead

__all__ = [
    "AgentRequest",
    "AgentResponse",
    "AgentSuggestion",
    "SessionImage",
    "Plant",
    "PlantBase",
    "PlantCreate",
    "PlantRead",
    "Task",
    "TaskBase",
    "TaskRead",
]
