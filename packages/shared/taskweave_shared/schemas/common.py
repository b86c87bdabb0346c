from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for API payloads: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"
    CANCELLED = "CANCELLED"

class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

class TeamRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

# Roles allowed to modify any task of the team
ELEVATED_ROLES = frozenset({TeamRole.OWNER.value, TeamRole.ADMIN.value})

class ActivityType(str, Enum):
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_COMPLETED = "TASK_COMPLETED"
    TEAM_CREATED = "TEAM_CREATED"
    TEAM_JOINED = "TEAM_JOINED"

class EntityType(str, Enum):
    TASK = "TASK"
    TEAM = "TEAM"

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int
    details: Optional[dict] = None

class ErrorResponse(BaseModel):
    error: ErrorBody
