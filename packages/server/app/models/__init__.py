# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .team import Team, TeamMember  # noqa: F401
from .task import Task, TaskAssignment  # noqa: F401
from .dependency import TaskDependency  # noqa: F401
from .activity import Activity  # noqa: F401
