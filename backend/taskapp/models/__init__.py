from taskapp.models.user import User
from taskapp.models.refresh_token import RefreshToken
from taskapp.models.task import Task, TaskPriority, TaskStatus

__all__ = [
    "User",
    "RefreshToken",
    "Task",
    "TaskPriority",
    "TaskStatus",
]
