"""Database layer."""

from .models import (
    DefinitionModel,
    HistoryModel,
    InstanceModel,
    NotificationModel,
    SubscriptionModel,
    TaskModel,
    TimerModel,
)
from .session import build_engine, build_session_factory, init_db

__all__ = [
    "DefinitionModel",
    "HistoryModel",
    "InstanceModel",
    "NotificationModel",
    "SubscriptionModel",
    "TaskModel",
    "TimerModel",
    "build_engine",
    "build_session_factory",
    "init_db",
]
