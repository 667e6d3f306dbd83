"""Resolution of task assignees to concrete principals."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

from .types import AssigneeResolution

logger = logging.getLogger(__name__)


def parse_assignee(assignee: str | Mapping[str, Any]) -> tuple[str, str]:
    """
    Split an assignee into (type, id).

    Accepts "user:<id>", "group:<id>", a bare user id, or a mapping with
    "type" and "id" (or "value") keys.
    """
    if isinstance(assignee, Mapping):
        assignee_type = str(assignee.get("type") or "user").lower()
        assignee_id = str(assignee.get("id") or assignee.get("value") or "")
    else:
        prefix, sep, rest = str(assignee).partition(":")
        if sep and prefix.lower() in ("user", "group"):
            assignee_type, assignee_id = prefix.lower(), rest
        else:
            assignee_type, assignee_id = "user", str(assignee)

    assignee_id = assignee_id.strip()
    if assignee_type not in ("user", "group"):
        raise ValueError(f'Unknown assignee type "{assignee_type}"')
    if not assignee_id:
        raise ValueError("Assignee id is empty")
    return assignee_type, assignee_id


class AssigneeResolver(ABC):
    """Maps an assignee to the users allowed to act on a task."""

    @abstractmethod
    async def resolve(self, assignee: str | Mapping[str, Any]) -> AssigneeResolution:
        ...


class StaticAssigneeResolver(AssigneeResolver):
    """Resolver backed by a fixed group -> members map (``settings.assignee_groups``)."""

    def __init__(self, groups: Mapping[str, list[str]] | None = None) -> None:
        self._groups = {name: list(members) for name, members in (groups or {}).items()}

    async def resolve(self, assignee: str | Mapping[str, Any]) -> AssigneeResolution:
        assignee_type, assignee_id = parse_assignee(assignee)
        if assignee_type == "user":
            return AssigneeResolution(type="user", assignee_id=assignee_id, principal_ids=[assignee_id])

        members = self._groups.get(assignee_id, [])
        if not members:
            logger.warning("Group %s has no known members", assignee_id)
        return AssigneeResolution(type="group", assignee_id=assignee_id, principal_ids=list(members))
