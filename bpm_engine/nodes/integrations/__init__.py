"""Integration nodes."""

from .database import CrudNode, DatabaseNode
from .http_request import ApiNode, WebhookNode

__all__ = ["ApiNode", "CrudNode", "DatabaseNode", "WebhookNode"]
