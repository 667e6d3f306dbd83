"""Output nodes."""

from .log import LogNode
from .notify import EmailNode, NotificationNode, NotifyNode, SmsNode

__all__ = ["EmailNode", "LogNode", "NotificationNode", "NotifyNode", "SmsNode"]
