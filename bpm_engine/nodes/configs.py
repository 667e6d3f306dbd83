"""Per-type node configuration models.

Node configs are decoded once, when a definition is loaded. Unknown keys and
malformed values are rejected so executors never see raw dicts.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DURATION_UNITS: dict[str, int] = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
}


def _require_text(value: str, name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{name} must not be empty")
    return value


class NodeConfig(BaseModel):
    """Base class for node configs."""

    model_config = ConfigDict(extra="forbid")


class EmptyConfig(NodeConfig):
    """Config for nodes without options."""


class EndConfig(NodeConfig):
    message: str | None = None


# --- Human tasks ---


class TaskConfig(NodeConfig):
    """Config shared by task, approval and form nodes."""

    assignee: str | dict[str, Any] = Field(
        ...,
        description='"user:<id>", "group:<id>", a bare user id, or {"type": ..., "id": ...}',
    )
    title: str | None = None
    instructions: str | None = None
    priority: Literal["low", "medium", "high", "critical"] = "medium"
    due_in: float | None = Field(default=None, gt=0)
    due_unit: Literal["seconds", "minutes", "hours", "days"] = "hours"
    form_schema_ref: str | None = None

    @field_validator("assignee")
    @classmethod
    def _assignee_not_empty(cls, value: str | dict[str, Any]) -> str | dict[str, Any]:
        if isinstance(value, dict):
            if not (value.get("id") or value.get("value")):
                raise ValueError("assignee must name an id")
            return value
        return _require_text(value, "assignee")

    @property
    def due_seconds(self) -> float | None:
        if self.due_in is None:
            return None
        return self.due_in * DURATION_UNITS[self.due_unit]


class FormConfig(TaskConfig):
    form_schema_ref: str | None = Field(default=None, description="Reference to the form to fill")


# --- Flow control ---


class ConditionConfig(NodeConfig):
    expression: str
    true_label: str = "true"
    false_label: str = "false"

    @field_validator("expression")
    @classmethod
    def _expression_not_empty(cls, value: str) -> str:
        return _require_text(value, "expression")


class SwitchConfig(NodeConfig):
    variable: str = Field(..., description="Expression whose value selects the outgoing handle")
    default_label: str | None = "default"

    @field_validator("variable")
    @classmethod
    def _variable_not_empty(cls, value: str) -> str:
        return _require_text(value, "variable")


class TimerConfig(NodeConfig):
    duration: float = Field(..., gt=0)
    unit: Literal["seconds", "minutes", "hours", "days"] = "seconds"

    @property
    def seconds(self) -> float:
        return self.duration * DURATION_UNITS[self.unit]


class ParallelConfig(NodeConfig):
    policy: Literal["independent", "all_or_nothing"] = "independent"


class LoopConfig(NodeConfig):
    """Either iterate over a collection or repeat while a condition holds."""

    collection: str | None = Field(default=None, description="Expression yielding a list")
    item_variable: str = "item"
    index_variable: str = "index"
    condition: str | None = None

    @model_validator(mode="after")
    def _one_mode(self) -> LoopConfig:
        if bool(self.collection) == bool(self.condition):
            raise ValueError("loop requires exactly one of collection or condition")
        return self


# --- Data ---


class VariableConfig(NodeConfig):
    name: str | None = None
    value: Any = None
    values: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _has_target(self) -> VariableConfig:
        if not self.name and not self.values:
            raise ValueError("variable requires name or values")
        return self


class CalculateConfig(NodeConfig):
    name: str
    expression: str

    @field_validator("name", "expression")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        return _require_text(value, "field")


class ScriptConfig(NodeConfig):
    code: str
    timeout: float | None = Field(default=None, gt=0)


# --- Output ---


class NotificationBaseConfig(NodeConfig):
    recipients: list[str] | str = Field(default_factory=list)
    fail_on_error: bool = False


class EmailConfig(NotificationBaseConfig):
    subject: str = ""
    body: str = ""
    body_format: Literal["plain", "markdown", "html"] = "markdown"


class SmsConfig(NotificationBaseConfig):
    message: str = ""


class NotificationConfig(NotificationBaseConfig):
    title: str | None = None
    message: str = ""
    level: Literal["info", "warning", "error"] = "info"


class LogConfig(NodeConfig):
    message: str
    level: Literal["debug", "info", "warning", "error"] = "info"


# --- Integrations ---


class ApiConfig(NodeConfig):
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    query: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    response_type: Literal["json", "text"] = "json"
    result_variable: str | None = None
    fail_on_status: bool = True
    timeout: float | None = Field(default=None, gt=0)

    @field_validator("url")
    @classmethod
    def _url_not_empty(cls, value: str) -> str:
        return _require_text(value, "url")


class WebhookConfig(ApiConfig):
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"] = "POST"


class DatabaseConfig(NodeConfig):
    query: str
    params: dict[str, Any] = Field(default_factory=dict)
    result_variable: str | None = None

    @field_validator("query")
    @classmethod
    def _query_not_empty(cls, value: str) -> str:
        return _require_text(value, "query")


class CrudConfig(NodeConfig):
    operation: Literal["create", "read", "update", "delete"]
    table: str
    values: dict[str, Any] = Field(default_factory=dict)
    where: dict[str, Any] = Field(default_factory=dict)
    columns: list[str] | None = None
    limit: int | None = Field(default=None, gt=0)
    result_variable: str | None = None

    @model_validator(mode="after")
    def _check_operation(self) -> CrudConfig:
        if self.operation in ("create", "update") and not self.values:
            raise ValueError(f"{self.operation} requires values")
        if self.operation in ("update", "delete") and not self.where:
            raise ValueError(f"{self.operation} requires where")
        return self
