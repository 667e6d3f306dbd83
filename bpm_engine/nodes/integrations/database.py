"""Database and CRUD nodes - run statements on the configured database."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, TYPE_CHECKING
from uuid import UUID

from sqlalchemy import column, delete, insert, select, table, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ...core.exceptions import ExternalCallError
from ..base import BaseNode, NodeTypeDescription
from ..configs import CrudConfig, DatabaseConfig

if TYPE_CHECKING:
    from sqlalchemy.engine import CursorResult

    from ...engine.types import ExecutionOutcome, InstanceContext, Node

IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _serialize_value(val: Any) -> Any:
    """Convert database types to JSON-safe values."""
    if isinstance(val, Decimal):
        return float(val)
    if isinstance(val, (datetime, date, time)):
        return val.isoformat()
    if isinstance(val, timedelta):
        return val.total_seconds()
    if isinstance(val, bytes):
        return val.hex()
    if isinstance(val, UUID):
        return str(val)
    return val


def _collect(result: CursorResult) -> dict[str, Any]:
    if result.returns_rows:
        rows = [{k: _serialize_value(v) for k, v in row._mapping.items()} for row in result]
        return {"rows": rows, "row_count": len(rows)}
    return {"rows": [], "row_count": result.rowcount}


def _require_engine(ctx: InstanceContext, node: Node) -> AsyncEngine:
    if ctx.services.database is None:
        raise ExternalCallError("No database is configured for the engine", node_id=node.id)
    return ctx.services.database


def _identifier(name: str) -> str:
    if not IDENTIFIER.match(name):
        raise ValueError(f'Invalid SQL identifier: "{name}"')
    return name


class DatabaseNode(BaseNode):
    """Database node - execute a parameterized SQL statement."""

    node_description = NodeTypeDescription(
        name="database",
        display_name="Database Query",
        description="Execute a parameterized SQL statement",
        icon="fa:database",
        group=["integrations"],
    )
    config_model = DatabaseConfig

    @property
    def type(self) -> str:
        return "database"

    @property
    def description(self) -> str:
        return "Execute a parameterized SQL statement"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        config: DatabaseConfig = node.config  # type: ignore[assignment]
        engine = _require_engine(ctx, node)

        # Values are bound, never interpolated into the statement
        params = self.resolve(ctx, config.params)

        try:
            async with engine.begin() as conn:
                result = await conn.execute(text(config.query), params)
                output = _collect(result)
        except SQLAlchemyError as e:
            raise ExternalCallError(f"Database statement failed: {e}", node_id=node.id) from e

        ctx.data[config.result_variable or node.id] = output
        return self.advance()


class CrudNode(BaseNode):
    """CRUD node - create, read, update or delete rows of a table."""

    node_description = NodeTypeDescription(
        name="crud",
        display_name="CRUD",
        description="Create, read, update or delete table rows",
        icon="fa:table",
        group=["integrations"],
    )
    config_model = CrudConfig

    @property
    def type(self) -> str:
        return "crud"

    @property
    def description(self) -> str:
        return "Create, read, update or delete table rows"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        config: CrudConfig = node.config  # type: ignore[assignment]
        engine = _require_engine(ctx, node)

        values = self.resolve(ctx, config.values)
        where = self.resolve(ctx, config.where)
        names = set(values) | set(where) | set(config.columns or [])
        target = table(_identifier(config.table), *(column(_identifier(n)) for n in sorted(names)))
        conditions = [target.c[name] == value for name, value in where.items()]

        if config.operation == "create":
            statement = insert(target).values(**values)
        elif config.operation == "read":
            if config.columns:
                statement = select(*(target.c[name] for name in config.columns))
            else:
                statement = select(text("*")).select_from(target)
            statement = statement.where(*conditions)
            if config.limit:
                statement = statement.limit(config.limit)
        elif config.operation == "update":
            statement = update(target).where(*conditions).values(**values)
        else:
            statement = delete(target).where(*conditions)

        try:
            async with engine.begin() as conn:
                result = await conn.execute(statement)
                output = _collect(result)
        except SQLAlchemyError as e:
            raise ExternalCallError(f"{config.operation} on {config.table} failed: {e}", node_id=node.id) from e

        ctx.data[config.result_variable or node.id] = output
        return self.advance()
