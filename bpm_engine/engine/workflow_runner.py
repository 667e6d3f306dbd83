"""
Workflow runner - the instance state machine.

An instance advances through cursors. Each cursor sits on one node; the
runner executes that node and applies the outcome (move, suspend, fork,
fail, finish) until no cursor is ready. Suspended cursors are resumed
later by a completed task or a fired timer.

Callers must hold the instance lock around every entry point.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from ..core.exceptions import WorkflowEngineError
from .graph import find_join_node
from .types import (
    Advance,
    Cursor,
    CursorState,
    EngineServices,
    EventType,
    Fail,
    Finish,
    Fork,
    ForkState,
    HistoryAction,
    HistoryEntry,
    InstanceContext,
    InstanceStatus,
    Suspend,
    TaskType,
    WorkflowInstance,
)

if TYPE_CHECKING:
    from ..storage.base import InstanceStore
    from .event_bus import EventPublisher
    from .node_registry import NodeRegistryClass
    from .types import Edge, ExecutionOutcome, Node, Task, Timer, WorkflowDefinition

logger = logging.getLogger(__name__)

ERROR_HANDLE = "error"
APPROVAL_HANDLES = {"approved": "true", "rejected": "false"}


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class _Changes:
    """What one step changed besides the instance; written with it in one store call."""

    history: list[HistoryEntry] = field(default_factory=list)
    events: list[tuple[EventType, dict[str, Any]]] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    consumed_timers: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.history or self.events or self.tasks or self.consumed_timers)


class WorkflowRunner:
    """Drives workflow instances node by node."""

    def __init__(
        self,
        store: InstanceStore,
        services: EngineServices,
        events: EventPublisher,
        registry: NodeRegistryClass | None = None,
    ) -> None:
        from .node_registry import node_registry

        self._store = store
        self._services = services
        self._events = events
        self._registry: NodeRegistryClass = registry or node_registry

    # --- Entry points ---

    async def start(
        self,
        instance_id: str,
        definition: WorkflowDefinition,
        initial_data: dict[str, Any],
        started_by: str | None,
    ) -> WorkflowInstance:
        """Create an instance at the start node and drive it."""
        start_node = definition.start_node()
        if start_node is None:
            raise WorkflowEngineError(f'Definition "{definition.id}" has no start node')

        instance = WorkflowInstance(
            id=instance_id,
            definition_id=definition.id,
            definition_version=definition.version,
            status=InstanceStatus.RUNNING,
            started_by=started_by,
            started_at=self._services.clock.now(),
            data=dict(initial_data),
        )
        cursor = Cursor(id=_new_id(), node_id=start_node.id)
        instance.cursors[cursor.id] = cursor

        changes = _Changes()
        self._record(
            instance,
            changes,
            HistoryAction.INSTANCE_STARTED.value,
            node_id=start_node.id,
            actor=started_by,
            data={"definition_id": definition.id, "definition_version": definition.version},
        )
        changes.events.append((EventType.INSTANCE_STARTED, {"data": {"definition_id": definition.id}}))
        logger.info("Started instance %s of %s v%d", instance.id, definition.id, definition.version)

        await self.drive(instance, definition, changes)
        return instance

    async def resume_task(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        task: Task,
    ) -> None:
        """
        Merge a completed task's result into the instance and continue its cursor.

        The completed task is written together with the resumed instance,
        before any downstream node runs.
        """
        changes = _Changes(tasks=[task])
        actor = task.completed_by

        instance.data.update(task.result_data)
        if task.type == TaskType.APPROVAL:
            instance.data["decision"] = task.decision
        instance.data[task.node_id] = {
            "decision": task.decision,
            "completed_by": actor,
            "completed_at": task.completed_at.isoformat() if task.completed_at else None,
            "result": dict(task.result_data),
        }

        self._record(
            instance,
            changes,
            HistoryAction.TASK_COMPLETED.value,
            node_id=task.node_id,
            actor=actor,
            data={"task_id": task.id, "decision": task.decision},
        )
        changes.events.append(
            (
                EventType.TASK_COMPLETED,
                {
                    "task_id": task.id,
                    "node_id": task.node_id,
                    "data": {"title": task.title, "decision": task.decision, "completed_by": actor},
                    "extra_recipients": task.principal_ids,
                },
            )
        )

        cursor = instance.cursors.get(task.cursor_id)
        node = definition.get_node(task.node_id)
        if instance.status != InstanceStatus.RUNNING or cursor is None or node is None:
            logger.warning("Task %s completed but instance %s has no cursor waiting on it", task.id, instance.id)
            await self._flush(instance, changes)
            return

        cursor.state = CursorState.READY
        edges = self._task_edges(definition, node, task)
        self._take_edges(instance, definition, cursor, node, edges, changes)
        await self._flush(instance, changes)
        await self.drive(instance, definition)

    async def resume_timer(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        timer: Timer,
    ) -> None:
        """
        Continue the cursor that was waiting on a timer.

        The timer is consumed in the same write as the resumed instance. A
        timer nobody waits on any more is only consumed.
        """
        changes = _Changes(consumed_timers=[timer.id])
        cursor = instance.cursors.get(timer.cursor_id)
        node = definition.get_node(timer.node_id)
        waiting = (
            instance.status == InstanceStatus.RUNNING
            and cursor is not None
            and cursor.state == CursorState.WAITING
            and cursor.node_id == timer.node_id
        )
        if not waiting or node is None:
            logger.debug("Ignoring timer %s: instance %s no longer waits on it", timer.id, instance.id)
            await self._flush(instance, changes)
            return

        self._record(
            instance,
            changes,
            HistoryAction.TIMER_FIRED.value,
            node_id=timer.node_id,
            data={"timer_id": timer.id},
        )
        cursor.state = CursorState.READY
        self._take_edges(instance, definition, cursor, node, self._default_edges(definition, node.id), changes)
        await self._flush(instance, changes)
        await self.drive(instance, definition)

    async def cancel(self, instance: WorkflowInstance, actor_user_id: str | None) -> None:
        """Cancel a running instance with its open tasks and pending timers."""
        changes = _Changes()
        await self._release_resources(instance, changes)
        self._terminate(instance, InstanceStatus.CANCELLED)
        self._record(instance, changes, HistoryAction.INSTANCE_CANCELLED.value, actor=actor_user_id)
        changes.events.append((EventType.INSTANCE_CANCELLED, {"data": {"cancelled_by": actor_user_id}}))
        logger.info("Cancelled instance %s", instance.id)
        await self._flush(instance, changes)

    # --- Drive loop ---

    async def drive(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        changes: _Changes | None = None,
    ) -> None:
        """Run ready cursors until every cursor waits or the instance is terminal."""
        pending = changes or _Changes()

        while instance.status == InstanceStatus.RUNNING:
            cursor = self._next_ready(instance)
            if cursor is None:
                break
            await self._step(instance, definition, cursor, pending)
            await self._flush(instance, pending)
            pending = _Changes()

        if pending:
            await self._flush(instance, pending)

    def _next_ready(self, instance: WorkflowInstance) -> Cursor | None:
        return next((c for c in instance.cursors.values() if c.state == CursorState.READY), None)

    async def _step(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        cursor: Cursor,
        changes: _Changes,
    ) -> None:
        node = definition.get_node(cursor.node_id)
        if node is None:
            await self._fail_cursor(
                instance, definition, cursor, None, Fail(reason=f'Unknown node "{cursor.node_id}"'), changes
            )
            return

        outcome = await self._execute(instance, definition, cursor, node)
        if outcome.record is not None:
            self._record(instance, changes, outcome.record.action, node_id=node.id, data=outcome.record.data)

        if isinstance(outcome, Advance):
            edges = self._default_edges(definition, node.id)
            if outcome.labels:
                edges = [e for e in definition.outgoing(node.id) if e.handle in outcome.labels]
                if not edges:
                    reason = f'No outgoing edge of "{node.display_name}" matches {sorted(outcome.labels)}'
                    await self._fail_cursor(
                        instance, definition, cursor, node, Fail(reason=reason, error_type="NoMatchingBranch"), changes
                    )
                    return
            changes.events.append((EventType.NODE_COMPLETED, {"node_id": node.id, "data": {"type": node.type}}))
            self._take_edges(instance, definition, cursor, node, edges, changes)
        elif isinstance(outcome, Suspend):
            cursor.state = CursorState.WAITING
        elif isinstance(outcome, Fork):
            changes.events.append((EventType.NODE_COMPLETED, {"node_id": node.id, "data": {"type": node.type}}))
            self._fork(instance, definition, cursor, node, self._default_edges(definition, node.id), changes)
        elif isinstance(outcome, Finish):
            changes.events.append((EventType.NODE_COMPLETED, {"node_id": node.id, "data": {"type": node.type}}))
            self._end_branch(instance, cursor, node.id, changes)
        elif isinstance(outcome, Fail):
            if node.continue_on_fail:
                self._continue_after_failure(instance, definition, cursor, node, outcome, changes)
            else:
                await self._fail_cursor(instance, definition, cursor, node, outcome, changes)

    async def _execute(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        cursor: Cursor,
        node: Node,
    ) -> ExecutionOutcome:
        """Run the node's executor with its retry policy; errors become Fail outcomes."""
        executor = self._registry.get(node.type)
        ctx = InstanceContext(instance=instance, definition=definition, cursor=cursor, services=self._services)

        max_retries = node.retry_on_fail
        last_error: Exception | None = None
        for attempt in range(max_retries + 1):
            try:
                return await executor.execute(ctx, node)
            except Exception as e:
                last_error = e
                if attempt < max_retries:
                    delay = node.retry_delay * (node.retry_backoff**attempt) / 1000
                    logger.warning(
                        "Node %s of instance %s failed (attempt %d/%d), retrying in %.3fs: %s",
                        node.id,
                        instance.id,
                        attempt + 1,
                        max_retries + 1,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)

        error_msg = last_error.message if isinstance(last_error, WorkflowEngineError) else str(last_error)
        retry_info = f" (after {max_retries + 1} attempts)" if max_retries > 0 else ""
        logger.warning("Node %s of instance %s failed: %s%s", node.id, instance.id, error_msg, retry_info)
        return Fail(reason=f"{error_msg}{retry_info}", error_type=type(last_error).__name__)

    # --- Routing ---

    def _task_edges(self, definition: WorkflowDefinition, node: Node, task: Task) -> list[Edge]:
        """Approvals follow the true/false handle of their decision when wired, else the default edges."""
        edges = self._default_edges(definition, node.id)
        if task.type == TaskType.APPROVAL:
            handle = APPROVAL_HANDLES.get(task.decision or "")
            matching = [e for e in edges if handle and e.handle == handle]
            if matching:
                return matching
        unlabeled = [e for e in edges if not e.handle]
        return unlabeled or edges

    def _default_edges(self, definition: WorkflowDefinition, node_id: str) -> list[Edge]:
        """Outgoing edges taken on success; the "error" handle is reserved for continue_on_fail."""
        return [e for e in definition.outgoing(node_id) if e.handle != ERROR_HANDLE]

    def _take_edges(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        cursor: Cursor,
        node: Node,
        edges: list[Edge],
        changes: _Changes,
    ) -> None:
        if not edges:
            # Nothing downstream: the branch ends here
            self._end_branch(instance, cursor, node.id, changes)
        elif len(edges) == 1:
            self._enter(instance, cursor, edges[0].target_id, changes)
        else:
            self._fork(instance, definition, cursor, node, edges, changes)

    def _enter(self, instance: WorkflowInstance, cursor: Cursor, target_id: str, changes: _Changes) -> None:
        """Move a cursor onto a node, parking it if that node is its fork's join."""
        fork = self._innermost_fork(instance, cursor)
        if fork is not None and fork.join_node_id == target_id:
            fork.arrived.append(cursor.id)
            instance.cursors.pop(cursor.id, None)
            self._check_join(instance, fork, changes)
            return
        cursor.node_id = target_id
        cursor.state = CursorState.READY

    def _fork(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        cursor: Cursor,
        node: Node,
        edges: list[Edge],
        changes: _Changes,
    ) -> None:
        targets = [e.target_id for e in edges]
        join_id = find_join_node(definition, node.id, targets)
        policy = getattr(node.config, "policy", "independent")
        instance.cursors.pop(cursor.id, None)

        if join_id is None:
            # Branches never meet: they count as more branches of the enclosing fork
            parent = self._innermost_fork(instance, cursor)
            if parent is not None:
                parent.expected += len(targets) - 1
            fork_path = list(cursor.fork_path)
        else:
            fork = ForkState(
                id=_new_id(),
                node_id=node.id,
                join_node_id=join_id,
                expected=len(targets),
                parent_path=list(cursor.fork_path),
                policy=policy,
            )
            instance.forks[fork.id] = fork
            fork_path = [*cursor.fork_path, fork.id]

        logger.debug("Instance %s forked %d branches at %s (join: %s)", instance.id, len(targets), node.id, join_id)
        for target_id in targets:
            child = Cursor(id=_new_id(), node_id=target_id, fork_path=list(fork_path))
            instance.cursors[child.id] = child
            self._enter(instance, child, target_id, changes)

    def _check_join(self, instance: WorkflowInstance, fork: ForkState, changes: _Changes) -> None:
        """Release the join once every live branch has arrived."""
        if fork.join_node_id is None or fork.expected <= 0 or len(fork.arrived) < fork.expected:
            return

        instance.forks.pop(fork.id, None)
        self._record(
            instance,
            changes,
            HistoryAction.PARALLEL_JOINED.value,
            node_id=fork.join_node_id,
            data={"fork_node_id": fork.node_id, "branches": len(fork.arrived)},
        )
        cursor = Cursor(id=_new_id(), node_id=fork.join_node_id, fork_path=list(fork.parent_path))
        instance.cursors[cursor.id] = cursor
        self._enter(instance, cursor, fork.join_node_id, changes)

    def _branch_lost(self, instance: WorkflowInstance, fork: ForkState, changes: _Changes) -> None:
        """A branch of this fork ended without reaching the join."""
        fork.expected -= 1
        if fork.expected > 0:
            self._check_join(instance, fork, changes)
            return

        # No branch will reach the join, so the enclosing branch is gone too
        instance.forks.pop(fork.id, None)
        if fork.parent_path:
            parent = instance.forks.get(fork.parent_path[-1])
            if parent is not None:
                self._branch_lost(instance, parent, changes)

    def _innermost_fork(self, instance: WorkflowInstance, cursor: Cursor) -> ForkState | None:
        if not cursor.fork_path:
            return None
        return instance.forks.get(cursor.fork_path[-1])

    # --- Branch termination ---

    def _end_branch(self, instance: WorkflowInstance, cursor: Cursor, node_id: str, changes: _Changes) -> None:
        instance.cursors.pop(cursor.id, None)
        fork = self._innermost_fork(instance, cursor)
        if fork is not None:
            self._branch_lost(instance, fork, changes)

        if not instance.cursors and instance.status == InstanceStatus.RUNNING:
            self._terminate(instance, InstanceStatus.COMPLETED, [node_id])
            self._record(instance, changes, HistoryAction.INSTANCE_COMPLETED.value, node_id=node_id)
            changes.events.append((EventType.INSTANCE_COMPLETED, {"node_id": node_id}))
            logger.info("Instance %s completed", instance.id)

    def _continue_after_failure(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        cursor: Cursor,
        node: Node,
        outcome: Fail,
        changes: _Changes,
    ) -> None:
        """Record the error and route along the "error" handle, else the unlabeled edges."""
        instance.data["error"] = {"node_id": node.id, "message": outcome.reason, "type": outcome.error_type}
        self._record(
            instance,
            changes,
            HistoryAction.NODE_FAILED.value,
            node_id=node.id,
            data={"error": outcome.reason, "error_type": outcome.error_type, "continued": True},
        )

        edges = definition.outgoing(node.id)
        error_edges = [e for e in edges if e.handle == ERROR_HANDLE]
        self._take_edges(instance, definition, cursor, node, error_edges or [e for e in edges if not e.handle], changes)

    async def _fail_cursor(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        cursor: Cursor,
        node: Node | None,
        outcome: Fail,
        changes: _Changes,
    ) -> None:
        node_id = node.id if node else cursor.node_id
        instance.error = outcome.reason
        self._record(
            instance,
            changes,
            HistoryAction.NODE_FAILED.value,
            node_id=node_id,
            data={"error": outcome.reason, "error_type": outcome.error_type},
        )

        # Under all_or_nothing any failing branch fails the whole instance
        strict = any(
            instance.forks[fork_id].policy == "all_or_nothing"
            for fork_id in cursor.fork_path
            if fork_id in instance.forks
        )

        instance.cursors.pop(cursor.id, None)
        fork = self._innermost_fork(instance, cursor)
        if fork is not None and not strict:
            self._branch_lost(instance, fork, changes)

        if strict or not instance.cursors:
            await self._fail_instance(instance, node_id, outcome.reason, changes)

    async def _fail_instance(self, instance: WorkflowInstance, node_id: str, reason: str, changes: _Changes) -> None:
        await self._release_resources(instance, changes)
        self._terminate(instance, InstanceStatus.FAILED, [node_id])
        instance.error = reason
        self._record(instance, changes, HistoryAction.INSTANCE_FAILED.value, node_id=node_id, data={"error": reason})
        changes.events.append((EventType.INSTANCE_FAILED, {"node_id": node_id, "data": {"error": reason}}))
        logger.info("Instance %s failed at %s: %s", instance.id, node_id, reason)

    async def _release_resources(self, instance: WorkflowInstance, changes: _Changes) -> None:
        """Cancel the open tasks and pending timers an instance owns, with the terminal write."""
        changes.tasks.extend(await self._services.task_manager.cancel_open_tasks(instance.id))
        changes.consumed_timers.extend(await self._services.timer_scheduler.disarm_instance(instance.id))

    def _terminate(
        self,
        instance: WorkflowInstance,
        status: InstanceStatus,
        node_ids: list[str] | None = None,
    ) -> None:
        if node_ids is None:
            node_ids = list(dict.fromkeys(c.node_id for c in instance.cursors.values()))
        instance.status = status
        instance.completed_at = self._services.clock.now()
        instance.current_node_ids = node_ids or list(instance.current_node_ids)
        instance.cursors.clear()
        instance.forks.clear()
        instance.loop_state.clear()

    # --- Persistence ---

    def _record(
        self,
        instance: WorkflowInstance,
        changes: _Changes,
        action: str,
        node_id: str | None = None,
        actor: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        changes.history.append(
            HistoryEntry(
                id=_new_id(),
                instance_id=instance.id,
                node_id=node_id,
                action=action,
                timestamp=self._services.clock.now(),
                actor_user_id=actor,
                data=data,
            )
        )

    async def _flush(self, instance: WorkflowInstance, changes: _Changes) -> None:
        """Persist the instance with everything the step changed, then publish events."""
        if instance.status == InstanceStatus.RUNNING:
            instance.current_node_ids = list(dict.fromkeys(c.node_id for c in instance.cursors.values()))
        await self._store.save_instance(
            instance,
            changes.history,
            tasks=changes.tasks,
            consumed_timer_ids=changes.consumed_timers,
        )

        for event_type, kwargs in changes.events:
            await self._events.emit(instance, event_type, **kwargs)
