"""Run coordinator — drives the work-list scheduler and the node executors.

One call to :meth:`RunCoordinator.run` is one run:

1. validate the flow (structural errors become a failed result, nothing runs);
2. seed input nodes, then repeatedly take the ready wave and execute it
   concurrently, joining the whole wave before advancing;
3. commit results in ascending node id and let the scheduler fire or prune
   downstream edges;
4. finish with the lowest-id output node reached, or ``NoOutputReached``.

The first executor error aborts the run and cancels the rest of the wave.
Flow errors come back as a failed :class:`RunResult`; only cancellation of
the calling task itself propagates.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from agentflow.compiler.ir import IRFlow, IRNode
from agentflow.compiler.validator import ensure_valid
from agentflow.config import settings
from agentflow.connectors.api_client import ApiClient
from agentflow.connectors.providers import ProviderRegistry, build_default_registry
from agentflow.runtime.context import ExecutionContext
from agentflow.runtime.errors import (
    ErrorKind,
    FlowError,
    NoOutputReachedError,
    RunCancelledError,
)
from agentflow.runtime.node_executors import ExecutorServices, NodeInputs, NodeResult, execute_node
from agentflow.runtime.scheduler import WorkListScheduler
from agentflow.utils import run_cancel
from agentflow.utils.logger import ctx_node_id, ctx_run_id
from agentflow.utils.metrics import record_node_execution, record_run_completed, record_run_started
from agentflow.utils.tracing import get_tracer

logger = logging.getLogger("agentflow.coordinator")


@dataclass
class RunResult:
    run_id: str
    success: bool
    output: Any = None
    error: ErrorKind | None = None
    message: str | None = None
    node_id: str | None = None
    outputs: dict[str, Any] = field(default_factory=dict)
    execution_order: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        """Invocation-interface shape: ``{success, output?, error?, errorKind?}``."""
        if self.success:
            return {"success": True, "output": self.output}
        return {
            "success": False,
            "error": self.message or (self.error.value if self.error else "Unknown error"),
            "errorKind": self.error.value if self.error else None,
        }


class RunCoordinator:
    """Executes flows.  Holds collaborators only; all per-run state is local to :meth:`run`."""

    def __init__(
        self,
        providers: ProviderRegistry | None = None,
        api_client: ApiClient | None = None,
        max_concurrency: int | None = None,
        timeout: float | None = None,
    ):
        self.providers = providers if providers is not None else build_default_registry()
        self.api_client = api_client or ApiClient()
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENT_NODES
        self.timeout = timeout if timeout is not None else settings.RUN_TIMEOUT_SECONDS
        self._tracer = get_tracer("agentflow.coordinator")

    async def run(
        self,
        flow: IRFlow,
        initial_input: Any = None,
        *,
        inputs: dict[str, Any] | None = None,
        run_id: str | None = None,
        timeout: float | None = None,
    ) -> RunResult:
        run_id = run_id or str(uuid.uuid4())
        limit = self.timeout if timeout is None else timeout
        ctx = ExecutionContext(run_id, initial_input)
        services = ExecutorServices(
            providers=self.providers,
            api_client=self.api_client,
            run_id=run_id,
            initial_input=initial_input,
            node_inputs=dict(inputs or {}),
        )

        run_token = ctx_run_id.set(run_id)
        cancel_event = run_cancel.register(run_id)
        record_run_started()
        started = time.monotonic()
        logger.info("Run %s started (%d nodes, %d edges)", run_id, len(flow.nodes), len(flow.edges))
        result: RunResult | None = None
        try:
            try:
                ensure_valid(flow)
                if limit:
                    result = await asyncio.wait_for(self._drive(flow, ctx, services, cancel_event), limit)
                else:
                    result = await self._drive(flow, ctx, services, cancel_event)
            except asyncio.TimeoutError:
                logger.warning("Run %s timed out after %ss", run_id, limit)
                result = self._failure(ctx, ErrorKind.TIMEOUT, f"Run exceeded the {limit}s time limit.")
            except FlowError as exc:
                logger.warning("Run %s failed: %s (%s)", run_id, exc, exc.kind.value)
                result = self._failure(ctx, exc.kind, str(exc), exc.node_id)
        finally:
            run_cancel.deregister(run_id)
            ctx_run_id.reset(run_token)
            # No result means an exception is propagating.
            if result is None:
                status = "error"
            else:
                status = "success" if result.success else result.error.value
            record_run_completed(time.monotonic() - started, status)
            logger.info("Run %s finished: %s", run_id, status)
        return result

    # ── Internal helpers ───────────────────────────────────────

    async def _drive(
        self,
        flow: IRFlow,
        ctx: ExecutionContext,
        services: ExecutorServices,
        cancel_event: asyncio.Event,
    ) -> RunResult:
        scheduler = WorkListScheduler(flow)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        while scheduler.has_ready():
            if cancel_event.is_set():
                raise RunCancelledError("Run was cancelled.")
            wave = scheduler.pop_ready()
            tasks: dict[asyncio.Task, str] = {}
            for nid in wave:
                ctx.mark_dispatched(nid)
                node_inputs = NodeInputs()
                for edge in scheduler.fired_incoming(nid):
                    node_inputs.add(edge.handle, edge.source, ctx[edge.source])
                task = asyncio.create_task(self._run_node(flow.nodes[nid], node_inputs, services, semaphore))
                tasks[task] = nid

            results = await self._join_wave(tasks, cancel_event)

            for nid in wave:
                result = results[nid]
                ctx.store(nid, result.value, result.branch)
                scheduler.complete(nid, result.branch)

        scheduler.check_drained()

        outputs = {nid: ctx[nid] for nid in flow.output_nodes() if nid in ctx}
        if not outputs:
            raise NoOutputReachedError("Flow finished without reaching an output node.")
        first = min(outputs)
        return RunResult(
            run_id=ctx.run_id,
            success=True,
            output=outputs[first],
            outputs=outputs,
            execution_order=list(ctx.execution_order),
        )

    async def _join_wave(self, tasks: dict[asyncio.Task, str], cancel_event: asyncio.Event) -> dict[str, NodeResult]:
        """Wait for every task in the wave; fail fast on the first error or a cancel signal."""
        results: dict[str, NodeResult] = {}
        cancel_waiter = asyncio.create_task(cancel_event.wait())
        pending: set[asyncio.Task] = set(tasks)
        try:
            while pending:
                done, _ = await asyncio.wait(pending | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if cancel_waiter in done:
                    raise RunCancelledError("Run was cancelled.")
                # Several nodes may finish together; surface the lowest id's error first.
                for task in sorted(done, key=lambda t: tasks[t]):
                    pending.discard(task)
                    results[tasks[task]] = task.result()
        finally:
            cancel_waiter.cancel()
            outstanding = [t for t in tasks if not t.done()]
            for task in outstanding:
                task.cancel()
            if outstanding:
                await asyncio.gather(*outstanding, return_exceptions=True)
            for task in tasks:
                if task.done() and not task.cancelled():
                    task.exception()  # mark retrieved
        return results

    async def _run_node(
        self,
        node: IRNode,
        inputs: NodeInputs,
        services: ExecutorServices,
        semaphore: asyncio.Semaphore,
    ) -> NodeResult:
        async with semaphore:
            token = ctx_node_id.set(node.node_id)
            started = time.monotonic()
            try:
                with self._tracer.start_as_current_span(
                    f"node {node.node_id}",
                    attributes={"agentflow.run_id": services.run_id, "agentflow.node_id": node.node_id, "agentflow.node_kind": node.type},
                ):
                    logger.debug("Executing node %s (%s)", node.node_id, node.type)
                    result = await execute_node(node, inputs, services)
            except asyncio.CancelledError:
                record_node_execution(node.type, "cancelled", time.monotonic() - started)
                raise
            except FlowError:
                record_node_execution(node.type, "failed", time.monotonic() - started)
                raise
            finally:
                ctx_node_id.reset(token)
            record_node_execution(node.type, "completed", time.monotonic() - started)
            return result

    @staticmethod
    def _failure(ctx: ExecutionContext, kind: ErrorKind, message: str, node_id: str | None = None) -> RunResult:
        return RunResult(
            run_id=ctx.run_id,
            success=False,
            error=kind,
            message=message,
            node_id=node_id,
            execution_order=list(ctx.execution_order),
        )
