"""
State machine engine built on LangGraph.

A `StateMachine` is assembled from a state class, a set of node functions
and a routing table. Every node is wrapped so that an exception raised inside
it becomes an error update on the state instead of escaping the run. The
routing table must cover every node; construction fails otherwise.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Any

from langgraph.checkpoint.memory import MemorySaver
from langgraph.errors import GraphRecursionError
from langgraph.graph import START, StateGraph

from task_orchestrator.orchestration.routing.table import (
    TERMINATE,
    NodeId,
    Route,
    RoutingTable,
    select_route,
)
from task_orchestrator.orchestration.states.agent_state import AgentState
from task_orchestrator.orchestration.states.workflow_stages import Phase
from task_orchestrator.utils.logging import TaskLogger, get_logger

logger = get_logger(__name__)

NodeFunction = Callable[[Any], Awaitable[dict[str, Any]]]

DEFAULT_RECURSION_LIMIT = 100


def error_update(error: BaseException | str) -> dict[str, Any]:
    """State update recording a node failure."""
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
    else:
        message = error
    return {"error": message, "current_phase": Phase.ERROR}


class StateMachine:
    """
    A compiled task graph.

    Nodes are async callables taking the current state and returning a
    partial update. Routing is evaluated after every node against the
    state with that update applied.
    """

    def __init__(
        self,
        state_cls: type[AgentState],
        nodes: dict[NodeId, NodeFunction],
        routes: RoutingTable,
        entry: NodeId | list[Route],
        checkpointer: MemorySaver | None = None,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
        name: str = "task",
    ):
        """
        Build and compile the graph.

        Args:
            state_cls: State model threaded through the graph
            nodes: Node functions keyed by id
            routes: Ordered routes for every node
            entry: Fixed entry node, or routes evaluated against the input
            checkpointer: Saver for in-process snapshots (a MemorySaver by default)
            recursion_limit: Maximum node visits per run
            name: Label used in log messages

        Raises:
            ValueError: If a node has no routes or a route targets an unknown node
        """
        self.state_cls = state_cls
        self.name = name
        self.recursion_limit = recursion_limit
        self.checkpointer = checkpointer if checkpointer is not None else MemorySaver()
        self.node_ids = list(nodes)
        self._validate(nodes, routes, entry)

        workflow = StateGraph(state_cls)

        for node_id, func in nodes.items():
            workflow.add_node(node_id.value, self._guard(node_id, func))

        path_map = {node_id.value: node_id.value for node_id in nodes}
        path_map[TERMINATE] = TERMINATE

        if isinstance(entry, NodeId):
            workflow.add_edge(START, entry.value)
        else:
            workflow.add_conditional_edges(
                START, self._router(None, entry), path_map
            )

        for node_id, node_routes in routes.items():
            workflow.add_conditional_edges(
                node_id.value, self._router(node_id, node_routes), path_map
            )

        self.graph = workflow.compile(checkpointer=self.checkpointer)
        logger.info(f"{name} graph compiled with {len(nodes)} nodes")

    @staticmethod
    def _validate(
        nodes: dict[NodeId, NodeFunction],
        routes: RoutingTable,
        entry: NodeId | list[Route],
    ) -> None:
        missing = [node_id.value for node_id in nodes if not routes.get(node_id)]
        if missing:
            raise ValueError(f"Nodes without routes: {', '.join(missing)}")

        unknown_sources = [node_id.value for node_id in routes if node_id not in nodes]
        if unknown_sources:
            raise ValueError(f"Routes for unknown nodes: {', '.join(unknown_sources)}")

        valid_targets = {node_id.value for node_id in nodes} | {TERMINATE}
        all_routes = [route for node_routes in routes.values() for route in node_routes]
        if isinstance(entry, NodeId):
            if entry not in nodes:
                raise ValueError(f"Unknown entry node: {entry.value}")
        else:
            all_routes += entry

        bad_targets = sorted(
            {route.target_name for route in all_routes} - valid_targets
        )
        if bad_targets:
            raise ValueError(f"Routes to unknown nodes: {', '.join(bad_targets)}")

    def _guard(self, node_id: NodeId, func: NodeFunction) -> NodeFunction:
        fields = set(self.state_cls.model_fields)

        # LangGraph reads a parameter annotation as the input schema
        async def run_node(state) -> dict[str, Any]:
            task_logger = TaskLogger.for_state(state, agent_type=self.name)
            task_logger.step(node_id.value, state.current_phase.value)
            try:
                update = await func(state) or {}
            except Exception as e:
                task_logger.error(f"Node {node_id.value} failed: {e!s}")
                return error_update(e)

            unknown = set(update) - fields
            if unknown:
                task_logger.warning(
                    f"Node {node_id.value} returned unknown fields: "
                    f"{', '.join(sorted(unknown))}"
                )
                update = {key: value for key, value in update.items() if key in fields}
            return update

        run_node.__name__ = node_id.value
        return run_node

    def _router(self, node_id: NodeId | None, routes: list[Route]):
        source = node_id.value if node_id else "entry"

        # Unannotated for the same reason as run_node
        def route(state) -> str:
            target = select_route(routes, state)
            if target is None:
                logger.warning(f"No route matched after {source}, terminating")
                return TERMINATE
            logger.debug(f"Route {source} -> {target}")
            return target

        route.__name__ = f"route_{source}"
        return route

    def _config(self, thread_id: str) -> dict[str, Any]:
        return {
            "configurable": {"thread_id": thread_id},
            "recursion_limit": self.recursion_limit,
        }

    def _input(self, state: AgentState | dict[str, Any]) -> dict[str, Any]:
        if isinstance(state, AgentState):
            return {name: getattr(state, name) for name in self.state_cls.model_fields}
        return dict(state)

    def _coerce(self, values: Any) -> AgentState:
        if isinstance(values, self.state_cls):
            return values
        return self.state_cls.model_validate(values)

    async def _reset_thread(self, thread_id: str) -> None:
        # Each run starts from the supplied state, not the previous snapshot
        await self.checkpointer.adelete_thread(thread_id)

    async def snapshot(self, thread_id: str) -> AgentState | None:
        """Latest in-process state for a thread, or None if it never ran."""
        snapshot = await self.graph.aget_state(self._config(thread_id))
        if not snapshot.values:
            return None
        return self._coerce(snapshot.values)

    async def run(
        self, state: AgentState | dict[str, Any], thread_id: str
    ) -> AgentState:
        """
        Run the graph until it terminates.

        Args:
            state: Full input state for this run
            thread_id: Snapshot key (the task id)

        Returns:
            Final state. Exceeding the recursion limit yields the last
            snapshot with an error set.
        """
        await self._reset_thread(thread_id)
        try:
            result = await self.graph.ainvoke(
                self._input(state), config=self._config(thread_id)
            )
        except GraphRecursionError as e:
            logger.error(f"{self.name} graph hit the recursion limit: {e!s}")
            last = await self.snapshot(thread_id)
            if last is None:
                last = self._coerce(self._input(state))
            return last.model_copy(
                update=error_update(
                    f"Stopped after {self.recursion_limit} steps without finishing"
                )
            )
        return self._coerce(result)

    async def stream(
        self, state: AgentState | dict[str, Any], thread_id: str
    ) -> AsyncIterator[tuple[str, dict[str, Any], AgentState]]:
        """
        Run the graph, yielding after every node.

        Args:
            state: Full input state for this run
            thread_id: Snapshot key (the task id)

        Yields:
            (node name, the node's update, state after the update)
        """
        await self._reset_thread(thread_id)
        pending: list[tuple[str, dict[str, Any]]] = []
        chunks = self.graph.astream(
            self._input(state),
            config=self._config(thread_id),
            stream_mode=["updates", "values"],
        )
        async with aclosing(chunks):
            async for mode, chunk in chunks:
                if mode == "updates":
                    for node, update in chunk.items():
                        pending.append((node, update or {}))
                    continue

                if not pending:
                    # Initial values chunk carries the input only
                    continue
                current = self._coerce(chunk)
                for node, update in pending:
                    yield node, update, current
                pending = []
