"""
Turn-by-turn orchestration of user tasks.

The orchestrator resolves the session and the task a message belongs to,
rebuilds the task state from its checkpoint, runs the task graph until it
pauses or finishes, and persists the result. Each call is one turn; the
repository is the only state kept between turns.
"""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing
from typing import Any

from task_orchestrator.agents.intent import hybrid_classify_intent
from task_orchestrator.agents.llm import LLMClient
from task_orchestrator.config import OrchestratorConfig
from task_orchestrator.data.models import Task
from task_orchestrator.data.repository import TaskRepository
from task_orchestrator.orchestration.core.engine import StateMachine, error_update
from task_orchestrator.orchestration.core.graph_cache import GraphCache
from task_orchestrator.orchestration.serialization.checkpoint import (
    Checkpoint,
    TaskCheckpointer,
)
from task_orchestrator.orchestration.states import (
    STATE_CLASSES,
    AgentState,
    HumanInputRequest,
    Intent,
    Phase,
    TaskType,
    human_message,
)
from task_orchestrator.orchestration.states.agent_state import WireModel
from task_orchestrator.services.guest_service import GuestService, GuestSession
from task_orchestrator.services.location_service import LocationService
from task_orchestrator.services.task_service import progress_summary, task_details
from task_orchestrator.tools.registry import ToolRegistry
from task_orchestrator.utils.error_handling import (
    ResourceNotFoundError,
    safe_execute,
    user_facing_error,
)
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)

HELP_TEXT = (
    "I can help you with two things:\n\n"
    "1. **Find medicine nearby** - Tell me what medicine you need and your location\n"
    "2. **Plan a trip** - Tell me where you want to travel\n\n"
    "What would you like to do?"
)

PHASE_PROGRESS = {
    Phase.CLARIFICATION: 10,
    Phase.PLANNING: 30,
    Phase.EXECUTION: 60,
    Phase.REFINEMENT: 75,
    Phase.VALIDATION: 90,
    Phase.COMPLETE: 100,
    Phase.ERROR: 0,
}

PHASE_FALLBACK_RESPONSES = {
    Phase.CLARIFICATION: (
        "I need some more information to help you. Could you provide more details?"
    ),
    Phase.PLANNING: "Creating a plan for your request...",
    Phase.EXECUTION: "Working on your request...",
    Phase.REFINEMENT: "Refining the plan...",
    Phase.VALIDATION: "Verifying the results...",
    Phase.COMPLETE: "Your request has been completed!",
}


class ChatResponse(WireModel):
    """Reply to one user turn."""

    session_id: str = ""
    task_id: str | None = None
    response: str
    requires_input: bool = False
    input_request: HumanInputRequest | None = None
    is_complete: bool = False
    progress: int | None = None


def calculate_progress(state: AgentState) -> int:
    """
    Progress of a task as a percentage.

    Execution adds up to 30 points in proportion to the steps done.

    Args:
        state: Task state at the end of a turn

    Returns:
        Progress between 0 and 100
    """
    progress = float(PHASE_PROGRESS.get(state.current_phase, 0))
    if state.current_phase == Phase.EXECUTION and state.plan_length:
        progress += state.current_step_index / state.plan_length * 30
    return int(min(100, max(0, progress)))


def extract_response(state: AgentState) -> str:
    """Text shown to the user for the state a turn ended in."""
    if state.final_response:
        return state.final_response
    if state.human_input_request is not None and state.human_input_request.message:
        return state.human_input_request.message
    if state.messages and state.messages[-1].role == "ai":
        return state.messages[-1].content
    if state.current_phase == Phase.ERROR:
        return state.error or "An error occurred. Please try again."
    return PHASE_FALLBACK_RESPONSES.get(
        state.current_phase, "Processing your request..."
    )


def progress_frame(
    node: str, state: AgentState | None, message: str | None = None
) -> dict[str, Any]:
    """
    Streaming progress frame for a node, or a turn milestone before the
    task state exists.
    """
    frame: dict[str, Any] = {"type": "progress", "node": node}
    if message:
        frame["message"] = message
    if state is None:
        frame["data"] = {"phase": None, "stepIndex": 0, "totalSteps": 0, "progress": 0}
        return frame
    frame["data"] = {
        "phase": state.current_phase.value,
        "stepIndex": state.current_step_index,
        "totalSteps": state.plan_length,
        "progress": calculate_progress(state),
    }
    return frame

class Orchestrator:
    """
    Drives user tasks through their graphs.

    This class is responsible for:
    1. Resolving sessions, intents and tasks for incoming messages
    2. Restoring task state from checkpoints and running the task graph
    3. Persisting checkpoints and task outcomes
    4. Shaping responses and progress frames for the caller
    """

    def __init__(
        self,
        repository: TaskRepository,
        llm: LLMClient,
        registry: ToolRegistry,
        graph_cache: GraphCache,
        location_service: LocationService | None = None,
        guest_service: GuestService | None = None,
        config: OrchestratorConfig | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            repository: Storage for users, sessions and tasks
            llm: Client used for intent classification
            registry: Tools available to the task graphs
            graph_cache: Per-session cache of compiled graphs
            location_service: Detects the user's location for medicine tasks
            guest_service: Issues guest sessions for anonymous callers
            config: Orchestrator configuration (defaults from the environment)
        """
        self.repository = repository
        self.llm = llm
        self.registry = registry
        self.graph_cache = graph_cache
        self.location_service = location_service
        self.guest_service = guest_service
        self.config = config or OrchestratorConfig()
        self.checkpointer = TaskCheckpointer(repository)

    @property
    def production(self) -> bool:
        return self.config.system.is_production

    def start(self) -> None:
        """Start background maintenance on the running event loop."""
        self.graph_cache.start()

    async def stop(self) -> None:
        await self.graph_cache.stop()

    # --- Resolution ---

    def resolve_user(
        self, user_id: str | None, session_token: str | None = None
    ) -> tuple[str, str | None, GuestSession | None] | None:
        """
        Identify the caller.

        A known user id is used as-is. Otherwise a guest session is validated
        or created when guests are enabled.

        Args:
            user_id: Caller's user id (optional)
            session_token: Guest token from an earlier turn (optional)

        Returns:
            (user id, guest session id or None, guest session or None), or
            None when the caller cannot be identified
        """
        if user_id and self.repository.get_user(user_id) is not None:
            return user_id, None, None
        if self.guest_service is None:
            return (user_id, None, None) if user_id else None

        guest = self.guest_service.get_or_create(session_token)
        return guest.user_id, guest.session_id, guest

    def _resolve_session(self, user_id: str, session_id: str | None):
        if session_id:
            session = self.repository.get_session(session_id)
            if session is not None and session.is_active and session.user_id == user_id:
                return session
            logger.debug(f"Session {session_id} not usable, using active session")
        return self.repository.get_or_create_active_session(user_id)

    async def _resolve_task(self, session_id: str, message: str) -> Task | None:
        """
        Active task of the session, or a new task for the message's intent.

        Returns:
            The task, or None when the intent is unknown
        """
        existing = self.repository.find_active_by_session(session_id)
        if existing is not None:
            logger.debug(f"Continuing {existing.task_type.value} task {existing.task_id}")
            return existing

        intent = await hybrid_classify_intent(
            self.llm, message, max_tokens=self.config.llm.classification_max_tokens
        )
        logger.info(f"Intent classified as {intent.value}")
        if intent == Intent.UNKNOWN:
            return None
        return self.repository.get_or_create_task(session_id, TaskType(intent.value))

    # --- State ---

    async def _fresh_state(
        self,
        state_cls: type[AgentState],
        session_id: str,
        task_id: str,
        location: dict[str, Any] | None,
    ) -> AgentState:
        state = state_cls(session_id=session_id, task_id=task_id)
        if state_cls.TASK_TYPE != TaskType.MEDICINE or self.location_service is None:
            return state

        detected = await self.location_service.detect(location)
        if detected is None:
            return state
        logger.info(f"Seeded location for task {task_id}: {detected.describe()}")
        return state.model_copy(update={"gathered_info": state.info_update(location=detected)})

    @staticmethod
    def _is_fresh(checkpoint: Checkpoint | None) -> bool:
        return checkpoint is None or (
            not checkpoint.gathered_info and not checkpoint.execution_plan
        )

    async def _input_state(
        self,
        task: Task,
        session_id: str,
        message: str,
        checkpoint: Checkpoint | None,
        location: dict[str, Any] | None = None,
    ) -> AgentState:
        """
        State for this turn: the restored checkpoint (or a fresh seed) with
        the user's message appended and last turn's error and question cleared.
        """
        state_cls = STATE_CLASSES[task.task_type]
        if self._is_fresh(checkpoint):
            state = await self._fresh_state(state_cls, session_id, task.task_id, location)
        else:
            state = TaskCheckpointer.build_state(state_cls, checkpoint, session_id)

        update: dict[str, Any] = {
            "messages": [*state.messages, *human_message(message)],
            "error": None,
            "requires_human_input": False,
            "human_input_request": None,
        }
        if getattr(state, "awaiting_refinement", False) and message:
            logger.info(f"Task {task.task_id} resuming with itinerary feedback")
            update.update(
                refinement_feedback=message,
                awaiting_refinement=False,
                skip_to_confirmation=True,
            )
        return state.model_copy(update=update)

    # --- Running ---

    def _timed_out(self, state: AgentState) -> AgentState:
        timeout = self.config.agents.timeout_seconds
        logger.error(f"Task {state.task_id} timed out after {timeout:g} seconds")
        return state.model_copy(
            update=error_update(f"Timed out after {timeout:g} seconds")
        )

    async def _run(self, machine: StateMachine, state: AgentState) -> AgentState:
        try:
            async with asyncio.timeout(self.config.agents.timeout_seconds):
                return await machine.run(state, state.task_id)
        except TimeoutError:
            return self._timed_out(state)

    def _finish(self, state: AgentState, resumed_phase: Phase) -> int:
        """
        Persist the turn's outcome.

        A turn that ended in an error is stored at the phase it resumed from,
        with whatever it gathered or executed before failing. The task stays
        active so the next message picks it up again.

        Args:
            state: State the run ended in
            resumed_phase: Phase the turn started from

        Returns:
            Progress figure stored for the task
        """
        if state.current_phase == Phase.ERROR:
            logger.warning(
                f"Task {state.task_id} errored, keeping it at {resumed_phase.value}: "
                f"{state.error}"
            )
            state = state.model_copy(update={"current_phase": resumed_phase})

        progress = calculate_progress(state)
        self.checkpointer.persist(state.task_id, state, progress)
        if state.current_phase == Phase.COMPLETE:
            safe_execute(self.repository.complete_task, state.task_id)
        return progress

    def _response(self, session_id: str, state: AgentState, progress: int) -> ChatResponse:
        if state.current_phase == Phase.ERROR:
            return ChatResponse(
                session_id=session_id,
                task_id=state.task_id,
                response=user_facing_error(state.error or "Unknown error", self.production),
                requires_input=True,
                progress=progress,
            )
        return ChatResponse(
            session_id=session_id,
            task_id=state.task_id,
            response=extract_response(state),
            requires_input=state.requires_human_input,
            input_request=state.human_input_request,
            is_complete=state.current_phase == Phase.COMPLETE,
            progress=progress,
        )

    async def _execute(
        self,
        session_id: str,
        task: Task,
        message: str,
        checkpoint: Checkpoint | None,
        location: dict[str, Any] | None = None,
    ) -> ChatResponse:
        machine = self.graph_cache.get(session_id, task.task_type)
        state = await self._input_state(task, session_id, message, checkpoint, location)
        result = await self._run(machine, state)
        progress = self._finish(result, state.current_phase)

        logger.info(
            f"Turn processed for task {task.task_id}: phase={result.current_phase.value}, "
            f"requires_input={result.requires_human_input}"
        )
        return self._response(session_id, result, progress)

    # --- Public API ---

    async def handle(
        self,
        user_id: str,
        message: str,
        session_id: str | None = None,
        location: dict[str, Any] | None = None,
    ) -> ChatResponse:
        """
        Process one user message.

        Args:
            user_id: Caller's user id
            message: The user's message
            session_id: Session to continue (optional)
            location: Browser location with lat, lng and address (optional)

        Returns:
            Response for the turn. Failures yield the generic apology.
        """
        try:
            session = self._resolve_session(user_id, session_id)
            logger.info(f"Processing message in session {session.session_id}")

            task = await self._resolve_task(session.session_id, message)
            if task is None:
                return ChatResponse(
                    session_id=session.session_id, response=HELP_TEXT, requires_input=True
                )

            checkpoint = self.checkpointer.restore(task.task_id)
            return await self._execute(
                session.session_id, task, message, checkpoint, location
            )
        except Exception as e:
            logger.error(f"Message processing failed for {user_id}: {e!s}")
            return ChatResponse(
                session_id=session_id or "",
                response=user_facing_error(e, self.production),
                requires_input=True,
            )

    async def handle_stream(
        self,
        user_id: str,
        message: str,
        session_id: str | None = None,
        location: dict[str, Any] | None = None,
        guest: GuestSession | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Process one user message, yielding frames as the graph advances.

        Frames are a `session` frame when the caller is a guest, `progress`
        frames, and exactly one terminal `complete` or `error` frame. When the
        consumer stops early nothing is persisted.

        Args:
            user_id: Caller's user id
            message: The user's message
            session_id: Session to continue (optional)
            location: Browser location (optional)
            guest: Guest session of the caller (optional)

        Yields:
            Frame mappings
        """
        if guest is not None:
            yield {
                "type": "session",
                "sessionToken": guest.session_token,
                "userId": guest.user_id,
                "sessionId": guest.session_id,
                "isNewGuestSession": guest.is_new_session,
            }

        turn = self._stream_turn(user_id, message, session_id, location)
        try:
            async with aclosing(turn):
                async for frame in turn:
                    yield frame
        except Exception as e:
            logger.error(f"Stream processing failed for {user_id}: {e!s}")
            yield {"type": "error", "message": user_facing_error(e, self.production)}

    async def _stream_turn(
        self,
        user_id: str,
        message: str,
        session_id: str | None,
        location: dict[str, Any] | None,
    ) -> AsyncIterator[dict[str, Any]]:
        session = self._resolve_session(user_id, session_id)
        yield progress_frame("session", None, message="Session initialized")

        task = await self._resolve_task(session.session_id, message)
        if task is None:
            yield {
                "type": "complete",
                "message": HELP_TEXT,
                "data": ChatResponse(
                    session_id=session.session_id, response=HELP_TEXT, requires_input=True
                ).to_wire(),
            }
            return

        machine = self.graph_cache.get(session.session_id, task.task_type)
        checkpoint = self.checkpointer.restore(task.task_id)
        state = await self._input_state(
            task, session.session_id, message, checkpoint, location
        )
        frame = progress_frame("task", state, message=f"Task {task.task_type.value}")
        frame["data"]["taskId"] = task.task_id
        yield frame

        result = state
        frames = self._with_deadline(machine.stream(state, task.task_id))
        try:
            async with aclosing(frames):
                async for node, _update, current in frames:
                    result = current
                    yield progress_frame(node, current)
        except TimeoutError:
            result = self._timed_out(result)

        progress = self._finish(result, state.current_phase)
        response = self._response(session.session_id, result, progress)
        yield {
            "type": "error" if result.current_phase == Phase.ERROR else "complete",
            "message": response.response,
            "data": response.to_wire(),
        }

    async def _with_deadline(self, frames: AsyncGenerator[Any, None]) -> AsyncIterator[Any]:
        """Re-yield frames, raising TimeoutError once the turn's time is up."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.agents.timeout_seconds
        async with aclosing(frames):
            iterator = aiter(frames)
            while True:
                remaining = max(0.0, deadline - loop.time())
                try:
                    frame = await asyncio.wait_for(anext(iterator), remaining)
                except StopAsyncIteration:
                    return
                yield frame

    def _not_found(self, session_id: str, message: str) -> ChatResponse:
        logger.warning(message)
        return ChatResponse(
            session_id=session_id, response=message, requires_input=False, is_complete=True
        )

    async def continue_task(
        self, task_id: str, user_input: str, selected_option: str | None = None
    ) -> ChatResponse:
        """
        Answer a task's pending question.

        Args:
            task_id: Task to continue
            user_input: Free-text answer
            selected_option: Chosen option, preferred over the free text

        Returns:
            Response for the turn
        """
        session = None
        try:
            task = self.repository.get_task(task_id)
            session = self.repository.get_session(task.session_id) if task else None
            if task is None or session is None:
                raise ResourceNotFoundError("Task not found", task_id)

            checkpoint = self.checkpointer.restore(task_id)
            if checkpoint is None:
                raise ResourceNotFoundError("Could not restore task state", task_id)
            if task.task_type not in STATE_CLASSES:
                raise ResourceNotFoundError("Could not determine task type", task_id)

            message = selected_option or user_input
            return await self._execute(session.session_id, task, message, checkpoint)
        except ResourceNotFoundError as e:
            return self._not_found(session.session_id if session else "", str(e))
        except Exception as e:
            logger.error(f"Continue task failed for {task_id}: {e!s}")
            return ChatResponse(
                response=user_facing_error(e, self.production), requires_input=True
            )

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Stored task with its step list, or None if it does not exist."""
        task = self.repository.get_task(task_id)
        return task_details(task) if task is not None else None

    def get_progress(self, task_id: str) -> dict[str, Any]:
        return progress_summary(self.repository.get_task(task_id))

    def end_session(self, session_id: str) -> bool:
        """
        End a session and drop its cached graphs.

        Returns:
            True if the session existed
        """
        session = self.repository.end_session(session_id)
        dropped = self.graph_cache.drop_session(session_id)
        logger.info(f"Ended session {session_id}, dropped {dropped} cached graphs")
        return session is not None


def create_orchestrator(
    config: OrchestratorConfig,
    repository: TaskRepository | None = None,
    llm: LLMClient | None = None,
    registry: ToolRegistry | None = None,
) -> Orchestrator:
    """
    Wire an orchestrator from configuration.

    Args:
        config: Orchestrator configuration
        repository: Storage (a DynamoDB repository by default)
        llm: LLM client (built from `config.llm` by default)
        registry: Tool registry (the default tool set by default)

    Returns:
        Ready orchestrator; call `start()` inside a running loop to enable
        the background graph sweep
    """
    from task_orchestrator.data.dynamodb import DynamoDBClient
    from task_orchestrator.data.repository import DynamoDBTaskRepository
    from task_orchestrator.orchestration.core.graph_builder import build_graph
    from task_orchestrator.orchestration.nodes import NodeDeps
    from task_orchestrator.tools.registry import create_default_registry

    if repository is None:
        db = DynamoDBClient(
            table_name=config.api.dynamodb_table_name,
            region=config.api.aws_region,
            endpoint_url=config.api.dynamodb_endpoint,
        )
        if config.api.dynamodb_endpoint:
            db.create_table_if_not_exists()
        repository = DynamoDBTaskRepository(db)
    llm = llm or LLMClient(config.llm)
    registry = registry or create_default_registry(config)
    location_service = LocationService()

    deps = NodeDeps(
        llm=llm, registry=registry, config=config, location_service=location_service
    )
    graph_cache = GraphCache(
        lambda task_type: build_graph(task_type, deps),
        ttl_seconds=config.system.graph_ttl_seconds,
        sweep_interval_seconds=config.system.graph_sweep_interval_seconds,
    )
    return Orchestrator(
        repository=repository,
        llm=llm,
        registry=registry,
        graph_cache=graph_cache,
        location_service=location_service,
        guest_service=GuestService(
            repository, ttl_seconds=config.system.guest_token_ttl_seconds
        ),
        config=config,
    )
