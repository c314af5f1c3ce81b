"""Pipeline orchestrator driving search → profile → affiliation per record."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Protocol, Union

import structlog
from playwright.async_api import Error as PlaywrightError

from .config import GlobalConfig
from .engine import (
    BrowserRuntime,
    PageAgent,
    SurfaceController,
    SurfaceHandle,
    find_duplicate,
    random_delay,
)
from .engine.page_agent import Emit
from .errors import CrawlerError, InvalidState, NavigationMismatch
from .infra import KeyValueStore
from .messages import (
    AffiliationFound,
    AgentMessage,
    ContinueSearch,
    DiagnosticNote,
    ExtractAffiliation,
    Instruction,
    MoveToNextEntry,
    StartSearch,
    StatusUpdate,
    UiMessage,
)
from .records import Record

STORE_KEYS = ("records", "current_index", "is_running")

FollowUp = Union[type[ContinueSearch], type[ExtractAffiliation]]


class Phase(str, Enum):
    """Where the orchestrator is within the current entry."""

    IDLE = "idle"
    SEARCHING = "searching"
    AWAITING_SEARCH_RESULTS = "awaiting_search_results"
    AWAITING_PROFILE_PAGE = "awaiting_profile_page"
    ADVANCING = "advancing"


@dataclass(slots=True)
class PipelineState:
    is_running: bool = False
    current_index: int = 0


@dataclass(slots=True)
class SearchSession:
    """The single live lookup: which surface it runs on and what it looks for."""

    token: int
    surface: SurfaceHandle
    author: str
    title: str
    consumed: set[str] = field(default_factory=set)

    @property
    def surface_id(self) -> int:
        return self.surface.surface_id

    def take(self, kind: FollowUp) -> Instruction | None:
        """Hand out the follow-up instruction of ``kind`` at most once."""

        if kind.name in self.consumed:
            return None
        self.consumed.add(kind.name)
        return kind(author=self.author, title=self.title)


class Agent(Protocol):
    async def handle(self, instruction: Instruction) -> None:
        ...


AgentFactory = Callable[[SurfaceHandle, Emit], Agent]
UiPublisher = Callable[[UiMessage], None]


class Orchestrator:
    """Single-flow state machine enriching records one at a time."""

    def __init__(
        self,
        store: KeyValueStore,
        surfaces: SurfaceController,
        config: GlobalConfig,
        agent_factory: AgentFactory | None = None,
        publish: UiPublisher | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.surfaces = surfaces
        self.config = config
        self.agent_factory = agent_factory or self._default_agent
        self.publish = publish or (lambda _message: None)
        self.logger = logger or structlog.get_logger("affiliation_crawler").bind(
            component="orchestrator"
        )
        self.records: list[Record] = []
        self.state = PipelineState()
        self.phase = Phase.IDLE
        self.session: SearchSession | None = None
        self._surface: SurfaceHandle | None = None
        self._session_counter = 0
        self._epoch = 0
        self._tasks: set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

    def _default_agent(self, surface: SurfaceHandle, emit: Emit) -> PageAgent:
        return PageAgent(surface.page, self.config.site, self.config.pacing, emit)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def load(self) -> None:
        data = self.store.load(STORE_KEYS)
        self.records = [Record.from_dict(item) for item in data.get("records") or []]
        index = int(data.get("current_index") or 0)
        if not 0 <= index <= len(self.records):
            error = InvalidState(
                f"Stored index {index} outside 0..{len(self.records)}; clamping"
            )
            self.logger.error("invalid_state", error=str(error))
            index = min(max(index, 0), len(self.records))
        self.state = PipelineState(is_running=False, current_index=index)
        self.phase = Phase.IDLE
        self.logger.info("pipeline_loaded", records=len(self.records), current_index=index)

    async def start(self) -> None:
        self._epoch += 1
        self.state.is_running = True
        self._stopped.clear()
        self._persist()
        self.logger.info("run_started", current_index=self.state.current_index)
        if not self.records or self.state.current_index >= len(self.records):
            self._finish("No more entries to process.")
        else:
            await self._process_current()
        self._publish_status()

    def pause(self) -> None:
        self._epoch += 1
        self.state.is_running = False
        self._persist()
        self.logger.info(
            "run_paused", current_index=self.state.current_index, phase=self.phase.value
        )
        self._stopped.set()
        self._publish_status()

    async def wait_until_stopped(self) -> None:
        await self._stopped.wait()

    async def aclose(self) -> None:
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Per-entry processing
    # ------------------------------------------------------------------
    async def _process_current(self) -> None:
        while self.state.is_running:
            index = self.state.current_index
            if index >= len(self.records):
                self._finish("All entries processed!")
                return
            record = self.records[index]
            if record.has_affiliation:
                self._step_forward()
                continue
            duplicate = find_duplicate(self.records, index)
            if duplicate is not None:
                record.affiliation = duplicate.affiliation
                self._persist(records=True)
                self.logger.info("entry_deduplicated", index=index, author=record.author)
                self._note(
                    f'Copied affiliation "{record.affiliation}" from duplicate entry '
                    f'for "{record.author}"'
                )
                self._step_forward()
                continue
            await self._begin_search(record)
            return

    async def _begin_search(self, record: Record) -> None:
        epoch = self._epoch
        try:
            surface = await self._acquire_surface()
        except (PlaywrightError, CrawlerError, OSError, asyncio.TimeoutError) as exc:
            if epoch != self._epoch:
                return
            self._surface = None
            self.logger.warning(
                "surface_unavailable", index=self.state.current_index, error=str(exc)
            )
            self._note(f'Error opening search page for "{record.author}": {exc}')
            self._on_move_to_next()
            return
        # 加载页面期间发生过暂停或重新开始，由新的一轮负责
        if not self.state.is_running or epoch != self._epoch:
            return
        self._surface = surface
        self.surfaces.subscribe(surface.surface_id, self._on_navigation_complete)
        self._session_counter += 1
        session = SearchSession(
            token=self._session_counter,
            surface=surface,
            author=record.author,
            title=record.title,
        )
        self.session = session
        self.phase = Phase.SEARCHING
        self.logger.info(
            "search_started",
            index=self.state.current_index,
            author=record.author,
            surface_id=surface.surface_id,
        )
        self._dispatch(session, StartSearch(author=record.author, title=record.title))

    async def _acquire_surface(self) -> SurfaceHandle:
        """Send the previous session's page back home, or find or open one."""

        site = self.config.site
        if self._surface is not None:
            surface = await self.surfaces.goto(self._surface.surface_id, site.home_url)
            if surface is not None:
                return surface
            self.logger.debug("surface_gone", surface_id=self._surface.surface_id)
        existing = await self.surfaces.query(site.surface_pattern)
        target = existing[0].url if existing else site.home_url
        return await self.surfaces.create_or_focus(target)

    def _dispatch(self, session: SearchSession, instruction: Instruction) -> None:
        emit = partial(self._on_agent_message, session)
        agent = self.agent_factory(session.surface, emit)
        self.logger.debug("instruction_dispatched", instruction=instruction.name, token=session.token)
        self._spawn(self._run_agent(session, agent, instruction), instruction.name)

    async def _run_agent(self, session: SearchSession, agent: Agent, instruction: Instruction) -> None:
        try:
            await agent.handle(instruction)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "agent_task_failed", instruction=instruction.name, error=str(exc)
            )
            self._on_agent_message(session, DiagnosticNote(content=f"Agent error: {exc}"))
            self._on_agent_message(session, MoveToNextEntry())

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def _on_navigation_complete(self, surface_id: int, url: str) -> None:
        session = self.session
        if session is None or surface_id != session.surface_id:
            self.logger.debug("navigation_ignored", surface_id=surface_id, url=url)
            return
        site = self.config.site
        if url == site.home_url:
            self.logger.debug("navigation_home", surface_id=surface_id)
            return
        kind: FollowUp
        if site.results_url_fragment in url:
            kind = ContinueSearch
            self.phase = Phase.AWAITING_SEARCH_RESULTS
        elif site.profile_url_fragment in url:
            kind = ExtractAffiliation
            self.phase = Phase.AWAITING_PROFILE_PAGE
        else:
            self.logger.debug("navigation_mismatch", error=str(NavigationMismatch(url)))
            return
        self._schedule(self.config.pacing.settle_delay, self._dispatch_follow_up, session, kind)

    def _dispatch_follow_up(self, session: SearchSession, kind: FollowUp) -> None:
        if session is not self.session:
            self.logger.debug("stale_event_ignored", token=session.token, instruction=kind.name)
            return
        instruction = session.take(kind)
        if instruction is None:
            self.logger.debug("instruction_already_consumed", instruction=kind.name)
            return
        self._dispatch(session, instruction)

    def _on_agent_message(self, session: SearchSession, message: AgentMessage) -> None:
        if isinstance(message, DiagnosticNote):
            self._note(message.content)
            return
        if session is not self.session:
            self.logger.info("stale_event_ignored", token=session.token, message=message.name)
            return
        if isinstance(message, AffiliationFound):
            self._on_affiliation_found(message.affiliation)
        elif isinstance(message, MoveToNextEntry):
            self._on_move_to_next()
        else:
            raise TypeError(f"Unsupported agent message: {message!r}")

    def _on_affiliation_found(self, affiliation: str) -> None:
        index = self.state.current_index
        if index >= len(self.records):
            error = InvalidState(f"No record at index {index} to receive an affiliation")
            self.logger.error("invalid_state", error=str(error))
            self._note("Error: Invalid record data or index when trying to update affiliation")
            return
        record = self.records[index]
        record.affiliation = affiliation
        self.session = None
        self._note(f'Updated affiliation for "{record.author}" to "{affiliation}"')
        self._persist(records=True)
        if self.state.is_running:
            self.phase = Phase.ADVANCING
            delay = random_delay(self.config.pacing.advance_delay_range)
            self.logger.info("affiliation_recorded", index=index, next_in=round(delay, 2))
            self._schedule(delay, self._advance)
        else:
            self.logger.info("affiliation_recorded_while_paused", index=index)
        self._publish_status()

    def _on_move_to_next(self) -> None:
        self.session = None
        if not self.state.is_running:
            self.logger.debug("advance_skipped_paused", index=self.state.current_index)
            return
        self._spawn(self._advance(), "advance")

    async def _advance(self) -> None:
        if not self.state.is_running:
            return
        self.phase = Phase.ADVANCING
        self._step_forward()
        await self._process_current()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _step_forward(self) -> None:
        self.state.current_index = min(self.state.current_index + 1, len(self.records))
        self._persist()
        self._publish_status()

    def _finish(self, message: str) -> None:
        self.state.is_running = False
        self.phase = Phase.IDLE
        self.session = None
        self._persist()
        self.logger.info("run_finished", current_index=self.state.current_index)
        self._note(message)
        self._publish_status()
        self._stopped.set()

    def _schedule(self, delay: float, callback: Callable[..., Any], *args: Any) -> None:
        epoch = self._epoch
        name = getattr(callback, "__name__", "continuation")

        async def _later() -> None:
            await asyncio.sleep(delay)
            # 暂停后已排定的延迟任务直接作废
            if not self.state.is_running or epoch != self._epoch:
                self.logger.debug("continuation_skipped", callback=name)
                return
            result = callback(*args)
            if inspect.isawaitable(result):
                await result

        self._spawn(_later(), name)

    def _spawn(self, coro: Awaitable[Any], name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("background_task_failed", task=task.get_name(), error=str(exc))

    def _persist(self, *, records: bool = False) -> None:
        patch: dict[str, Any] = {
            "current_index": self.state.current_index,
            "is_running": self.state.is_running,
        }
        if records:
            patch["records"] = [record.to_dict() for record in self.records]
        self.store.replace(patch)

    def _note(self, content: str) -> None:
        self.logger.info("diagnostic_note", content=content)
        self.store.replace({"debug_info": content})
        self.publish(DiagnosticNote(content=content))

    def _publish_status(self) -> None:
        self.publish(
            StatusUpdate(
                is_running=self.state.is_running,
                current_index=self.state.current_index,
                records=tuple(self.records),
            )
        )


async def run_pipeline(
    store: KeyValueStore,
    config: GlobalConfig,
    publish: UiPublisher | None = None,
    ua_pool=None,
) -> PipelineState:
    """Launch the browser, run until all records are handled or the run is paused."""

    async with BrowserRuntime(config.browser, ua_pool) as surfaces:
        orchestrator = Orchestrator(store, surfaces, config, publish=publish)
        orchestrator.load()
        try:
            await orchestrator.start()
            await orchestrator.wait_until_stopped()
        finally:
            if orchestrator.state.is_running:
                orchestrator.pause()
            await orchestrator.aclose()
        return orchestrator.state


__all__ = [
    "AgentFactory",
    "Orchestrator",
    "Phase",
    "PipelineState",
    "SearchSession",
    "UiPublisher",
    "run_pipeline",
]
