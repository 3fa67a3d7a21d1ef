import asyncio
import logging

from livecall.actions import ActionDispatcher
from livecall.api import SessionApiClient
from livecall.config import Settings
from livecall.connection import ConnectionSupervisor
from livecall.derived import destination_options, effective_recommended_destination
from livecall.ingestor import EventIngestor
from livecall.journey import JourneyState
from livecall.messages import Message
from livecall.rehydration import RehydrationController
from livecall.store import SessionStateStore

logger = logging.getLogger(__name__)


class LiveCallView:
    """Everything one mounted call screen needs.

    Built on mount and torn down on unmount; nothing outlives it. Showing a
    different call means unmounting this view and mounting a new one.

    Wiring:
      socket -> ConnectionSupervisor -> EventIngestor -> SessionStateStore
      agent  -> ActionDispatcher -> REST -> SessionStateStore
      socket open -> RehydrationController -> REST -> SessionStateStore.seed
    """

    def __init__(
        self,
        call_id: str,
        api: SessionApiClient,
        ws_url: str,
        auto_advance: bool = True,
        simulated: bool = False,
        ws_headers: dict | None = None,
        connect=None,
    ):
        self.call_id = call_id
        self.api = api
        self.simulated = simulated
        self.store = SessionStateStore(call_id)
        self.journey = JourneyState()
        self.notices: list[Message] = []
        self.ingestor = EventIngestor(self.store, on_notice=self.notices.append)
        self.actions = ActionDispatcher(api, self.store, self.journey, auto_advance=auto_advance)
        self.rehydration = RehydrationController(api, self.store)
        self.supervisor = ConnectionSupervisor(
            ws_url,
            on_message=self.ingestor.ingest,
            on_open=self._on_open,
            headers=ws_headers,
            connect=connect,
        )
        self.mounted = False
        self._owns_api = False
        self._rehydration_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, call_id: str, settings: Settings, connect=None) -> "LiveCallView":
        api = SessionApiClient(
            base_url=settings.api_url,
            api_key=settings.api_key,
            timeout=settings.http_timeout,
        )
        view = cls(
            call_id,
            api=api,
            ws_url=settings.ws_url,
            auto_advance=settings.auto_advance,
            simulated=settings.simulated,
            ws_headers={"X-API-Key": settings.api_key} if settings.api_key else None,
            connect=connect,
        )
        view._owns_api = True
        return view

    @property
    def connected(self) -> bool:
        return self.supervisor.connected

    @property
    def rehydration_task(self) -> asyncio.Task | None:
        return self._rehydration_task

    def subscribe(self, listener):
        return self.store.subscribe(listener)

    def recommended_destination(self):
        return effective_recommended_destination(self.store.session)

    def destination_options(self):
        return destination_options(self.store.session)

    async def mount(self):
        if self.mounted:
            return
        self.mounted = True
        logger.info("Mounting live call view for %s", self.call_id)
        self.supervisor.start()

    async def unmount(self):
        if not self.mounted:
            return
        self.mounted = False
        self.rehydration.cancel()
        task = self._rehydration_task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.supervisor.stop()
        if self._owns_api:
            await self.api.close()
        logger.info("Unmounted live call view for %s", self.call_id)

    async def __aenter__(self) -> "LiveCallView":
        await self.mount()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.unmount()

    def _on_open(self):
        if self.simulated:
            logger.info("Simulated mode, skipping rehydration for %s", self.call_id)
            return
        if self._rehydration_task is None:
            self._rehydration_task = asyncio.create_task(self.rehydration.run())
