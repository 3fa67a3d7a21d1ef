import logging

from livecall.api import SessionApiClient
from livecall.store import SessionStateStore

logger = logging.getLogger(__name__)

ENDED_STATUSES = frozenset({"ended", "completed", "abandoned"})

SNAPSHOT_KEYS = (
    "currentStation",
    "completedStations",
    "detectedSegment",
    "segmentConfidence",
    "capturedInfo",
    "isQualified",
    "recommendedDestination",
    "selectedDestination",
)


def snapshot_to_update(state: dict) -> dict:
    """Build a store update from a server session snapshot.

    The snapshot carries only the primary segment's signals, so segment
    options are rebuilt as a single entry.
    """
    update = {key: state[key] for key in SNAPSHOT_KEYS if key in state}
    if "detectedSegment" in update:
        update["segmentConfidence"] = state.get("segmentConfidence") or 0
    signals = state.get("segmentSignals")
    if state.get("detectedSegment") and isinstance(signals, list) and signals:
        update["segmentOptions"] = [{
            "segment": state["detectedSegment"],
            "confidence": state.get("segmentConfidence") or 0,
            "signals": [str(signal) for signal in signals],
        }]
    elif signals is not None and not isinstance(signals, list):
        logger.warning("Ignoring non-list segmentSignals in snapshot: %r", signals)
    return update


class RehydrationController:
    """Seeds the store from the server's snapshot when a view mounts.

    Runs concurrently with the live socket. The store skips any field a live
    update has already written, so a slow snapshot cannot roll back newer
    state. cancel() stops an in-flight fetch from applying after unmount.
    """

    def __init__(self, api: SessionApiClient, store: SessionStateStore):
        self.api = api
        self.store = store
        self.cancelled = False
        self.completed = False

    @property
    def call_id(self) -> str:
        return self.store.call_id

    def cancel(self):
        self.cancelled = True

    async def run(self) -> bool:
        """Fetch and apply the snapshot. Returns True if the store was seeded."""
        if self.cancelled:
            return False
        try:
            data = await self.api.get_session(self.call_id)
        except Exception as e:
            logger.error("Rehydration fetch failed for call %s: %s", self.call_id, e)
            return False

        if self.cancelled:
            logger.debug("Rehydration for call %s finished after unmount, discarding", self.call_id)
            return False

        state = data.get("state")
        if data.get("success") is not True or not isinstance(state, dict):
            logger.info("No session to rehydrate for call %s: %s", self.call_id, data.get("error", ""))
            return False

        status = str(state.get("status") or "").lower()
        if status in ENDED_STATUSES:
            logger.info("Session for call %s is %s, keeping default state", self.call_id, status)
            return False

        self.store.seed(snapshot_to_update(state))
        self.completed = True
        logger.info(
            "Rehydrated call %s at station %s",
            self.call_id, self.store.session.current_station.value,
        )
        return True
