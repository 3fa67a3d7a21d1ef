"""Agent actions against the call-script session.

Each action is one POST to the session-action endpoint. A successful
response's ``state`` is fed through SessionStateStore.apply_update, the
same path WebSocket pushes take, so a local action can never leave the
view in a state the server would not have pushed. A failed action changes
nothing locally.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from livecall.api import SessionApiClient
from livecall.journey import JourneyState
from livecall.session import CAPTURED_INFO_KEYS, check_info_value
from livecall.states import Destination, Segment
from livecall.store import SessionStateStore

logger = logging.getLogger(__name__)

CONFIRMED_CONFIDENCE = 100


@dataclass
class ActionResult:
    success: bool
    error: str = ""
    state: dict | None = None
    follow_up: "ActionResult | None" = None


def _wire_value(value):
    return value.value if isinstance(value, Enum) else value


class ActionDispatcher:
    def __init__(
        self,
        api: SessionApiClient,
        store: SessionStateStore,
        journey: JourneyState | None = None,
        auto_advance: bool = True,
    ):
        self.api = api
        self.store = store
        self.journey = journey if journey is not None else JourneyState()
        self.auto_advance = auto_advance
        self._pending: set[str] = set()

    @property
    def call_id(self) -> str:
        return self.store.call_id

    def is_pending(self, action: str) -> bool:
        return action in self._pending

    async def confirm_station(self) -> ActionResult:
        return await self._dispatch("confirm_station", {})

    async def select_segment(self, segment: Segment | str) -> ActionResult:
        try:
            segment = Segment(_wire_value(segment))
        except ValueError:
            return ActionResult(success=False, error=f"Unknown segment: {segment}")
        result = await self._dispatch("select_segment", {"segment": segment.value})
        if not result.success:
            return result
        # Commit the segment before confirm_station goes out
        self.store.apply_update({
            "detectedSegment": segment.value,
            "segmentConfidence": CONFIRMED_CONFIDENCE,
        })
        self.journey.reset("segment_change")
        if self.auto_advance:
            result.follow_up = await self.confirm_station()
        return result

    async def set_qualified(self, qualified: bool, notes: list[str] | None = None) -> ActionResult:
        result = await self._dispatch(
            "set_qualified",
            {"qualified": qualified, "notes": list(notes or [])},
        )
        if not result.success:
            return result
        self.store.apply_update({
            "isQualified": qualified,
            "capturedInfo": {"isDecisionMaker": qualified},
        })
        if qualified and self.auto_advance:
            result.follow_up = await self.confirm_station()
        return result

    async def select_destination(self, destination: Destination | str) -> ActionResult:
        try:
            destination = Destination(_wire_value(destination))
        except ValueError:
            return ActionResult(success=False, error=f"Unknown destination: {destination}")
        result = await self._dispatch("select_destination", {"destination": destination.value})
        if result.success:
            self.store.apply_update({"selectedDestination": destination.value})
        return result

    async def update_info(self, **info) -> ActionResult:
        """Correct captured fields by wire name, e.g. update_info(postcode="NG1 1AA")."""
        unknown = set(info) - set(CAPTURED_INFO_KEYS)
        if unknown:
            return ActionResult(success=False, error=f"Unknown info fields: {', '.join(sorted(unknown))}")
        if not info:
            return ActionResult(success=False, error="Info is required")
        try:
            for key, value in info.items():
                check_info_value(key, value)
        except TypeError as e:
            return ActionResult(success=False, error=str(e))
        result = await self._dispatch("update_info", {"info": info})
        if result.success:
            self.store.apply_update({"capturedInfo": info})
        return result

    async def fast_track(self) -> ActionResult:
        """Jump straight to the destination station (emergencies)."""
        return await self._dispatch("fast_track", {})

    async def _dispatch(self, action: str, payload: dict) -> ActionResult:
        if action in self._pending:
            logger.warning("%s already in flight for call %s", action, self.call_id)
            return ActionResult(success=False, error=f"{action} already in progress")

        self._pending.add(action)
        try:
            response = await self.api.post_action(self.call_id, action, payload)
        except Exception as e:
            logger.error("%s failed for call %s: %s", action, self.call_id, e)
            return ActionResult(success=False, error=str(e))
        finally:
            self._pending.discard(action)

        if response.get("success") is not True:
            error = response.get("error") or "Action failed"
            logger.error("%s failed for call %s: %s", action, self.call_id, error)
            return ActionResult(success=False, error=str(error))

        state = response.get("state")
        if isinstance(state, dict):
            self.store.apply_update(state)
        logger.info("%s applied for call %s", action, self.call_id)
        return ActionResult(success=True, state=state if isinstance(state, dict) else None)
