"""Canonical client-side state for one live call.

Every mutation, whether it comes from a WebSocket push, an action response
or a rehydration snapshot, goes through SessionStateStore. Updates are
wire-shaped (camelCase) partial dicts and are merged field group by field
group; nothing in here raises on bad input.
"""

import copy
import logging
from typing import Callable

from livecall.session import (
    CAPTURED_INFO_KEYS,
    CallSession,
    SegmentOption,
    build_detected_jobs,
    check_info_value,
    coerce_confidence,
    rank_segment_options,
)
from livecall.states import Destination, Segment, Station

logger = logging.getLogger(__name__)

# Wire key -> field group. Keys in the same group are applied together.
FIELD_GROUPS = {
    "currentStation": "station",
    "completedStations": "station",
    "detectedSegment": "segment",
    "segmentConfidence": "segment",
    "segmentOptions": "segment_options",
    "capturedInfo": "captured_info",
    "isQualified": "is_qualified",
    "recommendedDestination": "recommended_destination",
    "selectedDestination": "selected_destination",
    "detectedJobs": "detected_jobs",
}

Listener = Callable[[CallSession, set], None]


def _optional_enum(enum_cls, value):
    if value is None:
        return None
    return enum_cls(value)


class SessionStateStore:
    def __init__(self, call_id: str):
        self._session = CallSession(call_id=call_id)
        self._live_groups: set[str] = set()
        self._live_info_keys: set[str] = set()
        self._listeners: list[Listener] = []

    @property
    def call_id(self) -> str:
        return self._session.call_id

    @property
    def session(self) -> CallSession:
        """Live session object. Read-only by convention; use snapshot() to keep a copy."""
        return self._session

    @property
    def live_groups(self) -> frozenset:
        """Field groups written by live updates since the store was created."""
        return frozenset(self._live_groups)

    def snapshot(self) -> CallSession:
        return copy.deepcopy(self._session)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Mutations ──

    def apply_update(self, partial: dict) -> set[str]:
        """Merge a wire-shaped partial update. Returns the changed field groups."""
        return self._apply(partial, track_live=True)

    def seed(self, partial: dict) -> set[str]:
        """Apply a rehydration snapshot.

        Field groups that a live update has already written are skipped:
        the live value is at least as fresh as the snapshot. Captured info
        is skipped key by key, so untouched keys still come from the snapshot.
        """
        if not isinstance(partial, dict):
            logger.warning("Ignoring non-dict seed for call %s", self.call_id)
            return set()
        blocked = set(self._live_groups)
        # Captured info merges key-wise, so it is filtered per key below
        blocked.discard("captured_info")
        if "segment" in blocked:
            # Options describe the segment; a newer segment makes snapshot options stale
            blocked.add("segment_options")
        filtered = {
            key: value for key, value in partial.items()
            if FIELD_GROUPS.get(key) not in blocked
        }
        skipped = set(partial) - set(filtered)
        info = filtered.get("capturedInfo")
        if isinstance(info, dict) and self._live_info_keys:
            filtered["capturedInfo"] = {
                key: value for key, value in info.items() if key not in self._live_info_keys
            }
            skipped.update(f"capturedInfo.{key}" for key in info if key in self._live_info_keys)
        if skipped:
            logger.info(
                "Rehydration for %s skipped live-updated fields: %s",
                self.call_id, ", ".join(sorted(skipped)),
            )
        return self._apply(filtered, track_live=False)

    def reset(self) -> set[str]:
        """Return to the first station with nothing completed."""
        self._live_groups.add("station")
        changed = set()
        if self._session.current_station != Station.LISTEN or self._session.completed_stations:
            self._session.current_station = Station.LISTEN
            self._session.completed_stations = []
            changed.add("station")
        self._notify(changed)
        return changed

    def _apply(self, partial: dict, track_live: bool) -> set[str]:
        if not isinstance(partial, dict):
            logger.warning("Ignoring non-dict update for call %s", self.call_id)
            return set()

        changed = set()
        groups = []
        for key in partial:
            group = FIELD_GROUPS.get(key)
            if group and group not in groups:
                groups.append(group)

        for group in groups:
            handler = getattr(self, f"_apply_{group}")
            try:
                result = handler(partial)
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                logger.warning("Ignoring bad %s value for call %s: %s", group, self.call_id, e)
                continue
            if result is None:
                continue
            if track_live:
                self._live_groups.add(group)
                if group == "captured_info":
                    self._live_info_keys.update(
                        key for key in partial["capturedInfo"] or {} if key in CAPTURED_INFO_KEYS
                    )
            if result:
                changed.add(group)

        self._notify(changed)
        return changed

    def _notify(self, changed: set[str]) -> None:
        if not changed:
            return
        for listener in list(self._listeners):
            try:
                listener(self._session, changed)
            except Exception as e:
                logger.error("State listener failed for call %s: %s", self.call_id, e)

    # ── Field group handlers ──
    # Each returns None when the update was ignored, else whether anything changed.

    def _apply_station(self, partial: dict) -> bool | None:
        s = self._session
        station = s.current_station
        if "currentStation" in partial:
            station = Station(partial["currentStation"])
            if station.order < s.current_station.order:
                logger.info(
                    "Ignoring stale station %s for call %s (at %s)",
                    station.value, self.call_id, s.current_station.value,
                )
                return None
        completed = s.completed_stations
        if "completedStations" in partial:
            completed = [Station(v) for v in partial["completedStations"] or []]
        changed = station != s.current_station or completed != s.completed_stations
        s.current_station = station
        s.completed_stations = list(completed)
        return changed

    def _apply_segment(self, partial: dict) -> bool | None:
        if "detectedSegment" not in partial:
            logger.debug("Ignoring segmentConfidence without detectedSegment for %s", self.call_id)
            return None
        segment = _optional_enum(Segment, partial["detectedSegment"])
        confidence = coerce_confidence(partial.get("segmentConfidence"))
        s = self._session
        changed = segment != s.detected_segment or confidence != s.segment_confidence
        s.detected_segment = segment
        s.segment_confidence = confidence
        return changed

    def _apply_segment_options(self, partial: dict) -> bool:
        options = []
        for raw in partial["segmentOptions"] or []:
            if isinstance(raw, SegmentOption):
                options.append(raw)
                continue
            try:
                options.append(SegmentOption.from_dict(raw))
            except (ValueError, TypeError, KeyError) as e:
                logger.warning("Dropping bad segment option %r: %s", raw, e)
        options = rank_segment_options(options)
        changed = options != self._session.segment_options
        self._session.segment_options = options
        return changed

    def _apply_captured_info(self, partial: dict) -> bool:
        incoming = partial["capturedInfo"] or {}
        if not isinstance(incoming, dict):
            raise TypeError(f"capturedInfo must be an object, got {type(incoming).__name__}")
        known = {key: value for key, value in incoming.items() if key in CAPTURED_INFO_KEYS}
        for wire_key, value in known.items():
            check_info_value(wire_key, value)
        info = self._session.captured_info
        changed = False
        for wire_key, value in known.items():
            attr = CAPTURED_INFO_KEYS[wire_key]
            if getattr(info, attr) != value:
                setattr(info, attr, value)
                changed = True
        return changed

    def _apply_is_qualified(self, partial: dict) -> bool:
        value = partial["isQualified"]
        if value is not None and not isinstance(value, bool):
            raise TypeError(f"isQualified must be a boolean or null, got {value!r}")
        changed = value != self._session.is_qualified
        self._session.is_qualified = value
        return changed

    def _apply_recommended_destination(self, partial: dict) -> bool:
        value = _optional_enum(Destination, partial["recommendedDestination"])
        changed = value != self._session.recommended_destination
        self._session.recommended_destination = value
        return changed

    def _apply_selected_destination(self, partial: dict) -> bool:
        value = _optional_enum(Destination, partial["selectedDestination"])
        changed = value != self._session.selected_destination
        self._session.selected_destination = value
        return changed

    def _apply_detected_jobs(self, partial: dict) -> bool:
        jobs = build_detected_jobs(partial["detectedJobs"] or [])
        changed = jobs != self._session.detected_jobs
        self._session.detected_jobs = jobs
        return changed
