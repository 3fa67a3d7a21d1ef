"""Inbound WebSocket messages as a closed set of typed dataclasses.

Envelope on the wire: {"type": "<kind>", "data": {"callId": ..., ...}}.
The server namespaces its types ("callscript:station_update"); the prefix
is optional here.
"""

import json
from dataclasses import dataclass, field
from typing import ClassVar

TYPE_PREFIX = "callscript:"


class MessageParseError(ValueError):
    """Raised for payloads that cannot be turned into a known message."""


@dataclass(frozen=True)
class Message:
    kind: ClassVar[str] = ""
    call_id: str

    @classmethod
    def from_data(cls, data: dict) -> "Message":
        return cls(call_id=data["callId"])


def _state_of(data: dict) -> dict:
    """Server pushes carry the session under "state"; fall back to the data itself."""
    state = data.get("state")
    return state if isinstance(state, dict) else data


@dataclass(frozen=True)
class SessionStarted(Message):
    kind: ClassVar[str] = "session_started"
    phone: str = ""
    state: dict = field(default_factory=dict)

    @classmethod
    def from_data(cls, data: dict) -> "SessionStarted":
        state = data.get("state")
        return cls(
            call_id=data["callId"],
            phone=data.get("phone") or "",
            state=state if isinstance(state, dict) else {},
        )


@dataclass(frozen=True)
class StationUpdate(Message):
    kind: ClassVar[str] = "station_update"
    current_station: str | None = None
    completed_stations: tuple = ()
    recommended_destination: str | None = None
    has_recommendation: bool = False

    @classmethod
    def from_data(cls, data: dict) -> "StationUpdate":
        state = _state_of(data)
        current = state.get("currentStation") or data.get("to")
        if not current:
            raise MessageParseError("station_update without currentStation")
        return cls(
            call_id=data["callId"],
            current_station=current,
            completed_stations=tuple(state.get("completedStations") or ()),
            recommended_destination=state.get("recommendedDestination"),
            has_recommendation="recommendedDestination" in state,
        )


@dataclass(frozen=True)
class SegmentDetected(Message):
    kind: ClassVar[str] = "segment_detected"
    segment: str = ""
    confidence: float = 0
    signals: tuple = ()
    alternatives: tuple = ()
    tier: int | None = None

    @classmethod
    def from_data(cls, data: dict) -> "SegmentDetected":
        if not data.get("segment"):
            raise MessageParseError("segment_detected without segment")
        alternatives = data.get("alternatives") or ()
        return cls(
            call_id=data["callId"],
            segment=data["segment"],
            confidence=data.get("confidence") or 0,
            signals=tuple(data.get("signals") or ()),
            alternatives=tuple(a for a in alternatives if isinstance(a, dict)),
            tier=data.get("tier"),
        )


@dataclass(frozen=True)
class SegmentConfirmed(Message):
    kind: ClassVar[str] = "segment_confirmed"
    segment: str = ""

    @classmethod
    def from_data(cls, data: dict) -> "SegmentConfirmed":
        if not data.get("segment"):
            raise MessageParseError("segment_confirmed without segment")
        return cls(call_id=data["callId"], segment=data["segment"])


@dataclass(frozen=True)
class InfoCaptured(Message):
    kind: ClassVar[str] = "info_captured"
    captured_info: dict = field(default_factory=dict)

    @classmethod
    def from_data(cls, data: dict) -> "InfoCaptured":
        info = data.get("capturedInfo")
        if not isinstance(info, dict):
            raise MessageParseError("info_captured without capturedInfo object")
        return cls(call_id=data["callId"], captured_info=info)


@dataclass(frozen=True)
class QualifiedSet(Message):
    kind: ClassVar[str] = "qualified_set"
    qualified: bool | None = None
    notes: tuple = ()

    @classmethod
    def from_data(cls, data: dict) -> "QualifiedSet":
        qualified = data.get("qualified")
        if qualified is not None and not isinstance(qualified, bool):
            raise MessageParseError(f"qualified_set with non-boolean qualified: {qualified!r}")
        return cls(
            call_id=data["callId"],
            qualified=qualified,
            notes=tuple(data.get("notes") or ()),
        )


@dataclass(frozen=True)
class DestinationSelected(Message):
    kind: ClassVar[str] = "destination_selected"
    destination: str = ""

    @classmethod
    def from_data(cls, data: dict) -> "DestinationSelected":
        if not data.get("destination"):
            raise MessageParseError("destination_selected without destination")
        return cls(call_id=data["callId"], destination=data["destination"])


@dataclass(frozen=True)
class JobsDetected(Message):
    kind: ClassVar[str] = "jobs_detected"
    jobs: tuple = ()

    @classmethod
    def from_data(cls, data: dict) -> "JobsDetected":
        jobs = data.get("jobs")
        if not isinstance(jobs, list):
            raise MessageParseError("jobs_detected without jobs list")
        return cls(call_id=data["callId"], jobs=tuple(jobs))


@dataclass(frozen=True)
class SessionEnded(Message):
    kind: ClassVar[str] = "session_ended"
    reason: str = ""

    @classmethod
    def from_data(cls, data: dict) -> "SessionEnded":
        return cls(call_id=data["callId"], reason=data.get("reason") or "")


@dataclass(frozen=True)
class ErrorNotice(Message):
    kind: ClassVar[str] = "error"
    message: str = ""

    @classmethod
    def from_data(cls, data: dict) -> "ErrorNotice":
        return cls(call_id=data["callId"], message=data.get("message") or "")


MESSAGE_TYPES: dict[str, type[Message]] = {
    cls.kind: cls
    for cls in (
        SessionStarted,
        StationUpdate,
        SegmentDetected,
        SegmentConfirmed,
        InfoCaptured,
        QualifiedSet,
        DestinationSelected,
        JobsDetected,
        SessionEnded,
        ErrorNotice,
    )
}


def normalize_type(raw_type: str) -> str:
    if raw_type.startswith(TYPE_PREFIX):
        return raw_type[len(TYPE_PREFIX):]
    return raw_type


def parse_message(raw) -> Message:
    """Parse a raw frame (str, bytes or already-decoded dict) into a Message.

    Raises MessageParseError for malformed JSON, a missing or unknown type,
    or a missing callId.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MessageParseError(f"undecodable frame: {e}") from e
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MessageParseError(f"malformed JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MessageParseError(f"expected a JSON object, got {type(raw).__name__}")

    raw_type = raw.get("type")
    if not isinstance(raw_type, str) or not raw_type:
        raise MessageParseError("message without type")
    kind = normalize_type(raw_type)
    cls = MESSAGE_TYPES.get(kind)
    if cls is None:
        raise MessageParseError(f"unknown message type: {raw_type}")

    data = raw.get("data")
    if not isinstance(data, dict):
        raise MessageParseError(f"{kind} without data object")
    if not isinstance(data.get("callId"), str) or not data["callId"]:
        raise MessageParseError(f"{kind} without callId")

    try:
        return cls.from_data(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise MessageParseError(f"bad {kind} payload: {e}") from e
