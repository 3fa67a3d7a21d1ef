import asyncio
import json

import pytest
from livecall.ingestor import EventIngestor
from livecall.store import SessionStateStore

CALL_ID = "CA_test_123"
OTHER_CALL_ID = "CA_other_999"
API_URL = "https://app.example.com/api/call-script"


@pytest.fixture
def store():
    return SessionStateStore(CALL_ID)


@pytest.fixture
def ingestor(store):
    return EventIngestor(store)


@pytest.fixture
def envelope():
    """Build a raw JSON frame the way the server broadcasts it."""
    def _envelope(kind: str, call_id: str = CALL_ID, prefix: str = "callscript:", **data) -> str:
        return json.dumps({"type": f"{prefix}{kind}", "data": {"callId": call_id, **data}})
    return _envelope


@pytest.fixture
def server_state():
    """A mid-call snapshot as GET /session/{callId} returns it."""
    return {
        "callId": CALL_ID,
        "currentStation": "QUALIFY",
        "completedStations": ["LISTEN", "SEGMENT"],
        "detectedSegment": "LANDLORD",
        "segmentConfidence": 82,
        "segmentSignals": ["rental property", "tenant"],
        "capturedInfo": {
            "job": "Leaking tap",
            "postcode": "NG1 1AA",
            "name": None,
            "contact": None,
            "isDecisionMaker": None,
            "isRemote": True,
            "hasTenant": True,
        },
        "isQualified": None,
        "qualificationNotes": [],
        "recommendedDestination": None,
        "selectedDestination": None,
    }


class FakeWebSocket:
    """Async-iterable stand-in for a websockets client connection."""

    def __init__(self, frames=(), error=None, hold_open=False):
        self.frames = list(frames)
        self.error = error
        self.hold_open = hold_open
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame
        if self.error is not None:
            raise self.error
        if self.hold_open:
            await asyncio.Event().wait()

    async def close(self):
        self.closed = True


class FakeConnect:
    def __init__(self, ws=None, error=None):
        self.ws = ws
        self.error = error
        self.calls = []

    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.ws
