import hashlib
import math
import re
from dataclasses import dataclass, field

from livecall.states import Destination, Segment, Station

# Wire key -> attribute name
CAPTURED_INFO_KEYS = {
    "job": "job",
    "postcode": "postcode",
    "name": "name",
    "contact": "contact",
    "isDecisionMaker": "is_decision_maker",
    "isRemote": "is_remote",
    "hasTenant": "has_tenant",
}

# Wire keys whose values are booleans; the rest are strings
BOOL_INFO_KEYS = frozenset({"isDecisionMaker", "isRemote", "hasTenant"})

MAX_SEGMENT_OPTIONS = 3


def _finite(value) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    return number


def coerce_confidence(value) -> int:
    """Clamp a classifier confidence to an int in 0-100. None counts as 0.

    Raises ValueError for anything that is not a finite number.
    """
    if value is None:
        return 0
    return max(0, min(100, int(round(_finite(value)))))


def check_info_value(wire_key: str, value) -> None:
    """Raise TypeError unless value fits the captured-info field (None always does)."""
    if value is None:
        return
    expected = bool if wire_key in BOOL_INFO_KEYS else str
    if not isinstance(value, expected):
        raise TypeError(f"{wire_key} must be {expected.__name__} or null, got {value!r}")


@dataclass
class CapturedInfo:
    job: str | None = None
    postcode: str | None = None
    name: str | None = None
    contact: str | None = None
    is_decision_maker: bool | None = None
    is_remote: bool | None = None
    has_tenant: bool | None = None

    def to_dict(self) -> dict:
        return {wire: getattr(self, attr) for wire, attr in CAPTURED_INFO_KEYS.items()}


@dataclass
class SegmentOption:
    segment: Segment
    confidence: int = 0
    signals: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "SegmentOption":
        return cls(
            segment=Segment(data["segment"]),
            confidence=coerce_confidence(data.get("confidence")),
            signals=list(data.get("signals") or []),
        )

    def to_dict(self) -> dict:
        return {
            "segment": self.segment.value,
            "confidence": self.confidence,
            "signals": list(self.signals),
        }


def rank_segment_options(options: list[SegmentOption]) -> list[SegmentOption]:
    """Sort by confidence (highest first) and keep the top three.

    sorted() is stable, so equal confidences keep their arrival order.
    """
    ranked = sorted(options, key=lambda o: o.confidence, reverse=True)
    return ranked[:MAX_SEGMENT_OPTIONS]


@dataclass
class SkuMatch:
    id: str
    name: str = ""
    price_pence: int = 0
    category: str = ""


@dataclass
class DetectedJob:
    id: str
    description: str
    matched: bool = False
    sku: SkuMatch | None = None
    confidence: int | None = None

    def to_dict(self) -> dict:
        sku = None
        if self.sku:
            sku = {
                "id": self.sku.id,
                "name": self.sku.name,
                "pricePence": self.sku.price_pence,
                "category": self.sku.category,
            }
        return {
            "id": self.id,
            "description": self.description,
            "matched": self.matched,
            "sku": sku,
            "confidence": self.confidence,
        }


def job_identity(description: str, sku_id: str = "") -> str:
    """Content-derived id for a detected job.

    The same description matched to the same SKU always yields the same id,
    whatever position the job arrives in.
    """
    normalized = re.sub(r"\s+", " ", (description or "").strip().lower())
    digest = hashlib.sha1(f"{normalized}|{sku_id}".encode("utf-8")).hexdigest()
    return f"job_{digest[:12]}"


def build_detected_jobs(raw_jobs: list[dict]) -> list[DetectedJob]:
    """Build DetectedJob entries with stable ids from raw detection dicts.

    Identical content repeated within one list gets an occurrence suffix
    (-2, -3, ...) so keys stay unique.
    """
    jobs = []
    seen: dict[str, int] = {}
    for raw in raw_jobs:
        if not isinstance(raw, dict):
            continue
        description = str(raw.get("description") or "")
        sku = None
        raw_sku = raw.get("sku")
        if isinstance(raw_sku, dict) and raw_sku.get("id"):
            sku = SkuMatch(
                id=str(raw_sku["id"]),
                name=str(raw_sku.get("name") or ""),
                price_pence=int(_finite(raw_sku.get("pricePence") or 0)),
                category=str(raw_sku.get("category") or ""),
            )
        base = job_identity(description, sku.id if sku else "")
        occurrence = seen.get(base, 0) + 1
        seen[base] = occurrence
        confidence = raw.get("confidence")
        jobs.append(DetectedJob(
            id=base if occurrence == 1 else f"{base}-{occurrence}",
            description=description,
            matched=bool(raw.get("matched", sku is not None)),
            sku=sku,
            confidence=coerce_confidence(confidence) if confidence is not None else None,
        ))
    return jobs


@dataclass
class CallSession:
    call_id: str
    current_station: Station = Station.LISTEN
    completed_stations: list[Station] = field(default_factory=list)

    # Segment: detected_segment and segment_confidence are always written together
    detected_segment: Segment | None = None
    segment_confidence: int = 0
    segment_options: list[SegmentOption] = field(default_factory=list)

    captured_info: CapturedInfo = field(default_factory=CapturedInfo)
    is_qualified: bool | None = None

    recommended_destination: Destination | None = None
    selected_destination: Destination | None = None

    detected_jobs: list[DetectedJob] = field(default_factory=list)

    @property
    def has_unmatched_job(self) -> bool:
        return any(not job.matched for job in self.detected_jobs)

    def to_dict(self) -> dict:
        """Wire-shaped (camelCase) view of the session."""
        return {
            "callId": self.call_id,
            "currentStation": self.current_station.value,
            "completedStations": [s.value for s in self.completed_stations],
            "detectedSegment": self.detected_segment.value if self.detected_segment else None,
            "segmentConfidence": self.segment_confidence,
            "segmentOptions": [o.to_dict() for o in self.segment_options],
            "capturedInfo": self.captured_info.to_dict(),
            "isQualified": self.is_qualified,
            "recommendedDestination": (
                self.recommended_destination.value if self.recommended_destination else None
            ),
            "selectedDestination": (
                self.selected_destination.value if self.selected_destination else None
            ),
            "detectedJobs": [j.to_dict() for j in self.detected_jobs],
        }
