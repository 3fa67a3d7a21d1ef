import logging
from typing import Callable

from livecall.messages import (
    MESSAGE_TYPES,
    DestinationSelected,
    ErrorNotice,
    InfoCaptured,
    JobsDetected,
    Message,
    MessageParseError,
    QualifiedSet,
    SegmentConfirmed,
    SegmentDetected,
    SessionEnded,
    SessionStarted,
    StationUpdate,
    parse_message,
)
from livecall.session import SegmentOption, coerce_confidence, rank_segment_options
from livecall.states import Segment
from livecall.store import SessionStateStore

logger = logging.getLogger(__name__)

CONFIRMED_CONFIDENCE = 100


def build_segment_options(message: SegmentDetected) -> list[SegmentOption]:
    """Primary detection plus alternatives, ranked and capped."""
    options = [SegmentOption(
        segment=Segment(message.segment),
        confidence=coerce_confidence(message.confidence),
        signals=list(message.signals),
    )]
    for alt in message.alternatives:
        try:
            options.append(SegmentOption.from_dict(alt))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Dropping bad segment alternative %r: %s", alt, e)
    return rank_segment_options(options)


class EventIngestor:
    """Turns inbound messages for one call into store updates.

    Messages for any other call id are dropped, so a view reused across
    calls never picks up state meant for another call. Messages that carry
    no session state (session_ended, error) are passed to ``on_notice``
    for the UI to display.
    """

    def __init__(
        self,
        store: SessionStateStore,
        on_notice: Callable[[Message], None] | None = None,
    ):
        self.store = store
        self.on_notice = on_notice
        self.accepted_count = 0
        self.dropped_count = 0

    @property
    def call_id(self) -> str:
        return self.store.call_id

    def ingest(self, raw) -> Message | None:
        """Parse and apply one raw message. Never raises.

        Returns the applied message, or None if it was dropped.
        """
        try:
            message = parse_message(raw)
        except MessageParseError as e:
            self.dropped_count += 1
            logger.warning("Dropping unparseable message: %s", e)
            return None
        return self.apply(message)

    def apply(self, message: Message) -> Message | None:
        if message.call_id != self.call_id:
            self.dropped_count += 1
            logger.debug("Ignoring %s for call %s (showing %s)", message.kind, message.call_id, self.call_id)
            return None

        handler = getattr(self, f"_on_{message.kind}")
        try:
            handler(message)
        except (ValueError, TypeError, KeyError) as e:
            self.dropped_count += 1
            logger.warning("Dropping bad %s for call %s: %s", message.kind, self.call_id, e)
            return None
        self.accepted_count += 1
        return message

    # ── Handlers, one per message kind ──

    def _on_session_started(self, message: SessionStarted):
        logger.info("Session started for call %s", self.call_id)
        self.store.reset()

    def _on_station_update(self, message: StationUpdate):
        logger.info("Station update for call %s: %s", self.call_id, message.current_station)
        update = {
            "currentStation": message.current_station,
            "completedStations": list(message.completed_stations),
        }
        if message.has_recommendation:
            update["recommendedDestination"] = message.recommended_destination
        self.store.apply_update(update)

    def _on_segment_detected(self, message: SegmentDetected):
        options = build_segment_options(message)
        logger.info(
            "Segment detected for call %s: %s (%s)",
            self.call_id, message.segment, coerce_confidence(message.confidence),
        )
        self.store.apply_update({
            "detectedSegment": message.segment,
            "segmentConfidence": message.confidence,
            "segmentOptions": options,
        })

    def _on_segment_confirmed(self, message: SegmentConfirmed):
        logger.info("Segment confirmed for call %s: %s", self.call_id, message.segment)
        self.store.apply_update({
            "detectedSegment": message.segment,
            "segmentConfidence": CONFIRMED_CONFIDENCE,
        })

    def _on_info_captured(self, message: InfoCaptured):
        logger.debug("Info captured for call %s: %s", self.call_id, sorted(message.captured_info))
        self.store.apply_update({"capturedInfo": message.captured_info})

    def _on_qualified_set(self, message: QualifiedSet):
        logger.info("Qualified set for call %s: %s", self.call_id, message.qualified)
        self.store.apply_update({"isQualified": message.qualified})

    def _on_destination_selected(self, message: DestinationSelected):
        logger.info("Destination selected for call %s: %s", self.call_id, message.destination)
        self.store.apply_update({"selectedDestination": message.destination})

    def _on_jobs_detected(self, message: JobsDetected):
        logger.debug("Jobs detected for call %s: %d", self.call_id, len(message.jobs))
        self.store.apply_update({"detectedJobs": list(message.jobs)})

    def _on_session_ended(self, message: SessionEnded):
        logger.info("Session ended for call %s", self.call_id)
        self._notify(message)

    def _on_error(self, message: ErrorNotice):
        logger.error("Session error for call %s: %s", self.call_id, message.message)
        self._notify(message)

    def _notify(self, message: Message):
        if self.on_notice is None:
            return
        try:
            self.on_notice(message)
        except Exception as e:
            logger.error("Notice handler failed for call %s: %s", self.call_id, e)


def _check_handlers():
    missing = [kind for kind in MESSAGE_TYPES if not hasattr(EventIngestor, f"_on_{kind}")]
    if missing:
        raise ImportError(f"EventIngestor has no handler for: {', '.join(missing)}")


_check_handlers()
