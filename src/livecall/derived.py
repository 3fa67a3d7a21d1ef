"""Recommendations derived from session state, independent of any layout."""

from dataclasses import dataclass

from livecall.session import CallSession, SegmentOption
from livecall.states import Destination, Segment

DESTINATION_DESCRIPTIONS = {
    Destination.INSTANT_QUOTE: "Simple job, standard pricing",
    Destination.VIDEO_REQUEST: "Complex job, needs visual assessment",
    Destination.SITE_VISIT: "Requires in-person inspection",
    Destination.EMERGENCY_DISPATCH: "Urgent issue, same-day response",
    Destination.EXIT: "Not a fit, end call politely",
}


@dataclass
class DestinationOption:
    destination: Destination
    recommended: bool
    description: str


def effective_recommended_destination(session: CallSession) -> Destination:
    """Server recommendation if there is one, else a local fallback."""
    if session.recommended_destination:
        return session.recommended_destination
    if session.detected_segment == Segment.EMERGENCY:
        return Destination.EMERGENCY_DISPATCH
    info = session.captured_info
    if info.job and info.postcode:
        return Destination.INSTANT_QUOTE
    return Destination.VIDEO_REQUEST


def destination_options(session: CallSession) -> list[DestinationOption]:
    """All destinations, flagged with the recommendation.

    An instant quote needs every detected job priced, so it is left out
    while any job is unmatched.
    """
    recommended = effective_recommended_destination(session)
    options = []
    for destination, description in DESTINATION_DESCRIPTIONS.items():
        if destination == Destination.INSTANT_QUOTE and session.has_unmatched_job:
            continue
        options.append(DestinationOption(
            destination=destination,
            recommended=destination == recommended,
            description=description,
        ))
    return options


def effective_segment_options(session: CallSession) -> list[SegmentOption]:
    if session.segment_options:
        return list(session.segment_options)
    if session.detected_segment:
        return [SegmentOption(segment=session.detected_segment, confidence=session.segment_confidence)]
    return []
