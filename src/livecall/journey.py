import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class JourneyStep:
    station_id: str
    option_id: str


@dataclass
class JourneyState:
    """Segment-specific journey the agent walks after the funnel's segment step.

    Derived from the chosen segment, so it is thrown away whenever the
    segment changes.
    """

    path: list[JourneyStep] = field(default_factory=list)
    current_station: str | None = None
    flags: dict = field(default_factory=dict)
    last_reset_reason: str = ""

    def select_option(self, station_id: str, option_id: str, next_station_id: str | None = None):
        self.path.append(JourneyStep(station_id=station_id, option_id=option_id))
        self.current_station = next_station_id
        logger.debug("Journey option %s/%s -> %s", station_id, option_id, next_station_id)

    def set_flag(self, key: str, value) -> None:
        self.flags[key] = value

    def reset(self, reason: str = "manual_reset"):
        self.path = []
        self.current_station = None
        self.flags = {}
        self.last_reset_reason = reason
        logger.debug("Journey reset (%s)", reason)
