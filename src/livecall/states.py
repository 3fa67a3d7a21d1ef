from enum import Enum

STATION_ORDER = ("LISTEN", "SEGMENT", "QUALIFY", "DESTINATION")


class Station(Enum):
    LISTEN = "LISTEN"
    SEGMENT = "SEGMENT"
    QUALIFY = "QUALIFY"
    DESTINATION = "DESTINATION"

    @property
    def order(self) -> int:
        return STATION_ORDER.index(self.value)

    @property
    def next(self) -> "Station | None":
        idx = self.order + 1
        if idx >= len(STATION_ORDER):
            return None
        return Station(STATION_ORDER[idx])

    @property
    def is_final(self) -> bool:
        return self.next is None


class Segment(Enum):
    LANDLORD = "LANDLORD"
    BUSY_PRO = "BUSY_PRO"
    PROP_MGR = "PROP_MGR"
    OAP = "OAP"
    SMALL_BIZ = "SMALL_BIZ"
    EMERGENCY = "EMERGENCY"
    BUDGET = "BUDGET"


class Destination(Enum):
    INSTANT_QUOTE = "INSTANT_QUOTE"
    VIDEO_REQUEST = "VIDEO_REQUEST"
    SITE_VISIT = "SITE_VISIT"
    EMERGENCY_DISPATCH = "EMERGENCY_DISPATCH"
    EXIT = "EXIT"
