from enum import Enum

# Stored as plain strings (native enums disabled for easier evolution).


class LiveStreamStatusEnum(str, Enum):
    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    ENDED = "ENDED"
    CANCELLED = "CANCELLED"
