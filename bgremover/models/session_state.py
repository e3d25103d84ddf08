from enum import Enum


class SessionState(str, Enum):
    """Lifecycle of a single background-removal session."""
    IDLE = "idle"              # no image loaded
    EXTRACTING = "extracting"  # image decoded, palette being computed
    READY = "ready"            # palette + result available
    MASKING = "masking"        # a masking pass is pending or running
