from .tracking_record import TrackingRecord
from .relapse import RelapseRecord
from .power_action import PowerActionRecord
from .check_in import CheckInRecord
from .badge import BadgeRecord

__all__ = [
    "TrackingRecord",
    "RelapseRecord",
    "PowerActionRecord",
    "CheckInRecord",
    "BadgeRecord",
]

# Child tables, in the order the integrity layer walks them.
CHILD_MODELS = (RelapseRecord, PowerActionRecord, CheckInRecord, BadgeRecord)
