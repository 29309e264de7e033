"""SQLAlchemy models for the matching engine"""

from .base import Base, PortableJSONB
from .category import Category
from .listed_item import ListedItem
from .demand_request import DemandRequest
from .barter_offer import BarterOffer
from .barter_chain import BarterChain, BarterParticipant
from .match_record import MatchRecord
from .notification_log import NotificationLog

__all__ = [
    "Base",
    "PortableJSONB",
    "Category",
    "ListedItem",
    "DemandRequest",
    "BarterOffer",
    "BarterChain",
    "BarterParticipant",
    "MatchRecord",
    "NotificationLog",
]
