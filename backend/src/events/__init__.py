"""Event bus implementations (in-memory and Redis pub/sub)"""

from .bus import EventBus, EventHandler, InMemoryEventBus, make_envelope
from .redis_bus import RedisEventBus

__all__ = ["EventBus", "EventHandler", "InMemoryEventBus", "RedisEventBus", "make_envelope"]
