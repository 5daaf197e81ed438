"""
ScriptVision Streaming Module

Progressive delivery of generation runs: state store, sessions,
per-project locks, event model and the delivery channel.
"""

from .store import InMemoryStateStore, RedisStateStore, StateStore, create_store
from .sessions import GenerationLockManager, Session, SessionManager, new_session_id
from .events import StreamEvent, error_event
from .channel import DeliveryChannel, error_stream, memory_usage

__all__ = [
    'InMemoryStateStore',
    'RedisStateStore',
    'StateStore',
    'create_store',
    'GenerationLockManager',
    'Session',
    'SessionManager',
    'new_session_id',
    'StreamEvent',
    'error_event',
    'DeliveryChannel',
    'error_stream',
    'memory_usage',
]
