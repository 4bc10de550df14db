"""
Agent module - the brain of the system.

Includes:
- Agent: Bounded think/act turn loop with LLM + tools
- ConversationContext: In-memory conversation state
- Compaction: Token-budgeted context summarization
- CancelToken: Cooperative cancellation
- SessionStore: Local credentials and TODO list
"""

from .cancellation import CancelToken, TurnCancelled
from .compaction import CompactionConfig, CompactionState, compact_if_needed
from .core import Agent, ConversationContext, TurnResult
from .session import Credentials, SessionStore

__all__ = [
    "Agent",
    "ConversationContext",
    "TurnResult",
    "CancelToken",
    "TurnCancelled",
    "CompactionConfig",
    "CompactionState",
    "compact_if_needed",
    "Credentials",
    "SessionStore",
]
