"""
Conversation Compaction - Token-budgeted context summarization.

Runs as a gate before every model call. When the conversation grows past a
fraction of the model's context window, the older part is folded into a
running summary while the recent part is kept verbatim.

Key properties:
- Index 0 (the mission instruction) is never evicted or reordered
- Splits only happen at user messages, so an assistant message is never
  separated from its tool results
- The summary is carried across compactions and rebuilt each time
- Summarization failure degrades to the previous summary, never fails a turn
"""

import asyncio
import json
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from ..llm.base import BaseLLM, LLMMessage
from ..llm.exceptions import LLMEmptyResponseError

if TYPE_CHECKING:
    from .core import ConversationContext

logger = structlog.get_logger()

# Approximate characters per token (conservative estimate)
CHARS_PER_TOKEN = 4

DEFAULT_CONTEXT_WINDOW = 128_000
DEFAULT_BUDGET_RATIO = 0.6  # Compact when 60% of the window is used
DEFAULT_RECENT_BUDGET_RATIO = 0.25
DEFAULT_MIN_RECENT_MESSAGES = 10
DEFAULT_SUMMARY_MAX_TOKENS = 1024
DEFAULT_SUMMARY_TIMEOUT = 60.0
DEFAULT_TOOL_RESULT_CHAR_CAP = 300

SUMMARY_PREFIX = "[Summary of earlier progress]"
LOST_CONTEXT_NOTE = "(Additional context was lost: older messages could not be summarized.)"
PLACEHOLDER_SUMMARY = "(Earlier conversation was compacted; no summary is available.)"

SUMMARY_SYSTEM_PROMPT = (
    "You summarize the progress of an autonomous agent playing a space MMO. "
    "Write concise, fact-preserving bullet points."
)


@dataclass
class CompactionConfig:
    """Configuration for conversation compaction."""

    context_window: int = DEFAULT_CONTEXT_WINDOW
    budget_ratio: float = DEFAULT_BUDGET_RATIO
    recent_budget_ratio: float = DEFAULT_RECENT_BUDGET_RATIO
    min_recent_messages: int = DEFAULT_MIN_RECENT_MESSAGES
    summary_max_tokens: int = DEFAULT_SUMMARY_MAX_TOKENS
    summary_timeout: float = DEFAULT_SUMMARY_TIMEOUT
    tool_result_char_cap: int = DEFAULT_TOOL_RESULT_CHAR_CAP
    enabled: bool = True

    @property
    def budget_tokens(self) -> int:
        return int(self.context_window * self.budget_ratio)

    @property
    def recent_budget_tokens(self) -> int:
        return int(self.context_window * self.recent_budget_ratio)


@dataclass
class CompactionState:
    """Running summary carried across turns of one game session."""

    summary: str = ""
    compaction_count: int = 0


@dataclass
class CompactionResult:
    """Result of a compaction check."""

    original_message_count: int
    compacted_message_count: int
    summary: str
    tokens_saved_estimate: int
    success: bool
    compacted: bool = False
    error: str | None = None


def estimate_message_tokens(message: LLMMessage) -> int:
    """Estimate tokens for one message: text, tool calls and reasoning."""
    chars = len(message.content)
    for tool_call in message.tool_calls or []:
        chars += len(tool_call.name)
        chars += len(json.dumps(tool_call.arguments, default=str))
    if message.reasoning:
        chars += len(message.reasoning)
    return math.ceil(chars / CHARS_PER_TOKEN)


def estimate_tokens(messages: list[LLMMessage]) -> int:
    """Estimate token count for a list of messages."""
    return sum(estimate_message_tokens(m) for m in messages)


def find_split_index(
    messages: list[LLMMessage],
    recent_budget_tokens: int,
    min_recent_messages: int,
) -> int | None:
    """Pick where the verbatim recent window starts.

    Scans backward from the end. The window always grows to at least
    ``min_recent_messages``, then keeps growing until the next message would
    push it past ``recent_budget_tokens``. The candidate is snapped forward to
    the next user message (without shrinking the window below the minimum),
    else backward to the nearest one. Returns None when no user message can
    serve as the boundary.
    """
    total = len(messages)
    if total <= 1:
        return None

    candidate = total
    recent_tokens = 0
    for i in range(total - 1, 0, -1):
        recent_tokens += estimate_message_tokens(messages[i])
        if recent_tokens > recent_budget_tokens and total - i > min_recent_messages:
            break
        candidate = i

    latest = max(total - min_recent_messages, candidate)
    for j in range(candidate, min(latest, total - 1) + 1):
        if messages[j].role == "user":
            return j

    for j in range(candidate - 1, 0, -1):
        if messages[j].role == "user":
            return j

    return None


def _is_summary_message(message: LLMMessage) -> bool:
    return message.role == "user" and message.content.startswith(SUMMARY_PREFIX)


def render_for_summary(messages: list[LLMMessage], tool_result_char_cap: int) -> str:
    """Render messages as compact transcript lines."""
    lines = []
    for msg in messages:
        if _is_summary_message(msg):
            continue
        if msg.role == "user":
            lines.append(f"USER: {msg.content}")
        elif msg.role == "assistant":
            if msg.content.strip():
                lines.append(f"ASSISTANT: {msg.content.strip()}")
            for tc in msg.tool_calls or []:
                args = json.dumps(tc.arguments, default=str)
                lines.append(f"ASSISTANT called {tc.name}({args})")
        elif msg.role == "tool":
            text = msg.content
            if len(text) > tool_result_char_cap:
                text = text[:tool_result_char_cap] + "..."
            tag = "TOOL ERROR" if msg.is_error else "TOOL RESULT"
            name = f" {msg.name}" if msg.name else ""
            lines.append(f"{tag}{name}: {text}")
    return "\n".join(lines)


def fallback_summary(previous_summary: str) -> str:
    """Summary used when the summarization call fails."""
    if previous_summary:
        return f"{previous_summary}\n\n{LOST_CONTEXT_NOTE}"
    return PLACEHOLDER_SUMMARY


async def _generate_summary(
    llm: BaseLLM,
    messages: list[LLMMessage],
    previous_summary: str,
    config: CompactionConfig,
) -> str:
    """Use the LLM to fold old messages into the running summary."""
    transcript = render_for_summary(messages, config.tool_result_char_cap)

    previous_section = ""
    if previous_summary:
        previous_section = f"Summary so far:\n{previous_summary}\n\n"

    summary_prompt = f"""{previous_section}Update the summary with the conversation below.
Preserve:
- Current goals and the plan to reach them
- Location, ship, cargo, credits and other concrete game state
- Important discoveries, players met, and commitments made
- Errors encountered and what fixed them

Reply with concise bullet points only.

Conversation:
{transcript}

Summary:"""

    response = await asyncio.wait_for(
        llm.generate(
            messages=[LLMMessage(role="user", content=summary_prompt)],
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            max_tokens=config.summary_max_tokens,
        ),
        timeout=config.summary_timeout,
    )

    summary = response.content.strip()
    if not summary:
        raise LLMEmptyResponseError("Summarizer returned an empty summary")
    return summary


async def compact_if_needed(
    llm: BaseLLM,
    context: "ConversationContext",
    state: CompactionState,
    config: CompactionConfig | None = None,
) -> CompactionResult:
    """Compact ``context.messages`` in place when over budget.

    The rebuilt conversation is ``[instruction, summary, *recent]``.
    """
    config = config or CompactionConfig()
    messages = context.messages
    current_tokens = estimate_tokens(messages)

    unchanged = CompactionResult(
        original_message_count=len(messages),
        compacted_message_count=len(messages),
        summary=state.summary,
        tokens_saved_estimate=0,
        success=True,
    )

    if not config.enabled or current_tokens < config.budget_tokens:
        return unchanged

    split = find_split_index(messages, config.recent_budget_tokens, config.min_recent_messages)
    if split is None or split <= 1:
        logger.info(
            "Context over budget but nothing to compact",
            estimated_tokens=current_tokens,
            message_count=len(messages),
        )
        return unchanged

    older = [m for m in messages[1:split] if not _is_summary_message(m)]
    if not older:
        # Only the previous summary precedes the recent window
        logger.info(
            "Context over budget but nothing new to summarize",
            estimated_tokens=current_tokens,
            split=split,
        )
        return unchanged

    logger.info(
        "Starting conversation compaction",
        message_count=len(messages),
        estimated_tokens=current_tokens,
        budget=config.budget_tokens,
        split=split,
    )

    error = None
    try:
        summary = await _generate_summary(llm, older, state.summary, config)
    except Exception as e:
        logger.error("Compaction summarization failed, using fallback", error=str(e))
        error = str(e)
        summary = fallback_summary(state.summary)

    summary_message = LLMMessage(role="user", content=f"{SUMMARY_PREFIX}\n{summary}")
    compacted = [messages[0], summary_message, *messages[split:]]

    context.messages = compacted
    state.summary = summary
    state.compaction_count += 1

    result = CompactionResult(
        original_message_count=len(messages),
        compacted_message_count=len(compacted),
        summary=summary,
        tokens_saved_estimate=max(0, current_tokens - estimate_tokens(compacted)),
        success=True,
        compacted=True,
        error=error,
    )

    logger.info(
        "Compaction complete",
        original=result.original_message_count,
        compacted=result.compacted_message_count,
        tokens_saved=result.tokens_saved_estimate,
        fallback=error is not None,
    )

    return result
