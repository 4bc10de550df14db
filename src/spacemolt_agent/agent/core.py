"""
Core agent implementation: the bounded think/act turn loop.

Each round of a turn:
1. Runs the compaction gate so the conversation fits the token budget
2. Calls the LLM (bounded retry, per-call timeout, cancellable)
3. Appends the assistant message and surfaces its text
4. Executes every tool call in emission order and appends the results

A turn ends when the model emits no tool calls, the round cap is reached,
the model keeps failing, or the cancellation token fires.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable

import structlog

from ..config import Settings, get_settings
from ..llm import BaseLLM, LLMMessage, LLMResponse, ToolCall, ToolDefinition, create_llm
from ..llm.exceptions import LLMEmptyResponseError, LLMError, LLMStopError, LLMTimeoutError
from ..tools.executor import ToolExecutor
from .cancellation import CancelToken, TurnCancelled
from .compaction import CompactionConfig, CompactionState, compact_if_needed, render_for_summary

logger = structlog.get_logger()

MAX_TOOL_ROUNDS = 30
MAX_LLM_RETRIES = 3
LLM_RETRY_BASE_DELAY = 5.0  # 5s, 10s
LLM_TIMEOUT = 120.0
MAX_OUTPUT_TOKENS = 4096
HANDOFF_MAX_TOKENS = 1024
HANDOFF_RECENT_MESSAGES = 60

ERROR_RESULT_PREFIX = "Error"

HANDOFF_SYSTEM_PROMPT = (
    "You write handoff notes so the next session of an autonomous game agent "
    "can resume where this one stopped."
)


@dataclass
class ConversationContext:
    """Context for a conversation.

    ``messages[0]`` is the mission instruction and is never evicted.
    """

    messages: list[LLMMessage] = field(default_factory=list)
    system_prompt: str = ""

    def add_user_message(self, content: str) -> None:
        """Add a user message."""
        self.messages.append(LLMMessage(role="user", content=content))

    def add_assistant_message(
        self,
        content: str,
        tool_calls: list[ToolCall] | None = None,
        reasoning: str | None = None,
    ) -> None:
        """Add an assistant message."""
        self.messages.append(LLMMessage(
            role="assistant",
            content=content,
            tool_calls=tool_calls,
            reasoning=reasoning,
        ))

    def add_tool_result(
        self,
        tool_call_id: str,
        result: str,
        tool_name: str = "",
        is_error: bool = False,
    ) -> None:
        """Add a tool result."""
        self.messages.append(LLMMessage(
            role="tool",
            content=result,
            tool_call_id=tool_call_id,
            name=tool_name,
            is_error=is_error,
        ))

    @property
    def instruction(self) -> LLMMessage | None:
        return self.messages[0] if self.messages else None

    @property
    def message_count(self) -> int:
        """Get the number of messages."""
        return len(self.messages)


@dataclass
class TurnResult:
    """How a turn ended. None of these outcomes raise."""

    rounds: int
    stopped_reason: str  # done | max_rounds | cancelled | llm_failed


def _log_agent_text(text: str) -> None:
    logger.info("Agent says", text=text)


class Agent:
    """Drives think/act rounds between the LLM and the tool executor."""

    def __init__(
        self,
        executor: ToolExecutor,
        llm: BaseLLM | None = None,
        settings: Settings | None = None,
        compaction_config: CompactionConfig | None = None,
        on_text: Callable[[str], None] | None = None,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
        max_llm_retries: int = MAX_LLM_RETRIES,
        retry_base_delay: float = LLM_RETRY_BASE_DELAY,
        llm_timeout: float = LLM_TIMEOUT,
    ):
        self.settings = settings or get_settings()
        self.llm = llm or create_llm(settings=self.settings)
        self.executor = executor
        self.compaction_config = compaction_config or CompactionConfig(
            context_window=self.settings.context_window,
        )
        self.on_text = on_text or _log_agent_text
        self.max_tool_rounds = max_tool_rounds
        self.max_llm_retries = max_llm_retries
        self.retry_base_delay = retry_base_delay
        self.llm_timeout = llm_timeout

    async def run_turn(
        self,
        context: ConversationContext,
        compaction: CompactionState,
        cancel: CancelToken | None = None,
    ) -> TurnResult:
        """Run one turn of bounded rounds against the shared conversation."""
        cancel = cancel or CancelToken()
        tools = self.executor.definitions()
        rounds = 0

        while rounds < self.max_tool_rounds:
            if cancel.cancelled:
                logger.info("Turn aborted")
                return TurnResult(rounds, "cancelled")

            try:
                await cancel.run(
                    compact_if_needed(self.llm, context, compaction, self.compaction_config)
                )
                response = await self._complete_with_retry(context, tools, cancel)
            except TurnCancelled:
                logger.info("Turn aborted")
                return TurnResult(rounds, "cancelled")
            except LLMError as e:
                logger.error("LLM call failed", error=str(e))
                return TurnResult(rounds, "llm_failed")

            context.add_assistant_message(
                response.content,
                response.tool_calls or None,
                reasoning=response.reasoning,
            )

            text = response.content.strip()
            if text:
                self.on_text(text)

            if not response.tool_calls:
                return TurnResult(rounds + 1, "done")

            for tool_call in response.tool_calls:
                if cancel.cancelled:
                    logger.info("Turn aborted during tool execution")
                    return TurnResult(rounds, "cancelled")

                try:
                    result = await cancel.run(
                        self.executor.execute(tool_call.name, tool_call.arguments)
                    )
                except TurnCancelled:
                    logger.info("Turn aborted during tool execution", tool=tool_call.name)
                    return TurnResult(rounds, "cancelled")

                context.add_tool_result(
                    tool_call.id,
                    result,
                    tool_call.name,
                    is_error=result.startswith(ERROR_RESULT_PREFIX),
                )

            rounds += 1

        logger.warning("Reached max tool rounds, ending turn", max_rounds=self.max_tool_rounds)
        return TurnResult(rounds, "max_rounds")

    async def _complete_with_retry(
        self,
        context: ConversationContext,
        tools: list[ToolDefinition],
        cancel: CancelToken,
    ) -> LLMResponse:
        """Call the LLM, retrying empty, errored or timed-out responses."""
        last_error: Exception | None = None

        for attempt in range(self.max_llm_retries):
            logger.debug(
                "Calling LLM",
                attempt=attempt + 1,
                max_attempts=self.max_llm_retries,
                messages=len(context.messages),
            )
            try:
                response = await cancel.run(
                    self.llm.generate(
                        messages=context.messages,
                        tools=tools or None,
                        system_prompt=context.system_prompt,
                        max_tokens=MAX_OUTPUT_TOKENS,
                    ),
                    timeout=self.llm_timeout,
                )
                if response.stop_reason == "error":
                    raise LLMStopError(response.error_message or "LLM returned an error response")
                if response.is_empty:
                    raise LLMEmptyResponseError("LLM returned an empty response")

                logger.debug(
                    "LLM responded",
                    tool_calls=len(response.tool_calls),
                    stop_reason=response.stop_reason,
                    tokens=response.total_tokens,
                )
                return response

            except TurnCancelled:
                raise
            except TimeoutError:
                last_error = LLMTimeoutError(f"LLM call timed out after {self.llm_timeout:.0f}s")
            except Exception as e:
                last_error = e

            logger.error(
                "LLM error",
                attempt=attempt + 1,
                max_attempts=self.max_llm_retries,
                error=str(last_error),
            )
            if attempt + 1 < self.max_llm_retries:
                delay = self.retry_base_delay * (2 ** attempt)
                logger.info("Retrying LLM call", delay=delay)
                await cancel.sleep(delay)

        raise LLMError(
            f"LLM call failed after {self.max_llm_retries} attempts: {last_error}"
        ) from last_error

    async def generate_handoff(
        self,
        context: ConversationContext,
        compaction: CompactionState,
    ) -> str:
        """Write a short note the next session can resume from.

        Returns an empty string when the session was too short or the call failed.
        """
        if len(context.messages) < 3:
            return ""

        recent = context.messages[1:][-HANDOFF_RECENT_MESSAGES:]
        transcript = render_for_summary(recent, self.compaction_config.tool_result_char_cap)
        earlier = f"Earlier progress:\n{compaction.summary}\n\n" if compaction.summary else ""

        prompt = f"""{earlier}Recent activity:
{transcript}

Write a handoff note of at most 10 bullet points for the next session:
current location and ship state, active goals, unfinished tasks, and
anything that went wrong. Reply with the bullet points only."""

        try:
            response = await asyncio.wait_for(
                self.llm.generate(
                    messages=[LLMMessage(role="user", content=prompt)],
                    system_prompt=HANDOFF_SYSTEM_PROMPT,
                    max_tokens=HANDOFF_MAX_TOKENS,
                ),
                timeout=self.llm_timeout,
            )
        except Exception as e:
            logger.error("Handoff generation failed", error=str(e))
            return ""

        return response.content.strip()
