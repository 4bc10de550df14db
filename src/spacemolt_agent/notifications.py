"""
Game notification rendering.

Notifications ride along on API responses (chat, combat, trade, system tips).
They are logged for the human watching and condensed into event lines for the
next continuation prompt.
"""

import json
from typing import Any

import structlog

logger = structlog.get_logger()


def _decode_data(data: Any) -> Any:
    # The HTTP API may deliver the payload as a JSON string
    if isinstance(data, str):
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            return data
    return data


def log_notifications(notifications: list[Any]) -> None:
    """Log chat and system notifications so the human watching sees them."""
    for item in notifications:
        if not isinstance(item, dict):
            continue
        kind = item.get("type")
        msg_type = item.get("msg_type")
        data = _decode_data(item.get("data"))

        if msg_type == "chat_message" and isinstance(data, dict):
            channel = data.get("channel") or "?"
            sender = data.get("sender") or "Unknown"
            content = data.get("content") or ""
            if sender == "[ADMIN]":
                logger.info("Broadcast", message=content)
            elif channel == "private":
                logger.info("Direct message", sender=sender, message=content)
            else:
                logger.info("Chat", channel=str(channel).upper(), sender=sender, message=content)
            continue

        if kind in ("system", "tip") and isinstance(data, dict):
            logger.info("System notice", message=data.get("message") or json.dumps(data))
            continue

        if kind in ("combat", "trade") and isinstance(data, dict):
            logger.info(
                "Game event",
                category=kind,
                message=data.get("message") or json.dumps(data),
            )
            continue

        logger.debug("Notification", type=kind, msg_type=msg_type, data=data)


def _event_message(item: dict[str, Any]) -> str:
    data = _decode_data(item.get("data"))
    if isinstance(data, dict):
        message = data.get("message") or data.get("content")
        if message:
            sender = data.get("sender")
            return f"{sender}: {message}" if sender else str(message)
    elif isinstance(data, str) and data:
        return data
    return item.get("message") or item.get("content") or json.dumps(item, default=str)


def format_notifications(notifications: list[Any]) -> str:
    """Condense notifications into ``> [type] message`` lines."""
    lines = []
    for item in notifications:
        if isinstance(item, str):
            lines.append(f"  > {item}")
        elif isinstance(item, dict):
            kind = item.get("type") or item.get("msg_type") or "event"
            lines.append(f"  > [{kind}] {_event_message(item)}")
    return "\n".join(lines)
