# zork_app/utils/history_builder.py
import datetime
from datetime import timezone
from typing import Any, Dict, Iterable, List, Optional


def _timestamp(epoch_seconds: Optional[int]) -> Optional[str]:
    if epoch_seconds is None:
        return None
    return datetime.datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


def build_exchanges(messages: Iterable) -> List[Dict[str, Any]]:
    """
    Pair each user message with the assistant message that follows it.

    ``messages`` must be in chronological order (objects with ``role``,
    ``text`` and ``created_at``). A user message with no reply yields an
    exchange whose ``zorkMaster`` is None; an assistant message with no
    preceding user message yields one whose ``user`` is None.
    """
    exchanges: List[Dict[str, Any]] = []
    pending: Optional[Dict[str, Any]] = None

    for message in messages:
        if message.role == "user":
            if pending is not None:
                exchanges.append(pending)
            pending = {"user": message.text, "zorkMaster": None, "timestamp": _timestamp(message.created_at)}
        elif message.role == "assistant":
            if pending is not None:
                pending["zorkMaster"] = message.text
                exchanges.append(pending)
                pending = None
            else:
                exchanges.append({"user": None, "zorkMaster": message.text,
                                  "timestamp": _timestamp(message.created_at)})

    if pending is not None:
        exchanges.append(pending)
    return exchanges
