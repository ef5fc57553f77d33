# zork_app/utils/reply_parser.py
import json
import re
from typing import Any

from ..exceptions import ReplyFormatError

# Models sometimes wrap the JSON object in a markdown fence despite the instructions.
CODE_FENCE_REGEX = re.compile(r'^\s*```(?:json)?\s*(.*?)\s*```\s*$', re.DOTALL | re.IGNORECASE)

REPLY_FORMATS = ("json", "text")


def parse_reply(text: str, reply_format: str = "json") -> Any:
    """
    Turn the assistant's reply text into the value returned to the client.

    ``text`` returns the reply untouched. ``json`` expects a single JSON value,
    optionally inside a markdown code fence, and raises ``ReplyFormatError``
    when it cannot be decoded.
    """
    if reply_format == "text":
        return text
    if reply_format != "json":
        raise ValueError(f"Unknown reply format '{reply_format}'. Expected one of {REPLY_FORMATS}.")

    if text is None:
        raise ReplyFormatError("El asistente no devolvió contenido.")

    candidate = text
    match = CODE_FENCE_REGEX.match(text)
    if match:
        candidate = match.group(1)

    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, TypeError) as e:
        raise ReplyFormatError(
            "La respuesta del asistente no es JSON válido.", detail=f"{e}: {text[:200]!r}"
        ) from e
