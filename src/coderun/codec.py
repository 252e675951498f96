"""Frame codec: commands to JSON text, JSON text to typed server events.

One logical message per frame in both directions. No ordering or
deduplication here; the transport delivers frames in order, once.
"""

from pydantic import TypeAdapter, ValidationError

from coderun.constants import FRAME_PREVIEW_CHARS
from coderun.exceptions import ProtocolError
from coderun.protocol import ServerMessage, StartJobCommand, StdinCommand

# TypeAdapter construction builds the whole union validator; do it once.
_SERVER_MESSAGE_ADAPTER: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)


def encode_command(command: StartJobCommand | StdinCommand) -> str:
    """Serialize a command to a single text frame (camelCase, no null fields)."""
    return command.model_dump_json(by_alias=True, exclude_none=True)


def preview(frame: str | bytes) -> str:
    """Truncated, printable form of a raw frame for diagnostics."""
    text = frame.decode("utf-8", errors="replace") if isinstance(frame, bytes) else frame
    if len(text) > FRAME_PREVIEW_CHARS:
        return text[:FRAME_PREVIEW_CHARS] + "..."
    return text


def decode_frame(frame: str | bytes) -> ServerMessage:
    """Parse and validate one inbound frame.

    Args:
        frame: Raw text (or UTF-8 bytes) received from the transport

    Returns:
        The matching server message model

    Raises:
        ProtocolError: Frame is not JSON, has no/unknown `type`, or is missing
            fields its type requires
    """
    try:
        return _SERVER_MESSAGE_ADAPTER.validate_json(frame)
    except ValidationError as e:
        error_type = e.errors()[0]["type"] if e.error_count() else "unknown"
        match error_type:
            case "json_invalid":
                reason = "frame is not valid JSON"
            case "union_tag_invalid":
                reason = "unknown message type"
            case "union_tag_not_found":
                reason = "frame has no type field"
            case _:
                reason = "frame failed validation"
        raise ProtocolError(reason, raw=preview(frame), context={"error_type": error_type}) from e
