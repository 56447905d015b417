"""Helpers for the assistant's stream-json protocol."""

import json
from typing import Optional


class StreamEvent:
    """One decoded line of stream-json output."""

    __slots__ = ("type", "text", "is_result", "raw")

    def __init__(self, type: str, text: str = "", is_result: bool = False,
                 raw: Optional[dict] = None):
        self.type = type
        self.text = text
        self.is_result = is_result
        self.raw = raw or {}


def encode_user_message(text: str) -> str:
    """Frame text as a single stream-json user message line (without newline)."""
    return json.dumps({
        "type": "user",
        "message": {
            "role": "user",
            "content": [{"type": "text", "text": text}],
        },
    })


def _assistant_text(json_obj: dict) -> str:
    """Render an assistant message's content blocks as plain text."""
    message = json_obj.get("message", {})
    content = message.get("content", [])
    parts = []
    if isinstance(content, list):
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type", "")
            if block_type == "text":
                text = block.get("text", "")
                if text:
                    parts.append(text)
            elif block_type == "tool_use":
                tool_name = block.get("name", "unknown")
                parts.append(f"\n[Using {tool_name}...]\n")
    elif isinstance(content, str):
        parts.append(content)
    return "".join(parts)


def parse_stream_line(line: str) -> Optional[StreamEvent]:
    """Decode one line of stream-json.

    Lines that are not JSON are passed through as plain text so that output
    from a non-streaming assistant is still captured.

    Returns:
        A StreamEvent, or None for blank lines
    """
    line = line.strip()
    if not line:
        return None
    try:
        json_obj = json.loads(line)
    except json.JSONDecodeError:
        return StreamEvent("text", line + "\n")
    if not isinstance(json_obj, dict):
        return StreamEvent("text", line + "\n")

    msg_type = json_obj.get("type", "")
    if msg_type == "assistant":
        text = _assistant_text(json_obj)
        return StreamEvent("assistant", text + "\n" if text else "", raw=json_obj)
    if msg_type == "result":
        result_text = json_obj.get("result") or ""
        return StreamEvent("result", result_text, is_result=True, raw=json_obj)
    # system init, user echoes of tool results
    return StreamEvent(msg_type or "unknown", raw=json_obj)

