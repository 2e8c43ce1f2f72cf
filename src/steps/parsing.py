"""
Response parsing: envelope unwrapping, code extraction, and chunking.

Every function here is pure and never raises on malformed model output.
"""

import json
import re
from dataclasses import dataclass, field

DEFAULT_CHUNK_CHARS = 128 * 4

FENCE = "```"
_FENCED_SPAN = re.compile(r"```[\s\S]*?```")
_LANGUAGE_TAG = re.compile(r"^[\w+#.\-]*$")


@dataclass(frozen=True)
class ParsedResponse:
    """Explanation text plus the first code block of a model reply."""
    response: str
    code: str | None = None
    code_chunks: list[str] = field(default_factory=list)


def unwrap_envelope(raw_text: str) -> str:
    """
    Pull the message body out of a provider envelope.

    Recognised envelopes:
    - {"type": "textResponse", "textResponse": "..."}
    - a bare JSON string
    - OpenAI chat completions: {"choices": [{"message": {"content": "..."}}]}
    - Ollama chat: {"message": {"content": "..."}}

    Anything else, including text that is not JSON at all, is returned as-is.
    """
    try:
        data = json.loads(raw_text)
    except (json.JSONDecodeError, TypeError):
        return raw_text

    if isinstance(data, str):
        return data

    if not isinstance(data, dict):
        return raw_text

    if data.get("type") == "textResponse" and isinstance(data.get("textResponse"), str):
        return data["textResponse"]

    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        content = (choices[0].get("message") or {}).get("content")
        if isinstance(content, str):
            return content

    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]

    return raw_text


def extract_code_block(text: str) -> str | None:
    """
    Return the inner text of the first fenced code span, or None.

    The fence markers and a language tag on the opening line are dropped and
    the remainder is trimmed.
    """
    match = _FENCED_SPAN.search(text)
    if match is None:
        return None

    inner = match.group(0)[len(FENCE):-len(FENCE)]

    first_line, newline, rest = inner.partition("\n")
    if newline and _LANGUAGE_TAG.match(first_line.strip()):
        inner = rest

    return inner.strip()


def split_into_chunks(code: str, chunk_size: int = DEFAULT_CHUNK_CHARS) -> list[str]:
    """
    Pack lines of code greedily into chunks of at most chunk_size characters.

    Lines are joined with newlines, so "\\n".join(chunks) == code. A line that is
    longer than chunk_size on its own becomes a single oversized chunk.
    """
    if not code:
        return []

    chunks: list[str] = []
    current: list[str] = []
    current_len = 0

    for line in code.split("\n"):
        added = len(line) + (1 if current else 0)
        if current and current_len + added > chunk_size:
            chunks.append("\n".join(current))
            current = []
            current_len = 0
            added = len(line)
        current.append(line)
        current_len += added

    if current:
        chunks.append("\n".join(current))

    return chunks


def parse_response(raw_text: str, chunk_size: int = DEFAULT_CHUNK_CHARS) -> ParsedResponse:
    """
    Split a raw model reply into explanation, first code block, and chunks.

    Args:
        raw_text: Reply body exactly as returned by the transport.
        chunk_size: Character bound for each code chunk.

    Returns:
        ParsedResponse. ``response`` is always the full message text; ``code``
        is None when the reply has no fenced code span.
    """
    text = unwrap_envelope(raw_text or "")

    code = extract_code_block(text)
    if code is None:
        return ParsedResponse(response=text)

    return ParsedResponse(
        response=text,
        code=code,
        code_chunks=split_into_chunks(code, chunk_size),
    )
