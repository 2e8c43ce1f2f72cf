"""
Tests for steps/parsing.py module.

Tests:
- unwrap_envelope
- extract_code_block
- split_into_chunks
- parse_response
"""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from steps.parsing import (
    DEFAULT_CHUNK_CHARS,
    extract_code_block,
    parse_response,
    split_into_chunks,
    unwrap_envelope,
)


# =============================================================================
# Test unwrap_envelope
# =============================================================================

class TestUnwrapEnvelope:
    """Tests for provider envelope handling."""

    def test_text_response_envelope(self):
        raw = json.dumps({"type": "textResponse", "textResponse": "hello there"})
        assert unwrap_envelope(raw) == "hello there"

    def test_bare_json_string(self):
        assert unwrap_envelope(json.dumps("just text")) == "just text"

    def test_openai_envelope(self):
        raw = json.dumps({"choices": [{"message": {"role": "assistant", "content": "from openai"}}]})
        assert unwrap_envelope(raw) == "from openai"

    def test_ollama_envelope(self):
        raw = json.dumps({"model": "llama3", "message": {"role": "assistant", "content": "from ollama"}})
        assert unwrap_envelope(raw) == "from ollama"

    def test_plain_text_passes_through(self):
        assert unwrap_envelope("no json here") == "no json here"

    def test_invalid_json_passes_through(self):
        assert unwrap_envelope('{"type": "textResp') == '{"type": "textResp'

    def test_other_json_passes_through(self):
        raw = json.dumps({"tokenLimit": 100, "steps": 2})
        assert unwrap_envelope(raw) == raw

    def test_json_list_passes_through(self):
        assert unwrap_envelope("[1, 2]") == "[1, 2]"


# =============================================================================
# Test extract_code_block
# =============================================================================

class TestExtractCodeBlock:
    """Tests for fenced code extraction."""

    def test_strips_language_tag(self):
        text = "Intro\n```python\ndef f():\n    return 1\n```\nOutro"
        assert extract_code_block(text) == "def f():\n    return 1"

    def test_no_language_tag(self):
        assert extract_code_block("```\nx = 1\n```") == "x = 1"

    def test_first_block_wins(self):
        text = "```js\nfirst()\n```\nand\n```js\nsecond()\n```"
        assert extract_code_block(text) == "first()"

    def test_no_fence(self):
        assert extract_code_block("Just an explanation.") is None

    def test_unclosed_fence(self):
        assert extract_code_block("```python\nx = 1") is None

    def test_single_line_block_keeps_content(self):
        assert extract_code_block("Run ```ls -la``` to list") == "ls -la"

    def test_language_tag_variants(self):
        assert extract_code_block("```c++\nint x;\n```") == "int x;"
        assert extract_code_block("```objective-c\nid x;\n```") == "id x;"

    def test_first_line_code_not_mistaken_for_tag(self):
        assert extract_code_block("```x = 1\ny = 2\n```") == "x = 1\ny = 2"

    def test_whitespace_trimmed(self):
        assert extract_code_block("```\n\n  x = 1  \n\n```") == "x = 1"


# =============================================================================
# Test split_into_chunks
# =============================================================================

class TestSplitIntoChunks:
    """Tests for line-packed chunking."""

    def test_default_bound(self):
        assert DEFAULT_CHUNK_CHARS == 512

    def test_empty(self):
        assert split_into_chunks("") == []

    def test_short_code_single_chunk(self):
        assert split_into_chunks("a\nb\nc") == ["a\nb\nc"]

    def test_forty_lines_nine_hundred_chars_two_chunks(self):
        code = "\n".join(f"line {i:02d}: " + "x" * 13 for i in range(40))
        assert len(code) == 919

        chunks = split_into_chunks(code, 512)

        assert len(chunks) == 2
        assert "\n".join(chunks) == code

    @pytest.mark.parametrize("size", [1, 5, 16, 64, 512])
    def test_lossless(self, size):
        code = "import os\n\n\ndef main():\n    print(os.getcwd())\n\n\nmain()\n"
        assert "\n".join(split_into_chunks(code, size)) == code

    def test_chunks_respect_bound_except_long_lines(self):
        code = "short\n" + "y" * 40 + "\nshort again\nend"
        chunks = split_into_chunks(code, 20)

        assert "y" * 40 in chunks
        for chunk in chunks:
            assert len(chunk) <= 20 or "\n" not in chunk

    def test_flushes_before_overflow(self):
        chunks = split_into_chunks("aaaa\nbbbb\ncccc", 9)
        assert chunks == ["aaaa\nbbbb", "cccc"]

    def test_blank_lines_preserved(self):
        code = "a\n\n\nb"
        assert "\n".join(split_into_chunks(code, 2)) == code


# =============================================================================
# Test parse_response
# =============================================================================

class TestParseResponse:
    """Tests for the combined parser."""

    def test_response_is_full_text(self):
        raw = "Here:\n```python\nx = 1\n```\nDone."
        parsed = parse_response(raw)

        assert parsed.response == raw
        assert parsed.code == "x = 1"
        assert parsed.code_chunks == ["x = 1"]

    def test_no_code(self):
        parsed = parse_response("Nothing to show.")
        assert parsed.response == "Nothing to show."
        assert parsed.code is None
        assert parsed.code_chunks == []

    def test_unwraps_before_extracting(self):
        raw = json.dumps({"type": "textResponse", "textResponse": "```js\nlet a = 1;\n```"})
        parsed = parse_response(raw)
        assert parsed.response == "```js\nlet a = 1;\n```"
        assert parsed.code == "let a = 1;"

    def test_chunk_size_applied(self):
        raw = "```\n" + "\n".join("z" * 10 for _ in range(10)) + "\n```"
        parsed = parse_response(raw, chunk_size=32)
        assert len(parsed.code_chunks) > 1
        assert "\n".join(parsed.code_chunks) == parsed.code

    @pytest.mark.parametrize("raw", ["", "```", "``````", "{", "null", "```\n```"])
    def test_never_raises(self, raw):
        parsed = parse_response(raw)
        assert isinstance(parsed.response, str)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
