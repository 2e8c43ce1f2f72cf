"""
Code merging across steps.

Two policies are kept on purpose:
- merge_code: containment-checked append, used by simple multi-step runs
- concat_code: plain concatenation, used by the structured workflow where
  each code phase is prompted to be additive
"""


def merge_code(existing: str, incoming: str) -> str:
    """
    Append incoming to existing unless it is empty or already contained.

    Never deletes or reorders existing content, and merging the same text
    twice is a no-op. Only exact substring containment counts as a duplicate,
    so a reworded copy of earlier code is appended rather than reconciled.
    """
    trimmed = incoming.strip()
    if not trimmed or trimmed in existing:
        return existing
    if not existing:
        return incoming
    return existing + "\n\n" + incoming


def concat_code(existing: str, incoming: str) -> str:
    """Join two code fragments with a blank line, no dedup."""
    if not existing:
        return incoming
    return existing + "\n\n" + incoming
