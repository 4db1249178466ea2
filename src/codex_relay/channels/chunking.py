"""Split long replies into transport-sized segments."""

from __future__ import annotations

NEWLINE_CUT_RATIO = 0.6


def split_reply(text: str, max_length: int) -> list[str]:
    """Split `text` into stripped segments of at most `max_length` characters.

    Cuts at the last newline within the limit when it falls past 60% of the limit,
    otherwise hard-cuts at the limit.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    if len(text) <= max_length:
        return [text.strip()]

    segments: list[str] = []
    remaining = text
    while len(remaining) > max_length:
        cut = remaining.rfind("\n", 0, max_length + 1)
        if cut < max_length * NEWLINE_CUT_RATIO:
            cut = max_length
        segment = remaining[:cut].strip()
        if segment:
            segments.append(segment)
        remaining = remaining[cut:].lstrip()

    remaining = remaining.strip()
    if remaining:
        segments.append(remaining)
    return segments
