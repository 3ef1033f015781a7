"""Split large text into pieces that fit a comment size limit."""

from __future__ import annotations


def chunk(text: str, max_size: int) -> list[str]:
    """Split ``text`` into consecutive pieces of at most ``max_size`` characters.

    The split is on raw character offsets; it does not look for line or word
    boundaries. Every piece but the last is exactly ``max_size`` long, and
    joining the pieces gives back ``text``. Empty text gives no pieces.
    """
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")
    return [text[offset:offset + max_size] for offset in range(0, len(text), max_size)]
