"""Outgoing text disguise.

Two layers are applied to every bot message: spintax expansion, which varies
the visible wording, and an envelope of invisible code points, which makes the
raw bytes (and their hash) unique per send without changing how the text
renders.
"""

import random
import re
from typing import Optional

INVISIBLE_CHARS = (
    "\u200b",
    "\u200c",
    "\u200d",
    "\u2060",
    "\u2061",
    "\u2062",
    "\u2063",
    "\u2064",
    "\u206e",
    "\u206f",
)

_SPINTAX_PATTERN = re.compile(r"\{([^{}]+)\}")
_INVISIBLE_PATTERN = re.compile("[" + "".join(INVISIBLE_CHARS) + "]")

_rng = random.SystemRandom()


def expand_spintax(text: str, rng: Optional[random.Random] = None) -> str:
    """Replace each {a|b|c} group with one alternative chosen uniformly."""
    rng = rng or _rng
    return _SPINTAX_PATTERN.sub(lambda match: rng.choice(match.group(1).split("|")), text)


def _noise(rng: random.Random) -> str:
    return "".join(rng.choice(INVISIBLE_CHARS) for _ in range(rng.randint(1, 3)))


def randomize_text(text: Optional[str], rng: Optional[random.Random] = None) -> Optional[str]:
    if not text:
        return text
    rng = rng or _rng
    prefix = _noise(rng)
    suffix = _noise(rng)
    return prefix + expand_spintax(str(text), rng) + suffix


def strip_invisible(text: Optional[str]) -> str:
    return _INVISIBLE_PATTERN.sub("", text or "")


def debug_view(text: Optional[str]) -> str:
    """Printable rendering for logs: non-ASCII code points become [\\uXXXX]."""
    return "".join(
        char if 32 <= ord(char) <= 126 else f"[\\u{ord(char):04X}]" for char in (text or "")
    )
