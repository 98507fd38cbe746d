"""One-way redaction of private-repository commits.

Applied by the refresh scheduler before records reach the cache, so private
content is never stored, let alone served.

Commit ids are the cache key, so they are redacted deterministically: the
glyphs come from an HMAC of the id under a key that lives only in this
process. The same private commit therefore maps to the same cache entry on
every refresh, while the original id cannot be recovered from the glyphs.
Messages and repository names are redacted at random.
"""

from __future__ import annotations

import hashlib
import hmac
import itertools
import random
import secrets
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from commitfeed.models.commit import CommitRecord

REDACTION_ALPHABET = "░▒▓█▄▀■□▢▣▤▥▦▧▨▩▆▅▉▇▊▋▌_▍▃▂▁"
REDACTED_URL = "#"

# First code point searched when a text already uses every redaction glyph
# (start of the Geometric Shapes block).
_FALLBACK_START = 0x25A0

# Process-wide sources, created once. Output is not meant to be reproducible
# outside tests, which inject their own seeded Random and key.
_default_rng = random.Random(time.time_ns())
_default_key = secrets.token_bytes(32)


def _available_glyphs(text: str) -> list[str]:
    """Redaction glyphs that do not occur in ``text``."""
    glyphs = [glyph for glyph in REDACTION_ALPHABET if glyph not in text]
    if glyphs:
        return glyphs
    used = set(text)
    for codepoint in itertools.count(_FALLBACK_START):
        glyph = chr(codepoint)
        if glyph not in used and not glyph.isspace():
            return [glyph]
    raise AssertionError("unreachable")


def _substitute(text: str, rng: random.Random) -> str:
    glyphs = _available_glyphs(text)
    return "".join(char if char.isspace() else rng.choice(glyphs) for char in text)


class Obfuscator:
    """Replaces identifying fields of private commits with redaction glyphs."""

    def __init__(self, rng: random.Random | None = None, *, key: bytes | None = None) -> None:
        self._rng = rng if rng is not None else _default_rng
        self._key = key if key is not None else _default_key

    def redact(self, text: str) -> str:
        """Redact ``text`` one character at a time, keeping whitespace.

        Glyphs that already occur in ``text`` are never drawn, so no original
        character other than whitespace survives.
        """
        return _substitute(text, self._rng)

    def redact_stable(self, text: str) -> str:
        """Like ``redact``, but the same ``text`` always gives the same output."""
        digest = hmac.new(self._key, text.encode(), hashlib.sha256).digest()
        return _substitute(text, random.Random(digest))

    def obfuscate(self, records: Iterable[CommitRecord]) -> list[CommitRecord]:
        """Return ``records`` with every private one replaced by a redacted copy.

        Public records are passed through as-is.
        """
        result: list[CommitRecord] = []
        for record in records:
            if not record.is_private:
                result.append(record)
                continue
            result.append(
                record.model_copy(
                    update={
                        "id": self.redact_stable(record.id),
                        "repo_name": self.redact(record.repo_name),
                        "message": self.redact(record.message),
                        "url": REDACTED_URL,
                    }
                )
            )
        return result
