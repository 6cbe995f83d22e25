"""Host-driven execution context and a seeded randomness source."""

from __future__ import annotations

import hashlib
import secrets
import threading
from typing import Optional


class BlockContext:
    """
    Height and sequence counters advanced by the host.

    ``next_step`` moves to the next call inside the current block;
    ``new_block`` starts a new block and resets the sequence.
    """

    def __init__(self, height: int = 1, sequence: int = 0):
        if height < 0 or sequence < 0:
            raise ValueError("height and sequence must be non-negative")
        self._height = height
        self._sequence = sequence
        self._lock = threading.Lock()

    def current_height(self) -> int:
        with self._lock:
            return self._height

    def current_sequence_number(self) -> int:
        with self._lock:
            return self._sequence

    def next_step(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def new_block(self) -> int:
        with self._lock:
            self._height += 1
            self._sequence = 0
            return self._height

    def __repr__(self) -> str:
        return f"BlockContext(height={self._height}, sequence={self._sequence})"


class BlockRandomness:
    """
    Per-block random bytes: ``blake2b(seed || len(tag) || tag || height)``.

    The value is stable for one (tag, block) pair, which mirrors a
    block-level randomness beacon; callers mix in the sequence number to tell
    calls apart. ``draws`` counts requests so tests can tell whether an
    operation consumed randomness.
    """

    def __init__(self, context: BlockContext, seed: Optional[bytes] = None):
        self._context = context
        self._seed = seed if seed is not None else secrets.token_bytes(32)
        self.draws = 0

    def random_bytes(self, tag: bytes) -> bytes:
        self.draws += 1
        height = self._context.current_height()
        h = hashlib.blake2b(digest_size=32)
        h.update(self._seed)
        h.update(len(tag).to_bytes(4, "big"))
        h.update(tag)
        h.update(height.to_bytes(8, "big"))
        return h.digest()
