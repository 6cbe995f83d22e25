"""DNA generation and breeding.

A fingerprint is 16 bytes of BLAKE2b over the canonical encoding of

    {random: <randomness.random_bytes(tag)>, sequence: <n>, height: <h>}

so it is fixed for a given execution step and changes as soon as the host
advances either counter. Breeding selects every bit of the child from the
first parent where a fresh mask has a 1 and from the second parent where it
has a 0.
"""

from __future__ import annotations

import logging

from coursepass.core import blake2_128, canonical_json_bytes
from coursepass.hardening import Validators
from coursepass.ports import ExecutionContext, RandomnessSource

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN_TAG = b"dna"


def mix_dna(mask: bytes, first: bytes, second: bytes) -> bytes:
    """Per-bit selection: ``(mask & first) | (~mask & second)`` for each byte."""
    mask = Validators.validate_dna(mask, "mask").unwrap()
    first = Validators.validate_dna(first, "first").unwrap()
    second = Validators.validate_dna(second, "second").unwrap()
    return bytes(
        (m & a) | (~m & 0xFF & b)
        for m, a, b in zip(mask, first, second)
    )


class DnaGenerator:
    """Draws fingerprints from a randomness source and the execution context."""

    def __init__(
        self,
        randomness: RandomnessSource,
        context: ExecutionContext,
        domain_tag: bytes = DEFAULT_DOMAIN_TAG,
    ):
        self._randomness = randomness
        self._context = context
        self._domain_tag = domain_tag

    def generate(self) -> bytes:
        """Return the fingerprint for the current execution step."""
        payload = {
            "random": bytes(self._randomness.random_bytes(self._domain_tag)),
            "sequence": self._context.current_sequence_number(),
            "height": self._context.current_height(),
        }
        return blake2_128(canonical_json_bytes(payload))

    def breed(self, first: bytes, second: bytes) -> bytes:
        """Mix two parent fingerprints under a freshly drawn mask."""
        mask = self.generate()
        child = mix_dna(mask, first, second)
        logger.debug("bred dna %s from %s x %s", child.hex(), bytes(first).hex(), bytes(second).hex())
        return child
