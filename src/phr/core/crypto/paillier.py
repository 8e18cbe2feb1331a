"""Paillier encryption of vital-sign values for on-chain storage.

Only the public half of the key is ever present in this process. Values are
encrypted as ``c = g^m * r^n mod n^2`` with a fresh random ``r`` per call, so
the same plaintext encrypts to a different ciphertext every time while still
decrypting to the same value for whoever holds the private key.

Ciphertexts travel as ``0x``-prefixed, even-length, big-endian hex strings,
which the ledger accepts as ``bytes`` arguments.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from math import gcd


class EncodingError(ValueError):
    """Raised when a value cannot be encrypted under the given key."""


@dataclass(frozen=True)
class PaillierPublicKey:
    """Paillier public key ``(n, g)``.

    Usage::

        key = PaillierPublicKey.from_hex(n_hex, g_hex)
        ciphertext_hex = encode_ciphertext(72, key)
    """

    n: int
    g: int

    def __post_init__(self) -> None:
        if self.n <= 1:
            raise EncodingError("Public key modulus n must be greater than 1")
        if not 0 < self.g < self.n_squared:
            raise EncodingError("Public key generator g must lie in (0, n^2)")

    @property
    def n_squared(self) -> int:
        return self.n * self.n

    @property
    def max_plaintext(self) -> int:
        """Largest integer this key can encrypt."""
        return self.n - 1

    @classmethod
    def from_hex(cls, n_hex: str, g_hex: str) -> PaillierPublicKey:
        """Build a key from hex strings, with or without a ``0x`` prefix.

        Raises:
            EncodingError: If either component is empty or not valid hex.
        """
        return cls(n=_parse_hex(n_hex, "n"), g=_parse_hex(g_hex, "g"))

    def encrypt(self, plaintext: int) -> int:
        """Encrypt an integer with fresh randomness.

        Raises:
            EncodingError: If ``plaintext`` is not an integer in ``[0, n)``.
        """
        if isinstance(plaintext, bool) or not isinstance(plaintext, int):
            raise EncodingError(
                f"Plaintext must be an integer, got {type(plaintext).__name__}"
            )
        if plaintext < 0:
            raise EncodingError("Plaintext must be non-negative")
        if plaintext > self.max_plaintext:
            raise EncodingError("Plaintext exceeds the key's plaintext space")

        n_sq = self.n_squared
        r = self._random_unit()
        return (pow(self.g, plaintext, n_sq) * pow(r, self.n, n_sq)) % n_sq

    def _random_unit(self) -> int:
        """Draw r uniformly from Z*_n."""
        while True:
            r = secrets.randbelow(self.n)
            if r > 0 and gcd(r, self.n) == 1:
                return r


def encode_ciphertext(value: int, key: PaillierPublicKey) -> str:
    """Encrypt ``value`` under ``key`` and return the canonical hex string.

    The hex digits are left-padded with a single ``0`` when their count is
    odd, then prefixed with ``0x``.

    Raises:
        EncodingError: If ``value`` is negative, not an integer, or too large.
    """
    digits = format(key.encrypt(value), "x")
    if len(digits) % 2:
        digits = "0" + digits
    return "0x" + digits


def ciphertext_to_bytes(ciphertext_hex: str) -> bytes:
    """Convert a canonical ciphertext hex string to raw bytes for the ledger."""
    if not ciphertext_hex.startswith("0x"):
        raise EncodingError("Ciphertext must be 0x-prefixed")
    try:
        return bytes.fromhex(ciphertext_hex[2:])
    except ValueError as exc:
        raise EncodingError(f"Ciphertext is not valid hex: {exc}") from exc


def _parse_hex(value: str, name: str) -> int:
    text = (value or "").strip()
    if text[:2].lower() == "0x":
        text = text[2:]
    if not text:
        raise EncodingError(f"Public key component {name} must not be empty")
    try:
        return int(text, 16)
    except ValueError as exc:
        raise EncodingError(f"Public key component {name} is not valid hex") from exc
