"""RFC 4648 Base32 without padding.

Decoding is lenient: input is case-insensitive, spaces and hyphens are
stripped, and any other character outside the alphabet is skipped.
"""

from __future__ import annotations

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

_INDEX = {c: i for i, c in enumerate(ALPHABET)}


def encode(data: bytes) -> str:
    """Encode bytes to unpadded Base32.

    Args:
        data: Raw bytes.

    Returns:
        str: Base32 text, no `=` padding.
    """
    out: list[str] = []
    buffer = 0
    bits = 0
    for byte in data:
        buffer = ((buffer << 8) | byte) & 0xFFFF
        bits += 8
        while bits >= 5:
            out.append(ALPHABET[(buffer >> (bits - 5)) & 0x1F])
            bits -= 5
    if bits > 0:
        out.append(ALPHABET[(buffer << (5 - bits)) & 0x1F])
    return "".join(out)


def decode(text: str) -> bytes:
    """Decode Base32 text to bytes.

    Args:
        text: Base32 text, possibly grouped with spaces or hyphens.

    Returns:
        bytes: Decoded bytes; a trailing incomplete byte is dropped.
    """
    cleaned = text.upper().replace(" ", "").replace("-", "")
    out = bytearray()
    buffer = 0
    bits = 0
    for char in cleaned:
        index = _INDEX.get(char)
        if index is None:
            continue
        buffer = ((buffer << 5) | index) & 0xFFFF
        bits += 5
        if bits >= 8:
            out.append((buffer >> (bits - 8)) & 0xFF)
            bits -= 8
    return bytes(out)
