"""forsencode: each ASCII character becomes a six letter spelling of "forsen".

The letter cases carry the low seven bits of the character::

    F/f    0x40
    Ö ö O o  bits 5-4 (00, 01, 10, 11)
    R/r    0x08
    S/s    0x04
    E/e    0x02
    N/n    0x01

Codes are joined by single spaces. Non-ASCII characters are copied as they
are; a space right after one of them is dropped, since the separator in
front of the next code already stands for it.
"""

from __future__ import annotations

import re

_SECOND = "ÖöOo"
_REST = ((0x08, "R", "r"), (0x04, "S", "s"), (0x02, "E", "e"), (0x01, "N", "n"))

CODE_PATTERN = re.compile(r"[Ff][ÖöOo][Rr][Ss][Ee][Nn]")


def _encode_char(value: int) -> str:
    letters = ["F" if value & 0x40 else "f", _SECOND[(value >> 4) & 0b11]]
    letters += [upper if value & bit else lower for bit, upper, lower in _REST]
    return "".join(letters)


def _decode_code(code: str) -> str:
    value = 0x40 if code[0] == "F" else 0
    value |= _SECOND.index(code[1]) << 4
    for letter, (bit, upper, _) in zip(code[2:], _REST):
        if letter == upper:
            value |= bit
    return chr(value)


def encode(text: str) -> str:
    parts: list[str] = []
    prev_invalid = False
    for char in text.strip():
        if parts and not prev_invalid:
            parts.append(" ")
        if not char.isascii():
            prev_invalid = True
            parts.append(char)
            continue
        if char == " " and prev_invalid:
            prev_invalid = False
            continue
        parts.append(_encode_char(ord(char)))
        prev_invalid = False
    return "".join(parts)


def decode(code: str) -> str:
    parts: list[str] = []
    position = 0
    after_code = False
    for match in CODE_PATTERN.finditer(code):
        literal = code[position : match.start()]
        if after_code and literal.startswith(" "):
            literal = literal[1:]
        parts.append(literal)
        parts.append(_decode_code(match.group()))
        position = match.end()
        after_code = True

    tail = code[position:]
    if after_code and tail.startswith(" "):
        tail = tail[1:]
    parts.append(tail)
    return "".join(parts)
