"""Helpers for parsing byte-sized settings."""

import re

_BYTE_VALUE = re.compile(r"(\d+)\s*([a-z]*)")

_UNIT_MULTIPLIERS = {
    "": 1,
    "b": 1,
    "k": 1024,
    "kb": 1024,
    "kib": 1024,
    "m": 1024**2,
    "mb": 1024**2,
    "mib": 1024**2,
}


def parse_bytes(value: int | str) -> int:
    """Parse a slice size such as ``3200k`` or ``10 MiB`` into bytes.

    Units are binary and case-insensitive; a bare number is bytes.

    Raises:
        ValueError: If the value is not a whole number with a known unit.
    """
    if isinstance(value, int):
        return value
    match = _BYTE_VALUE.fullmatch(str(value).strip().lower())
    if match is None or match.group(2) not in _UNIT_MULTIPLIERS:
        raise ValueError(f"Invalid byte value: {value!r}")
    return int(match.group(1)) * _UNIT_MULTIPLIERS[match.group(2)]
