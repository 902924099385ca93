"""Conversion of PRONTO hex codes to Global Caché sendir parameters."""

from __future__ import annotations

import re

from homeassistant.exceptions import HomeAssistantError

# Pronto carrier period unit in microseconds
PRONTO_CLOCK = 0.241246

_SEPARATOR = re.compile(r"[\s,]+")


class UnsupportedFormatError(HomeAssistantError):
    """Exception to indicate an IR code which cannot be converted."""


def convert_pronto_to_sendir(pronto: str, repeat: int = 1) -> str:
    """Convert a raw PRONTO hex code to the parameters of a sendir command.

    Args:
        pronto: PRONTO hex code, tokens separated by space or comma
        repeat: number of times the device sends the code, at least 1

    Returns:
        Comma separated ``frequency,repeat,offset,durations...``

    Raises:
        UnsupportedFormatError: If the code is not a raw (learned) PRONTO code

    """
    tokens = [token for token in _SEPARATOR.split(pronto.strip()) if token]
    if len(tokens) < 4:
        raise UnsupportedFormatError(f"PRONTO code too short: {len(tokens)} words")

    try:
        values = [int(token, 16) for token in tokens]
    except ValueError as err:
        raise UnsupportedFormatError(f"Invalid PRONTO code: {err}") from err

    if values[0] != 0:
        raise UnsupportedFormatError(
            f"Unsupported PRONTO format {tokens[0]}: only raw codes are supported"
        )

    period = values[1]
    if period == 0:
        raise UnsupportedFormatError("Invalid PRONTO carrier frequency of 0")
    frequency = round(1_000_000 / (period * PRONTO_CLOCK))

    # offset of the repeat sequence if there's a preamble burst pair sequence
    offset = values[2] * 2 + 1 if values[2] > 0 and values[3] > 0 else 1

    return ",".join(str(value) for value in (frequency, repeat, offset, *values[4:]))
