"""
SOULMINT Date Codec

Passport-style dates travel through the proof system as six ASCII digits
``YYMMDD`` packed big-endian into a single integer, e.g. ``"241209"`` is
``0x323431323039``. This module converts between that packing and Unix
timestamps (UTC midnight of the given day).

The two-digit year follows the POSIX ``%y`` pivot: ``69``..``99`` are the
years 1969..1999 and ``00``..``68`` are 2000..2068. ``"000000"`` is the
"unset" sentinel used for open date bounds and decodes to ``0``.

All functions are pure. ``days_from_1970`` is the single place where day
counts are computed; ``decode_date`` calls it rather than duplicating the
arithmetic.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from typing import Optional, Union

from soulmint.hardening import DateBeforeEpoch, InvalidDateEncoding


SECONDS_PER_DAY = 86400
EPOCH_YEAR = 1970
PACKED_DATE_LENGTH = 6

# "000000"
ZERO_DATE = 0x303030303030
ZERO_DATE_BYTES = b"000000"

_ASCII_ZERO = 0x30
_ASCII_NINE = 0x39

_CUMULATIVE_DAYS = (0, 31, 59, 90, 120, 151, 181, 212, 243, 273, 304, 334)

PackedDate = Union[bytes, bytearray, str, int]


# =============================================================================
# CALENDAR ARITHMETIC
# =============================================================================

def is_leap_year(year: int) -> bool:
    """Proleptic Gregorian leap-year rule."""
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_month(year: int, month: int) -> int:
    if month < 1 or month > 12:
        raise InvalidDateEncoding(f"Month {month} out of range", value=month)
    if month == 2:
        return 29 if is_leap_year(year) else 28
    if month in (4, 6, 9, 11):
        return 30
    return 31


def _leap_days_before(year: int) -> int:
    """Leap days in years [1, year)."""
    y = year - 1
    return y // 4 - y // 100 + y // 400


def days_from_1970(year: int, month: int, day: int) -> int:
    """
    Days elapsed between 1970-01-01 and ``year-month-day``.

    Raises:
        DateBeforeEpoch: the year precedes 1970.
        InvalidDateEncoding: month or day is out of range.
    """
    if year < EPOCH_YEAR:
        raise DateBeforeEpoch(year, month, day)
    if day < 1 or day > days_in_month(year, month):
        raise InvalidDateEncoding(
            f"Day {day} out of range for {year:04d}-{month:02d}", value=day
        )

    years = year - EPOCH_YEAR
    days = years * 365 + _leap_days_before(year) - _leap_days_before(EPOCH_YEAR)
    days += _CUMULATIVE_DAYS[month - 1]
    if month > 2 and is_leap_year(year):
        days += 1
    return days + day - 1


def expand_year(two_digit_year: int) -> int:
    """Map a ``YY`` value onto a four-digit year using the ``%y`` pivot."""
    if two_digit_year >= 69:
        return 1900 + two_digit_year
    return 2000 + two_digit_year


# =============================================================================
# PACKING
# =============================================================================

def pack_date(value: PackedDate) -> bytes:
    """
    Normalize any accepted date form to its six packed bytes.

    Accepts the raw bytes, the ``YYMMDD`` string, or the packed big-endian
    integer. Digit validation happens in ``decode_date``; this only checks
    the shape.
    """
    if isinstance(value, bool):
        raise InvalidDateEncoding("Packed date cannot be a bool", value=value)

    if isinstance(value, int):
        if value < 0 or value >= 1 << (8 * PACKED_DATE_LENGTH):
            raise InvalidDateEncoding("Packed date exceeds 6 bytes", value=value)
        return value.to_bytes(PACKED_DATE_LENGTH, "big")

    if isinstance(value, str):
        try:
            value = value.encode("ascii")
        except UnicodeEncodeError:
            raise InvalidDateEncoding("Date string is not ASCII", value=value) from None

    if isinstance(value, bytearray):
        value = bytes(value)

    if not isinstance(value, bytes):
        raise InvalidDateEncoding(
            f"Unsupported date type {type(value).__name__}", value=value
        )
    if len(value) != PACKED_DATE_LENGTH:
        raise InvalidDateEncoding(
            f"Packed date must be {PACKED_DATE_LENGTH} bytes, got {len(value)}",
            value=value,
        )
    return value


def packed_to_int(value: PackedDate) -> int:
    """Return the big-endian integer form of a packed date."""
    return int.from_bytes(pack_date(value), "big")


def encode_date(text: Optional[str] = None) -> int:
    """
    Pack ``YYMMDD`` into its integer form.

    ``None`` or an empty string gives the unset sentinel ``"000000"``.
    """
    if not text:
        return ZERO_DATE
    if len(text) != PACKED_DATE_LENGTH:
        raise InvalidDateEncoding(
            "Date string must be exactly 6 characters (YYMMDD or 000000)", value=text
        )
    return packed_to_int(text)


# =============================================================================
# DECODING
# =============================================================================

def _digits(packed: bytes) -> tuple:
    digits = []
    for position, byte in enumerate(packed):
        if byte < _ASCII_ZERO or byte > _ASCII_NINE:
            raise InvalidDateEncoding(
                f"Byte {byte:#04x} at position {position} is not an ASCII digit",
                value=packed,
            )
        digits.append(byte - _ASCII_ZERO)
    return tuple(digits)


def decode_date(value: PackedDate) -> int:
    """
    Decode a packed ``YYMMDD`` date into a Unix timestamp.

    Raises:
        InvalidDateEncoding: a byte is not ``'0'``..``'9'`` or month/day is invalid.
        DateBeforeEpoch: the calendar date precedes 1970-01-01.
    """
    packed = pack_date(value)
    d = _digits(packed)

    if packed == ZERO_DATE_BYTES:
        return 0

    year = expand_year(d[0] * 10 + d[1])
    month = d[2] * 10 + d[3]
    day = d[4] * 10 + d[5]

    if month < 1 or month > 12:
        raise InvalidDateEncoding(f"Month {month:02d} out of range", value=packed)

    return days_from_1970(year, month, day) * SECONDS_PER_DAY


def is_unset(value: PackedDate) -> bool:
    """True if the value is the ``"000000"`` sentinel."""
    return pack_date(value) == ZERO_DATE_BYTES
