"""
Packed date codec tests.

Dates travel as six ASCII digits packed big-endian into one integer; these
tests pin the day arithmetic, the two-digit year pivot, and every rejection
path of the decoder.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from soulmint.dates import (
    SECONDS_PER_DAY,
    ZERO_DATE,
    days_from_1970,
    decode_date,
    encode_date,
    expand_year,
    is_leap_year,
    is_unset,
    pack_date,
    packed_to_int,
)
from soulmint.hardening import DateBeforeEpoch, InvalidDateEncoding, MintRejected


class TestCalendarArithmetic:
    """Day counts since the Unix epoch."""

    def test_epoch_is_day_zero(self):
        assert days_from_1970(1970, 1, 1) == 0

    def test_known_day_counts(self):
        """Day counts match well-known calendar dates."""
        assert days_from_1970(2000, 1, 1) == 10957
        assert days_from_1970(2020, 3, 1) == 18322
        assert days_from_1970(1975, 1, 1) == 1826

    def test_leap_years(self):
        assert is_leap_year(2000)
        assert is_leap_year(2024)
        assert not is_leap_year(1900)
        assert not is_leap_year(2023)

    def test_leap_day_counted(self):
        """March 1st follows February 29th in leap years only."""
        assert days_from_1970(2024, 3, 1) - days_from_1970(2024, 2, 28) == 2
        assert days_from_1970(2023, 3, 1) - days_from_1970(2023, 2, 28) == 1

    def test_year_before_epoch_rejected(self):
        with pytest.raises(DateBeforeEpoch) as exc_info:
            days_from_1970(1969, 12, 31)
        assert exc_info.value.year == 1969

    def test_day_out_of_range(self):
        with pytest.raises(InvalidDateEncoding):
            days_from_1970(2023, 2, 29)
        with pytest.raises(InvalidDateEncoding):
            days_from_1970(2023, 4, 31)
        with pytest.raises(InvalidDateEncoding):
            days_from_1970(2023, 1, 0)

    def test_month_out_of_range(self):
        with pytest.raises(InvalidDateEncoding):
            days_from_1970(2023, 13, 1)


class TestYearPivot:
    """Two-digit years follow the %y convention."""

    def test_low_years_are_2000s(self):
        assert expand_year(0) == 2000
        assert expand_year(24) == 2024
        assert expand_year(68) == 2068

    def test_high_years_are_1900s(self):
        assert expand_year(69) == 1969
        assert expand_year(75) == 1975
        assert expand_year(99) == 1999


class TestDecodeDate:
    """Decoding packed YYMMDD values."""

    def test_decode_known_dates(self):
        assert decode_date("000101") == 10957 * SECONDS_PER_DAY
        assert decode_date("200301") == 18322 * SECONDS_PER_DAY
        assert decode_date("230101") == 1672531200
        assert decode_date("241209") == 1733702400

    def test_decode_twentieth_century(self):
        """750101 is 1975, not 2075."""
        assert decode_date("750101") == 157766400

    def test_decode_accepts_every_form(self):
        """String, bytes and packed integer forms decode identically."""
        expected = decode_date("241209")
        assert decode_date(b"241209") == expected
        assert decode_date(bytearray(b"241209")) == expected
        assert decode_date(0x323431323039) == expected

    def test_unset_sentinel_decodes_to_zero(self):
        assert decode_date("000000") == 0
        assert decode_date(ZERO_DATE) == 0

    def test_non_digit_byte_rejected(self):
        """0x2F is one below '0'."""
        with pytest.raises(InvalidDateEncoding) as exc_info:
            decode_date(b"2/1209")
        assert "position 1" in str(exc_info.value)

    def test_byte_above_nine_rejected(self):
        with pytest.raises(InvalidDateEncoding):
            decode_date(b"24120:")

    def test_invalid_month_rejected(self):
        with pytest.raises(InvalidDateEncoding):
            decode_date("241301")
        with pytest.raises(InvalidDateEncoding):
            decode_date("240001")

    def test_invalid_day_rejected(self):
        with pytest.raises(InvalidDateEncoding):
            decode_date("230229")
        assert decode_date("240229") == days_from_1970(2024, 2, 29) * SECONDS_PER_DAY

    def test_pre_epoch_date_rejected(self):
        with pytest.raises(DateBeforeEpoch):
            decode_date("691231")

    def test_wrong_length_rejected(self):
        with pytest.raises(InvalidDateEncoding):
            decode_date(b"2412091")
        with pytest.raises(InvalidDateEncoding):
            decode_date(1 << 48)

    def test_errors_are_value_errors_and_rejections(self):
        with pytest.raises(ValueError):
            decode_date("99xx01")
        with pytest.raises(MintRejected):
            decode_date("691231")


class TestEncodeDate:
    """Packing YYMMDD text."""

    def test_encode_matches_big_endian_ascii(self):
        assert encode_date("241209") == 0x323431323039

    def test_empty_is_unset_sentinel(self):
        assert encode_date() == ZERO_DATE
        assert encode_date("") == ZERO_DATE
        assert is_unset(encode_date(""))

    def test_wrong_length_rejected(self):
        with pytest.raises(InvalidDateEncoding):
            encode_date("24129")

    def test_pack_round_trip(self):
        assert pack_date(encode_date("241209")) == b"241209"
        assert packed_to_int(b"241209") == encode_date("241209")

    def test_bool_rejected(self):
        with pytest.raises(InvalidDateEncoding):
            pack_date(True)
