"""
tests/test_rate_csv_parser.py

Pytest unit tests for the rate CSV parser and renderer.

All tests are pure Python: no database, no I/O.

Coverage
--------
- Date column detection (exact, case-insensitive) and FormatError
- Substring matching of Room/Price columns, first match wins
- A1/A2 half emission rules (missing room, zero/non-numeric price)
- Date normalization (ISO pass-through, M/D/YYYY padding, rejects)
- Blank line handling and row order
- Quoted fields
- Rendering the export layout
- Optional Check_Out and Currency columns
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.domain.rates import EntityRef, RateRecordInput
from app.errors import FormatError
from app.parsers.rate_csv import normalize_rate_date, parse_price, parse_rate_csv, render_rate_csv


# ---------------------------------------------------------------------------
# Header handling
# ---------------------------------------------------------------------------


class TestHeader:
    def test_missing_date_column_raises(self) -> None:
        with pytest.raises(FormatError):
            parse_rate_csv("Day,Room_A1,Price_A1\n2025-01-01,Deluxe,1200\n")

    def test_date_column_must_match_exactly(self) -> None:
        with pytest.raises(FormatError):
            parse_rate_csv("Check-in Date,Room_A1,Price_A1\n2025-01-01,Deluxe,1200\n")

    def test_date_column_is_case_insensitive(self) -> None:
        result = parse_rate_csv("DATE,Room_A1,Price_A1\n2025-01-01,Deluxe,1200\n")
        assert len(result.entries) == 1

    def test_empty_text_raises(self) -> None:
        with pytest.raises(FormatError):
            parse_rate_csv("")

    def test_bom_is_ignored(self) -> None:
        result = parse_rate_csv("\ufeffDate,Room_A1,Price_A1\n2025-01-01,Deluxe,1200\n")
        assert result.entries[0].check_in_date == date(2025, 1, 1)

    def test_columns_matched_by_substring(self) -> None:
        text = "Date,Cheapest Room_A1 name,Lowest Price_A1 THB\n2025-01-01,Deluxe,1200\n"
        result = parse_rate_csv(text)
        assert result.entries[0].room_type == "Deluxe"
        assert result.entries[0].price_amount == Decimal("1200")

    def test_first_matching_column_wins(self) -> None:
        text = "Date,Room_A1,Price_A1,Room_A1_alt,Price_A1_alt\n2025-01-01,First,100,Second,200\n"
        result = parse_rate_csv(text)
        assert [(entry.room_type, entry.price_amount) for entry in result.entries] == [("First", Decimal("100"))]


# ---------------------------------------------------------------------------
# Entry emission
# ---------------------------------------------------------------------------


HEADER = "Date,Room_A1,Price_A1,Room_A2,Price_A2\n"


class TestEntries:
    def test_row_yields_both_halves_in_order(self) -> None:
        result = parse_rate_csv(HEADER + "2025-03-04,Single,900,Double,1500\n")
        assert [(entry.adults, entry.room_type, entry.price_amount) for entry in result.entries] == [
            (1, "Single", Decimal("900")),
            (2, "Double", Decimal("1500")),
        ]

    @pytest.mark.parametrize("price", ["0", "abc", "-5", "", "NaN", "inf"])
    def test_invalid_a1_price_yields_no_a1_entry(self, price: str) -> None:
        result = parse_rate_csv(HEADER + f"2025-03-04,Single,{price},Double,1500\n")
        assert [entry.adults for entry in result.entries] == [2]
        assert result.errors == []

    def test_missing_room_drops_that_half(self) -> None:
        result = parse_rate_csv(HEADER + "2025-03-04,,900,Double,1500\n")
        assert [entry.adults for entry in result.entries] == [2]

    def test_short_row_drops_missing_half(self) -> None:
        result = parse_rate_csv(HEADER + "2025-03-04,Single,900\n")
        assert [entry.adults for entry in result.entries] == [1]

    def test_blank_lines_are_skipped(self) -> None:
        text = HEADER + "\n2025-03-04,Single,900,,\n\n2025-03-05,Single,950,,\n\n"
        result = parse_rate_csv(text)
        assert [entry.check_in_date for entry in result.entries] == [date(2025, 3, 4), date(2025, 3, 5)]
        assert result.errors == []

    def test_quoted_price_with_comma_does_not_shift_columns(self) -> None:
        result = parse_rate_csv(HEADER + '2025-03-04,"Deluxe, sea view",900,Double,1500\n')
        assert result.entries[0].room_type == "Deluxe, sea view"
        assert result.entries[1].price_amount == Decimal("1500")

    def test_parsing_is_deterministic(self) -> None:
        text = HEADER + "2025-03-04,Single,900,Double,1500\n3/5/2025,Single,910,,\n"
        assert parse_rate_csv(text) == parse_rate_csv(text)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


class TestDates:
    def test_us_date_is_zero_padded(self) -> None:
        assert normalize_rate_date("3/4/2025") == date(2025, 3, 4)
        assert normalize_rate_date("3/4/2025").isoformat() == "2025-03-04"

    def test_iso_date_passes_through(self) -> None:
        assert normalize_rate_date("2025-03-04").isoformat() == "2025-03-04"

    @pytest.mark.parametrize("value", ["04.03.2025", "2025/03/04", "March 4", "2025-02-30", "13/1/2025", ""])
    def test_unrecognized_dates_return_none(self, value: str) -> None:
        assert normalize_rate_date(value) is None

    def test_bad_date_row_is_dropped_and_reported(self) -> None:
        text = HEADER + "2025-03-04,Single,900,,\n04.03.2025,Single,900,,\n"
        result = parse_rate_csv(text)

        assert len(result.entries) == 1
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.row_number == 3
        assert error.column == "Date"
        assert error.value == "04.03.2025"


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------


class TestParsePrice:
    def test_decimal_precision_is_kept(self) -> None:
        assert parse_price("1234.50") == Decimal("1234.50")

    @pytest.mark.parametrize("value", ["", "0", "0.00", "-1", "free", "Infinity"])
    def test_rejects_non_positive_or_non_numeric(self, value: str) -> None:
        assert parse_price(value) is None


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRender:
    def _rate(
        self,
        adults: int,
        price: str,
        room: str | None = "Deluxe",
        *,
        nights: int = 1,
        currency: str = "THB",
    ) -> RateRecordInput:
        return RateRecordInput(
            entity=EntityRef.for_property(uuid.uuid4()),
            check_in_date=date(2025, 3, 4),
            check_out_date=date(2025, 3, 4) + timedelta(days=nights),
            price_amount=Decimal(price),
            currency=currency,
            room_type=room,
            adults=adults,
        )

    def test_one_line_per_rate_in_matching_columns(self) -> None:
        text = render_rate_csv([self._rate(1, "900.00"), self._rate(2, "1500.50", room=None)])
        assert text.splitlines() == [
            "Date,Room_A1,Price_A1,Room_A2,Price_A2,Check_Out,Currency",
            "2025-03-04,Deluxe,900,,,2025-03-05,THB",
            "2025-03-04,,,N/A,1500.5,2025-03-05,THB",
        ]

    def test_other_adult_counts_are_left_out(self) -> None:
        text = render_rate_csv([self._rate(3, "900")])
        assert text.splitlines() == ["Date,Room_A1,Price_A1,Room_A2,Price_A2,Check_Out,Currency"]

    def test_rendered_export_parses_back(self) -> None:
        parsed = parse_rate_csv(render_rate_csv([self._rate(1, "900"), self._rate(2, "1500")]))
        assert [(entry.adults, entry.price_amount) for entry in parsed.entries] == [
            (1, Decimal("900")),
            (2, Decimal("1500")),
        ]

    def test_stay_length_and_currency_survive_parsing(self) -> None:
        parsed = parse_rate_csv(render_rate_csv([self._rate(2, "120", nights=3, currency="USD")]))

        [entry] = parsed.entries
        assert entry.check_out_date == date(2025, 3, 7)
        assert entry.currency == "USD"


# ---------------------------------------------------------------------------
# Optional stay columns
# ---------------------------------------------------------------------------


class TestStayColumns:
    def test_columns_apply_to_both_halves_of_a_row(self) -> None:
        text = "Date,Room_A1,Price_A1,Room_A2,Price_A2,Check_Out,Currency\n2025-01-01,Std,100,Dbl,150,1/3/2025,eur\n"

        entries = parse_rate_csv(text).entries

        assert [(entry.adults, entry.check_out_date, entry.currency) for entry in entries] == [
            (1, date(2025, 1, 3), "EUR"),
            (2, date(2025, 1, 3), "EUR"),
        ]

    @pytest.mark.parametrize(
        ("check_out", "currency"),
        [("", ""), ("2025-01-01", "EURO"), ("2024-12-31", "1US"), ("soon", "")],
    )
    def test_unusable_values_are_left_empty(self, check_out: str, currency: str) -> None:
        text = f"Date,Room_A1,Price_A1,Check_Out,Currency\n2025-01-01,Std,100,{check_out},{currency}\n"

        [entry] = parse_rate_csv(text).entries

        assert entry.check_out_date is None
        assert entry.currency is None

    def test_layout_without_stay_columns_leaves_them_empty(self) -> None:
        [entry] = parse_rate_csv("Date,Room_A1,Price_A1\n2025-01-01,Std,100\n").entries

        assert entry.check_out_date is None
        assert entry.currency is None
