"""
app/parsers/rate_csv.py

Parsing of rate CSV exports into normalized entries, and rendering of rate
rows back into the same layout.

Layout: a header row with a `Date` column plus columns whose names contain
`Room_A1`, `Price_A1` (one adult) and `Room_A2`, `Price_A2` (two adults).
One data row yields up to two entries. Optional `Check_Out` and `Currency`
columns apply to both entries of their row.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from app.domain.rates import ParsedRate, RateCSVParseResult, RateRecordInput, RowValidationError
from app.errors import FormatError

RATE_CSV_HEADER: tuple[str, ...] = ("Date", "Room_A1", "Price_A1", "Room_A2", "Price_A2", "Check_Out", "Currency")
RENDERABLE_ADULTS: tuple[int, ...] = (1, 2)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_CURRENCY = re.compile(r"^[A-Za-z]{3}$")


@dataclass(frozen=True)
class _AdultColumns:
    adults: int
    room_index: int | None
    price_index: int | None

    @property
    def usable(self) -> bool:
        return self.room_index is not None and self.price_index is not None


def parse_rate_csv(text: str) -> RateCSVParseResult:
    """
    Parse raw CSV text into ordered rate entries.

    Raises FormatError when there is no header or no `Date` column. Rows with
    an unrecognized date are dropped and reported in `errors`; an A1/A2 half
    with a missing room, missing price or non-positive price is dropped
    silently. A missing or unusable `Check_Out` or `Currency` cell leaves the
    entry's field as None.
    """

    rows = csv.reader(io.StringIO(text))
    header: list[str] | None = None
    for header_candidate in rows:
        if any(cell.strip() for cell in header_candidate):
            header = [cell.strip().lstrip("\ufeff") for cell in header_candidate]
            break

    if header is None:
        raise FormatError("CSV header row is missing.")

    date_index = _find_exact(header, "date")
    if date_index is None:
        raise FormatError("CSV must contain a 'Date' column.")

    check_out_index = _find_exact(header, "check_out")
    currency_index = _find_exact(header, "currency")
    adult_columns = (
        _AdultColumns(1, _find_containing(header, "Room_A1"), _find_containing(header, "Price_A1")),
        _AdultColumns(2, _find_containing(header, "Room_A2"), _find_containing(header, "Price_A2")),
    )

    entries: list[ParsedRate] = []
    errors: list[RowValidationError] = []
    for row in rows:
        # csv.reader line_num counts physical lines, header included.
        row_number = rows.line_num
        cells = [cell.strip() for cell in row]
        if not any(cells):
            continue

        raw_date = _cell(cells, date_index)
        check_in_date = normalize_rate_date(raw_date)
        if check_in_date is None:
            errors.append(
                RowValidationError(
                    row_number=row_number,
                    column=header[date_index],
                    message="Unrecognized date; expected YYYY-MM-DD or M/D/YYYY.",
                    value=raw_date or None,
                )
            )
            continue

        check_out_date = normalize_rate_date(_cell(cells, check_out_index))
        if check_out_date is not None and check_out_date <= check_in_date:
            check_out_date = None
        currency = _cell(cells, currency_index)
        currency = currency.upper() if _CURRENCY.match(currency) else None

        for columns in adult_columns:
            if not columns.usable:
                continue
            room_type = _cell(cells, columns.room_index)
            price = parse_price(_cell(cells, columns.price_index))
            if not room_type or price is None:
                continue
            entries.append(
                ParsedRate(
                    check_in_date=check_in_date,
                    adults=columns.adults,
                    room_type=room_type,
                    price_amount=price,
                    check_out_date=check_out_date,
                    currency=currency,
                )
            )

    return RateCSVParseResult(entries=entries, errors=errors)


def normalize_rate_date(value: str) -> date | None:
    """
    Accept `YYYY-MM-DD` or `M/D/YYYY`; anything else (including impossible
    calendar dates) returns None.
    """

    value = value.strip()
    try:
        if _ISO_DATE.match(value):
            return date.fromisoformat(value)
        match = _US_DATE.match(value)
        if match:
            month, day, year = (int(part) for part in match.groups())
            return date(year, month, day)
    except ValueError:
        return None
    return None


def parse_price(value: str) -> Decimal | None:
    """
    Return the price as Decimal when it is a finite number > 0, else None.
    """

    if not value:
        return None
    try:
        price = Decimal(value)
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def render_rate_csv(rates: Iterable[RateRecordInput]) -> str:
    """
    Render rate rows in the upload layout, one line per rate.

    Rates for adult counts outside RENDERABLE_ADULTS have no column pair and
    are left out.
    """

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(RATE_CSV_HEADER)
    for rate in rates:
        room = rate.room_type or "N/A"
        price = _format_price(rate.price_amount)
        stay = (rate.check_out_date.isoformat(), rate.currency)
        if rate.adults == 1:
            writer.writerow((rate.check_in_date.isoformat(), room, price, "", "", *stay))
        elif rate.adults == 2:
            writer.writerow((rate.check_in_date.isoformat(), "", "", room, price, *stay))
    return buffer.getvalue()


def _format_price(price: Decimal) -> str:
    return format(Decimal(str(price)).normalize(), "f")


def _find_exact(header: Sequence[str], name: str) -> int | None:
    for index, column in enumerate(header):
        if column.lower() == name:
            return index
    return None


def _find_containing(header: Sequence[str], fragment: str) -> int | None:
    for index, column in enumerate(header):
        if fragment in column:
            return index
    return None


def _cell(cells: Sequence[str], index: int | None) -> str:
    if index is None or index >= len(cells):
        return ""
    return cells[index]
