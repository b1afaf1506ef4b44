from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Union

from bs4 import BeautifulSoup, Tag

# Column indexes saturate here instead of growing without bound.
MAX_COLUMNS = 255

NAME_HEADER = "name"
SIZE_HEADER = "size"
DATE_HEADER = "last modified"

SIZE_MULTIPLIERS = {
    "": 1,
    "k": 2**10,
    "m": 2**20,
    "g": 2**30,
    "p": 2**40,
    "e": 2**50,
}

SIZE_REGEX = re.compile(r"([0-9]*)(.*)", re.DOTALL)
TIMESTAMP_REGEX = re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2}) ([0-9]{2}):([0-9]{2})")


@dataclass(frozen=True)
class ColumnLayout:
    link: Optional[int] = None
    size: Optional[int] = None
    date: Optional[int] = None


def decode_size(text: str) -> Optional[int]:
    """
    Decode an autoindex size like '512', '23K' or '4M' into bytes.

    Returns None for '-', fractional sizes and unknown suffixes.
    """
    m = SIZE_REGEX.fullmatch(text.strip())
    digits, suffix = m.group(1), m.group(2)
    if not digits:
        return None
    multiplier = SIZE_MULTIPLIERS.get(suffix.lower())
    if multiplier is None:
        return None
    return int(digits) * multiplier


def decode_timestamp(text: str) -> Optional[datetime]:
    """
    Decode 'YYYY-MM-DD hh:mm' into a naive datetime.
    """
    m = TIMESTAMP_REGEX.fullmatch(text.strip())
    if not m:
        return None
    try:
        return datetime(*(int(part) for part in m.groups()))
    except ValueError:
        return None


def _child_elements(tag: Tag) -> List[Tag]:
    return [c for c in tag.children if isinstance(c, Tag)]


def _is_cell(tag: Tag, name: str) -> bool:
    return tag.name.lower() == name


def _first_text(tag: Tag) -> Optional[str]:
    return next(tag.strings, None)


def _colspan(cell: Tag) -> int:
    try:
        span = int(str(cell.get("colspan", "1")).strip())
    except ValueError:
        return 1
    return max(span, 1)


def _advance(index: int, cell: Tag) -> int:
    return min(index + _colspan(cell), MAX_COLUMNS)


def detect_layout(header_row: Tag) -> ColumnLayout:
    """
    Map the Name / Size / Last modified headers to their column positions.

    Only th cells count. Each cell advances the running column index by its
    colspan, so an icon cell spanning two columns shifts everything after it.
    """
    found = {}
    index = 0
    for cell in _child_elements(header_row):
        if index >= MAX_COLUMNS:
            break
        if not _is_cell(cell, "th"):
            continue

        text = _first_text(cell)
        if text is not None:
            label = text.strip().lower()
            if label in (NAME_HEADER, SIZE_HEADER, DATE_HEADER):
                found[label] = index

        index = _advance(index, cell)

    return ColumnLayout(
        link=found.get(NAME_HEADER),
        size=found.get(SIZE_HEADER),
        date=found.get(DATE_HEADER),
    )


class ListingEntry:
    """
    Lazy view over one data row of a listing table.

    Nothing is decoded up front; every accessor reads the row's cells again.
    """

    __slots__ = ("row", "layout")

    def __init__(self, row: Tag, layout: ColumnLayout) -> None:
        self.row = row
        self.layout = layout

    def __repr__(self) -> str:
        return f"ListingEntry(link={self.get_link()!r}, size={self.get_size()!r}, date={self.get_date()!r})"

    def locate_column(self, position: Optional[int]) -> Optional[Tag]:
        if position is None:
            return None

        index = 0
        for cell in _child_elements(self.row):
            if not _is_cell(cell, "td"):
                continue
            end = _advance(index, cell)
            if index <= position < end:
                return cell
            if end >= MAX_COLUMNS:
                break
            index = end
        return None

    def _column_text(self, position: Optional[int]) -> Optional[str]:
        cell = self.locate_column(position)
        if cell is None:
            return None
        return _first_text(cell)

    def get_link(self) -> Optional[Tag]:
        cell = self.locate_column(self.layout.link)
        if cell is None:
            return None
        return cell.find(True, recursive=False)

    def get_size(self) -> Optional[int]:
        text = self._column_text(self.layout.size)
        if text is None:
            return None
        return decode_size(text)

    def get_date(self) -> Optional[datetime]:
        text = self._column_text(self.layout.date)
        if text is None:
            return None
        return decode_timestamp(text)


def _iter_entries(rows: Iterator[Tag], layout: ColumnLayout) -> Iterator[ListingEntry]:
    for row in rows:
        if any(_is_cell(c, "td") for c in _child_elements(row)):
            yield ListingEntry(row, layout)


def iter_listing(soup: BeautifulSoup) -> Optional[Iterator[ListingEntry]]:
    """
    Return a single-pass iterator of entries from the first tbody of the page.

    Returns None when the page has no listing table. The header row is used
    for column detection and is never yielded; rows without td cells
    (separators) are skipped.
    """
    tbody = soup.find("tbody")
    if tbody is None:
        return None

    rows = (c for c in tbody.children if isinstance(c, Tag))
    header = next(rows, None)
    if header is None:
        return None

    return _iter_entries(rows, detect_layout(header))


def parse_listing(html: Union[str, bytes]) -> Optional[Iterator[ListingEntry]]:
    """
    Parse an autoindex page. html5lib adds the implicit tbody a browser would.
    """
    soup = BeautifulSoup(html, "html5lib")
    return iter_listing(soup)
