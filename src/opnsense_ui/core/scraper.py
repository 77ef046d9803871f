"""Table scraping for the appliance's configuration pages.

Every configuration page renders its records in a ``table table-striped``
table: an optional title row, a header row of column labels, then one row
per record. Column order and presence vary between appliance versions, so
the header row is read into a ``FieldSchema`` and cells are located by the
position of their label in that schema, never by a fixed offset.

Cell normalization:
------------------
- ``MAC address`` cells also hold icons and button labels; only the text
  matching a MAC address is kept.
- An empty ``Hostname`` cell is reported as ``default``, as the appliance
  itself displays it.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import structlog
from bs4 import BeautifulSoup, Tag

from ..appliance.session import ApplianceSession
from ..constants import (
    DEFAULT_HOSTNAME,
    DHCP_FIELD_HOSTNAME,
    DHCP_FIELD_MAC,
    MAC_PATTERN,
    TABLE_CLASS,
)
from ..utils.exceptions import PageStructureError

logger = structlog.get_logger(__name__)

_TABLE_CLASSES = TABLE_CLASS.split()


@dataclass(frozen=True)
class FieldSchema:
    """Ordered column labels of a table header."""

    labels: tuple[str, ...]

    def position(self, label: str) -> int | None:
        """Zero-based cell index of ``label``, or None if the column is absent."""
        try:
            return self.labels.index(label)
        except ValueError:
            return None

    def __contains__(self, label: object) -> bool:
        return label in self.labels

    def __iter__(self) -> Iterator[str]:
        return iter(self.labels)

    def __len__(self) -> int:
        return len(self.labels)


def _is_record_table(tag: Tag) -> bool:
    return tag.name == "table" and tag.get("class") == _TABLE_CLASSES


def find_table(page: BeautifulSoup, page_name: str = "page") -> Tag:
    """
    First table whose class attribute is exactly the record-table class.

    Settings tables on the same pages carry extra classes
    (``opnsense_standard_table_form``) and are skipped.

    Raises:
        PageStructureError: If the page has no such table.
    """
    table = page.find(_is_record_table)
    if table is None:
        raise PageStructureError(page_name, f"no <table class=\"{TABLE_CLASS}\"> found")
    return table


def _cells(row: Tag) -> list[Tag]:
    return row.find_all(["th", "td"], recursive=False)


def discover_schema(page: BeautifulSoup, header_row: int, page_name: str = "page") -> FieldSchema:
    """
    Read the column labels of the configuration table.

    Args:
        page: Parsed page.
        header_row: Zero-based index of the header row within the table.
        page_name: Used in error messages.

    Returns:
        Non-empty header cell texts, in document order.

    Raises:
        PageStructureError: If the table or header row is missing or has no labels.
    """
    rows = find_table(page, page_name).find_all("tr")
    if header_row >= len(rows):
        raise PageStructureError(
            page_name, f"header row {header_row} missing, table has {len(rows)} rows"
        )

    labels = []
    for cell in _cells(rows[header_row]):
        text = " ".join(cell.stripped_strings)
        if text:
            labels.append(text)

    if not labels:
        raise PageStructureError(page_name, f"header row {header_row} has no labels")

    logger.debug("Discovered field schema", page=page_name, fields=labels)
    return FieldSchema(tuple(labels))


def cell_value(label: str, cell: Tag | None) -> str:
    """
    Text of one cell, normalized for its column.

    All text nodes are stripped and concatenated.
    """
    parts = list(cell.stripped_strings) if cell is not None else []

    if label == DHCP_FIELD_MAC:
        parts = [m.group(0).lower() for m in (MAC_PATTERN.search(p) for p in parts) if m]

    value = "".join(parts)
    if label == DHCP_FIELD_HOSTNAME and not value:
        value = DEFAULT_HOSTNAME
    return value


def extract_rows(
    page: BeautifulSoup,
    schema: FieldSchema,
    header_row: int,
    page_name: str = "page",
) -> Iterator[dict[str, str]]:
    """
    Extract the body rows of the configuration table.

    The table is located immediately; rows are produced lazily, one mapping of
    label to cell text per row after the header, in document order. The
    iterator is single-pass: scraping again needs a fresh page.

    Raises:
        PageStructureError: If the page has no configuration table.
    """
    rows = find_table(page, page_name).find_all("tr")[header_row + 1 :]
    return _iter_rows(rows, schema)


def _iter_rows(rows: list[Tag], schema: FieldSchema) -> Iterator[dict[str, str]]:
    for row in rows:
        cells = _cells(row)
        yield {
            label: cell_value(label, cells[i] if i < len(cells) else None)
            for i, label in enumerate(schema.labels)
        }


def is_blank_row(row: dict[str, str]) -> bool:
    """True for rows carrying no data, such as the table's "add" footer."""
    return all(not value or value == DEFAULT_HOSTNAME for value in row.values())


class SchemaCache:
    """
    Field schemas per page, discovered once per session.

    Header layout does not change while a session lives, so a schema is only
    rediscovered after ``clear``.
    """

    def __init__(self) -> None:
        self._schemas: dict[str, FieldSchema] = {}

    def get_or_discover(self, key: str, page: BeautifulSoup, header_row: int) -> FieldSchema:
        schema = self._schemas.get(key)
        if schema is None:
            schema = discover_schema(page, header_row, page_name=key)
            self._schemas[key] = schema
        return schema

    def clear(self, key: str | None = None) -> None:
        """Forget one schema, or all of them."""
        if key is None:
            self._schemas.clear()
        else:
            self._schemas.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._schemas


class TableScraper:
    """Fetches configuration pages and scrapes their table through the session."""

    def __init__(self, session: ApplianceSession, schemas: SchemaCache | None = None):
        self.session = session
        self.schemas = schemas or SchemaCache()

    async def scrape(
        self,
        path: str,
        header_row: int,
        params: dict[str, Any] | None = None,
    ) -> Iterator[dict[str, str]]:
        """
        Fetch ``path`` and return its rows.

        Args:
            path: Page path relative to the appliance root.
            header_row: Zero-based index of the header row.
            params: Query parameters (e.g. the DHCP interface).

        Returns:
            Single-pass iterator of label -> text mappings.
        """
        page = await self.session.fetch_page(path, params=params)
        schema = self.schemas.get_or_discover(path, page, header_row)
        return extract_rows(page, schema, header_row, page_name=path)
