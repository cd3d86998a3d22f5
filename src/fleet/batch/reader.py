"""Batch input readers.

Reads the device list for a batch: a table with a header row and a column
named ``mac_addresses``. Other columns are ignored.

Expected format:
| mac_addresses     | location |
|-------------------|----------|
| aa:bb:cc:dd:ee:ff | bar 12   |
| 12:34:56:78:9a:bc | bar 40   |

- The header is read when the reader is created, so a missing column is
  reported before anything is dispatched
- Invalid MAC addresses are logged and skipped; the batch continues
- A row that cannot be read aborts the rest of the batch
"""

import csv
import io
import logging
import re
import sys
from typing import Iterator, Optional, TextIO

from openpyxl import load_workbook

from ..api.exceptions import ConfigurationError, MalformedInputError, ValidationError

logger = logging.getLogger(__name__)

MAC_COLUMN = "mac_addresses"

# Six colon-separated hex octets, either case
MAC_PATTERN = re.compile(r"([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}")

WORKBOOK_SUFFIXES = (".xlsx", ".xlsm")


def is_valid_mac(value: str) -> bool:
    return MAC_PATTERN.fullmatch(value) is not None


class DeviceListReader:
    """Base reader yielding validated device identifiers.

    Subclasses provide the header and the data rows; this class locates the
    ``mac_addresses`` column and validates each value.

    Iterating the reader is lazy and can only be done once.

    Attributes:
        column: Index of the ``mac_addresses`` column
        invalid_rows: ValidationError for every skipped row, in input order
    """

    def __init__(self):
        self.invalid_rows: list[ValidationError] = []
        self._consumed = False
        self.column = self._locate_column(self._read_header())

    def _read_header(self) -> list[str]:
        raise NotImplementedError

    def _rows(self) -> Iterator[list[str]]:
        """Yield the data rows following the header, blank rows excluded."""
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "DeviceListReader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _locate_column(self, header: list[str]) -> int:
        try:
            return header.index(MAC_COLUMN)
        except ValueError:
            raise ConfigurationError(
                f"Batch input missing '{MAC_COLUMN}' column",
                details={"header": header},
            ) from None

    def __iter__(self) -> Iterator[str]:
        if self._consumed:
            raise RuntimeError("Device list has already been read")
        self._consumed = True
        return self._validated()

    def _validated(self) -> Iterator[str]:
        accepted = 0
        for row_number, row in enumerate(self._rows(), start=1):
            value = row[self.column] if self.column < len(row) else ""

            if not is_valid_mac(value):
                logger.warning(f"Invalid MAC address '{value}' on line {row_number}.")
                self.invalid_rows.append(
                    ValidationError(
                        f"Invalid MAC address '{value}'",
                        row_number=row_number,
                        value=value,
                    )
                )
                continue

            accepted += 1
            yield value

        logger.info(
            f"Read {accepted} device(s) from batch input, "
            f"skipped {len(self.invalid_rows)} invalid row(s)"
        )


class CsvDeviceReader(DeviceListReader):
    """Reader for comma-separated device lists.

    Every row must have as many fields as the header.
    """

    def __init__(self, stream: TextIO):
        """
        Args:
            stream: Text stream positioned at the header row
        """
        self._stream = stream
        self._reader = csv.reader(stream)
        self._width = 0
        self._row_number = 0
        super().__init__()

    def _next_record(self) -> Optional[list[str]]:
        while True:
            try:
                record = next(self._reader)
            except StopIteration:
                return None
            except (csv.Error, UnicodeDecodeError, OSError) as e:
                # Data rows are numbered from 1; the header has no number
                row_number = self._row_number + 1 if self._width else None
                raise MalformedInputError(
                    f"Failed to read batch input: {e}",
                    row_number=row_number,
                    cause=e,
                ) from e
            if record:
                return record

    def _read_header(self) -> list[str]:
        header = self._next_record()
        if header is None:
            # No header at all is reported like a missing column
            return []
        # Strip a UTF-8 byte order mark left by spreadsheet exports
        header[0] = header[0].lstrip("\ufeff")
        self._width = len(header)
        return header

    def _rows(self) -> Iterator[list[str]]:
        while True:
            record = self._next_record()
            if record is None:
                return
            self._row_number += 1
            if len(record) != self._width:
                raise MalformedInputError(
                    f"Row {self._row_number} has {len(record)} field(s), "
                    f"expected {self._width}",
                    row_number=self._row_number,
                )
            yield record

    def close(self) -> None:
        if self._stream is not sys.stdin:
            self._stream.close()


class WorkbookDeviceReader(DeviceListReader):
    """Reader for Excel workbooks (first worksheet) using openpyxl."""

    def __init__(self, content: bytes):
        """
        Args:
            content: Raw bytes of the .xlsx file
        """
        try:
            self._workbook = load_workbook(filename=io.BytesIO(content), read_only=True)
        except Exception as e:
            raise ConfigurationError(f"Failed to open workbook: {e}", cause=e) from e

        worksheet = self._workbook.active
        if worksheet is None:
            raise ConfigurationError("Workbook has no active worksheet")
        self._iter_rows = worksheet.iter_rows(values_only=True)
        try:
            super().__init__()
        except ConfigurationError:
            self._workbook.close()
            raise

    @staticmethod
    def _cells(row: tuple) -> list[str]:
        return ["" if cell is None else str(cell) for cell in row]

    def _next_row(self) -> Optional[list[str]]:
        for row in self._iter_rows:
            cells = self._cells(row)
            if any(cells):
                return cells
        return None

    def _read_header(self) -> list[str]:
        header = self._next_row()
        return [] if header is None else header

    def _rows(self) -> Iterator[list[str]]:
        try:
            row = self._next_row()
            while row is not None:
                yield row
                row = self._next_row()
        finally:
            self.close()

    def close(self) -> None:
        self._workbook.close()


def open_device_reader(path: str) -> DeviceListReader:
    """Open a batch input file.

    Args:
        path: File path, or ``-`` for standard input. Paths ending in
            .xlsx/.xlsm are read as workbooks, anything else as CSV.

    Raises:
        ConfigurationError: If the file cannot be opened or lacks the
            ``mac_addresses`` column
    """
    if path == "-":
        return CsvDeviceReader(sys.stdin)

    try:
        if path.lower().endswith(WORKBOOK_SUFFIXES):
            with open(path, "rb") as f:
                return WorkbookDeviceReader(f.read())
        stream = open(path, newline="", encoding="utf-8-sig")
    except OSError as e:
        raise ConfigurationError(f"Cannot open batch input '{path}': {e}", cause=e) from e

    try:
        return CsvDeviceReader(stream)
    except Exception:
        stream.close()
        raise
