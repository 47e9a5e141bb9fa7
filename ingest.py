import csv
import os
from typing import Iterator, List, Sequence, TextIO

import structlog
from pydantic import ValidationError

from errors import InputAccessError, RecordFormatError
from models import RawTransaction

logger = structlog.get_logger()

REQUIRED_COLUMNS = ("type", "client", "tx")
KNOWN_COLUMNS = REQUIRED_COLUMNS + ("amount",)


def open_input(path: str) -> TextIO:
    """Open the transactions file for reading, or raise InputAccessError."""
    if not os.path.exists(path):
        raise InputAccessError(f'"{path}" does not exist')
    if not os.path.isfile(path):
        raise InputAccessError(f'"{path}" is not a file')
    try:
        return open(path, newline="", encoding="utf-8", errors="replace")
    except OSError as e:
        raise InputAccessError(f'failed to open "{path}": {e}') from e


def _is_blank(row: Sequence[str]) -> bool:
    return all(not field.strip() for field in row)


def parse_row(row: Sequence[str], columns: Sequence[str]) -> RawTransaction:
    """Map one CSV row onto the header columns and parse it."""
    if len(row) != len(columns):
        raise RecordFormatError(f"expected {len(columns)} fields, got {len(row)}")
    data = {
        name: value
        for name, value in zip(columns, row)
        if name in KNOWN_COLUMNS
    }
    try:
        return RawTransaction.model_validate(data)
    except ValidationError as e:
        raise RecordFormatError(str(e)) from e


class TransactionReader:
    """Reads RawTransaction records from CSV text in input order.

    The header decides column order; names and values are trimmed. Blank
    lines are ignored and malformed rows are skipped and counted.
    """

    def __init__(self, stream: TextIO):
        self._reader = csv.reader(stream)
        self.records_read = 0
        self.records_skipped = 0
        self.columns = self._read_header()

    def _next_row(self):
        try:
            return next(self._reader)
        except OSError as e:
            raise InputAccessError(f"failed to read input: {e}") from e

    def _read_header(self) -> List[str]:
        while True:
            try:
                row = self._next_row()
            except StopIteration:
                raise InputAccessError("input has no header row")
            except csv.Error as e:
                raise InputAccessError(f"unreadable header row: {e}") from e
            if _is_blank(row):
                continue
            columns = [name.strip() for name in row]
            missing = [name for name in REQUIRED_COLUMNS if name not in columns]
            if missing:
                raise InputAccessError(f"header is missing columns: {', '.join(missing)}")
            return columns

    def __iter__(self) -> Iterator[RawTransaction]:
        while True:
            try:
                row = self._next_row()
            except StopIteration:
                return
            except csv.Error as e:
                self._skip(self._reader.line_num, str(e))
                continue

            if _is_blank(row):
                continue

            self.records_read += 1
            try:
                record = parse_row(row, self.columns)
            except RecordFormatError as e:
                self._skip(self._reader.line_num, str(e))
                continue
            yield record

    def _skip(self, line: int, reason: str) -> None:
        self.records_skipped += 1
        logger.debug("Skipping malformed row", line=line, reason=reason)
