"""
Bulk import of visitor entries from spreadsheets.

Source files come from front desks with Indonesian or English headers in any
casing (`Nama`, `NAME`, `name`, ...). FIELD_ALIASES maps each target field to
the headers it accepts; the first alias with a non-empty value wins.
"""

import csv
import io
import logging
import os
import zipfile
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .errors import NoValidRows, UnsupportedFile
from .models import Entry, EntryStatus
from .storage import EntryStore

logger = logging.getLogger(__name__)

FIELD_ALIASES = (
    ("name", ("Nama", "Name")),
    ("address", ("Alamat", "Address")),
    ("phone_number", ("HP", "Phone")),
    ("whom_to_meet", ("Ketemu", "Meet")),
    ("purpose", ("Tujuan", "Purpose")),
)

REQUIRED_FIELDS = ("name", "address")

SUPPORTED_EXTENSIONS = (".xlsx", ".csv")


Row = Union[Mapping[Any, Any], Sequence[Tuple[Any, Any]]]


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    # spreadsheets hand phone numbers back as floats
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


# PUBLIC_INTERFACE
def normalize_row(row: Row) -> Dict[str, str]:
    """
    Map one loosely-keyed row onto the entry fields.

    Args:
        row: Mapping of header -> value, or a sequence of (header, value)
             pairs in column order. Pairs keep repeated headers.

    Returns:
        dict: {field: text} for every field in FIELD_ALIASES ("" when absent).
    """
    pairs = row.items() if isinstance(row, Mapping) else row
    by_header: Dict[str, List[Any]] = {}
    for key, value in pairs:
        if key is None:
            continue
        by_header.setdefault(str(key).strip().lower(), []).append(value)

    normalized = {}
    for field, aliases in FIELD_ALIASES:
        normalized[field] = ""
        for alias in aliases:
            for value in by_header.get(alias.lower(), []):
                text = _to_text(value)
                if text:
                    normalized[field] = text
                    break
            if normalized[field]:
                break
    return normalized


# PUBLIC_INTERFACE
def normalize_rows(rows: Iterable[Row]) -> List[Dict[str, str]]:
    """
    Normalize rows and drop those missing a mandatory field.

    Any status column in the source is ignored; every accepted row is `entered`.
    """
    accepted = []
    dropped = 0
    for row in rows:
        normalized = normalize_row(row)
        if not all(normalized[f] for f in REQUIRED_FIELDS):
            dropped += 1
            continue
        normalized["status"] = EntryStatus.ENTERED.value
        accepted.append(normalized)
    if dropped:
        logger.info(f"Import dropped {dropped} row(s) without name or address")
    return accepted


def _read_xlsx(content: bytes) -> List[List[Tuple[Any, Any]]]:
    workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return []
        result = []
        for values in rows:
            if values is None or all(v is None for v in values):
                continue
            result.append(list(zip(header, values)))
        return result
    finally:
        workbook.close()


def _read_csv(content: bytes) -> List[List[Tuple[Any, Any]]]:
    text = content.decode("utf-8-sig")
    reader = csv.reader(io.StringIO(text))
    header = next(reader, None)
    if header is None:
        return []
    return [list(zip(header, values)) for values in reader if any(v.strip() for v in values)]


# PUBLIC_INTERFACE
def read_rows(filename: str, content: bytes) -> List[List[Tuple[Any, Any]]]:
    """
    Read the first sheet of an .xlsx file, or a .csv file, into rows of
    (header, value) pairs. Repeated headers are kept as separate pairs.

    Raises:
        UnsupportedFile: Any other extension, or a file that cannot be parsed.
    """
    extension = os.path.splitext(filename or "")[1].lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFile()
    try:
        if extension == ".xlsx":
            return _read_xlsx(content)
        return _read_csv(content)
    except (InvalidFileException, zipfile.BadZipFile, ValueError, KeyError, OSError, UnicodeDecodeError, csv.Error) as e:
        logger.warning(f"Could not parse import file {filename}: {e}")
        raise UnsupportedFile(f"Could not read {filename}; check the file format") from e


# PUBLIC_INTERFACE
def import_entries(store: EntryStore, rows: Iterable[Row]) -> List[Entry]:
    """
    Normalize rows and create the accepted ones as one batch.

    Raises:
        NoValidRows: No row survived normalization.
    """
    accepted = normalize_rows(rows)
    if not accepted:
        raise NoValidRows()
    entries = store.create_many(accepted)
    logger.info(f"Imported {len(entries)} entries")
    return entries
