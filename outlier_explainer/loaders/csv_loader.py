"""CSV input loading by URI: csv://<path> files and inlinecsv content."""

import csv
import io
import logging
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from outlier_explainer.core.exceptions import (
    ColumnNotFoundError,
    DataLoadError,
    DataSourceNotFoundError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

CSV_SCHEME = "csv"
INLINE_CSV_SCHEME = "inlinecsv"
SUPPORTED_SCHEMES = [CSV_SCHEME, INLINE_CSV_SCHEME]


def detect_delimiter(file_path: str, sample_size: int = 8192) -> str:
    """
    Auto-detect the delimiter used in a CSV file.

    Args:
        file_path: Path to the CSV file
        sample_size: Number of bytes to sample for detection

    Returns:
        Detected delimiter character, defaults to ',' if detection fails
    """
    encodings = ['utf-8', 'utf-8-sig', 'cp1252', 'latin-1']

    for encoding in encodings:
        try:
            with open(file_path, 'r', newline='', encoding=encoding) as f:
                sample = f.read(sample_size)
            return _sniff(sample)
        except UnicodeDecodeError:
            continue

    return ','


def _sniff(sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=',\t|;').delimiter
    except csv.Error:
        return ','


def detect_encoding(file_path: str) -> str:
    """
    Detect the encoding of a file by trying common encodings.

    Args:
        file_path: Path to the file

    Returns:
        Detected encoding name, defaults to 'utf-8'
    """
    encodings = ['utf-8', 'utf-8-sig', 'cp1252', 'latin-1']

    for encoding in encodings:
        try:
            with open(file_path, 'r', encoding=encoding) as f:
                f.read(8192)
            return encoding
        except UnicodeDecodeError:
            continue

    return 'utf-8'


def parse_uri(uri: str):
    """
    Split an input URI into (scheme, location).

    "inlinecsv" (with or without "://") has no location.

    Raises:
        UnsupportedFormatError: For any scheme other than csv and inlinecsv
    """
    if uri.strip().lower() in (INLINE_CSV_SCHEME, f"{INLINE_CSV_SCHEME}://"):
        return INLINE_CSV_SCHEME, ""
    scheme, sep, location = uri.partition("://")
    if not sep:
        raise UnsupportedFormatError(uri, scheme="", supported_schemes=SUPPORTED_SCHEMES)
    scheme = scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise UnsupportedFormatError(uri, scheme=scheme, supported_schemes=SUPPORTED_SCHEMES)
    return scheme, location


def load_dataframe(
    uri: str,
    content: Optional[str] = None,
    required_columns: Optional[Sequence[str]] = None,
    delimiter: Optional[str] = None,
    encoding: Optional[str] = None,
) -> pd.DataFrame:
    """
    Load input rows into a DataFrame.

    Args:
        uri: "csv://<path>" or "inlinecsv"
        content: CSV text for inlinecsv
        required_columns: Columns that must be present
        delimiter: Override delimiter detection
        encoding: Override encoding detection (files only)

    Returns:
        The loaded frame

    Raises:
        UnsupportedFormatError: Unknown URI scheme
        DataSourceNotFoundError: csv:// path does not exist
        ColumnNotFoundError: A required column is missing
        DataLoadError: The CSV could not be parsed
    """
    scheme, location = parse_uri(uri)

    if scheme == INLINE_CSV_SCHEME:
        if content is None:
            raise DataLoadError("inlinecsv input requires 'content'", uri)
        frame = _read(io.StringIO(content), uri, delimiter or _sniff(content[:8192]), None)
    else:
        path = Path(location)
        if not path.exists():
            raise DataSourceNotFoundError(uri, str(path))
        delimiter = delimiter or detect_delimiter(str(path))
        if delimiter != ',':
            logger.info(f"Auto-detected delimiter: {repr(delimiter)}")
        encoding = encoding or detect_encoding(str(path))
        frame = _read(path, uri, delimiter, encoding)

    for column in required_columns or []:
        if column not in frame.columns:
            raise ColumnNotFoundError(column, available_columns=list(frame.columns), uri=uri)

    logger.info(f"Loaded {len(frame):,} rows x {len(frame.columns)} columns from {scheme} input")
    return frame


def _read(source, uri: str, delimiter: str, encoding: Optional[str]) -> pd.DataFrame:
    try:
        return pd.read_csv(source, delimiter=delimiter, encoding=encoding, low_memory=False)
    except pd.errors.EmptyDataError:
        logger.warning(f"Empty CSV input: {uri}")
        return pd.DataFrame()
    except pd.errors.ParserError as e:
        raise DataLoadError(
            f"CSV parsing error in {uri}: {e}. The delimiter may be wrong (current: {repr(delimiter)})",
            uri,
            original_exception=e
        )
    except UnicodeDecodeError as e:
        raise DataLoadError(
            f"Encoding error in {uri}: cannot decode with {encoding}",
            uri,
            original_exception=e
        )
