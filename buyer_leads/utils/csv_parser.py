"""CSV file parser for bulk lead import."""
from __future__ import annotations

import csv
import io
from typing import Dict, List, Optional

from buyer_leads.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)


def parse_csv_leads(
    file_content: bytes,
    encoding: str = "utf-8-sig",
    delimiter: str = ",",
) -> List[Dict[str, Optional[str]]]:
    """
    Parse CSV file and return one dictionary per data row, keyed by header.

    Blank rows are skipped, so the n-th returned row is file row n + 1
    (row 1 being the header). Raises ``ValueError`` for files that cannot
    be decoded or parsed.
    """
    try:
        text_content = file_content.decode(encoding)
    except UnicodeDecodeError as e:
        logger.error("csv_parser.decode_error", encoding=encoding, error=str(e))
        raise ValueError(f"Failed to decode CSV file with encoding {encoding}") from e

    try:
        reader = csv.DictReader(io.StringIO(text_content), delimiter=delimiter)

        rows = []
        for row in reader:
            # Clean up row data; surplus cells land under a None key and are dropped
            lead_data = {
                k.strip(): v.strip() if isinstance(v, str) and v.strip() else None
                for k, v in row.items()
                if k and k.strip()
            }

            # Skip empty rows
            if not any(lead_data.values()):
                continue

            rows.append(lead_data)

    except csv.Error as e:
        logger.error("csv_parser.parse_error", error=str(e))
        raise ValueError(f"Failed to parse CSV file: {str(e)}") from e

    logger.info(
        "csv_parser.parsed",
        total_rows=len(rows),
        encoding=encoding,
    )

    return rows
