"""Job text parser.

Jobs arrive as newline-delimited ``url,name,tag1,tag2,...`` rows. Parsing is
deliberately shallow: the stage programs read the raw text themselves, the
parsed rows only feed validation and logging.
"""
import logging
from typing import Any

from models.job import JobInput, JobRow
from pipeline.errors import InputValidationError

logger = logging.getLogger(__name__)

NO_CSV_DATA_MESSAGE = "No CSV data provided"


def parse_job_input(csv_data: Any) -> JobInput:
    """Validate the submitted text and split it into rows.

    Raises InputValidationError for missing, non-text, empty or whitespace-only
    input.
    """
    if not isinstance(csv_data, str) or not csv_data.strip():
        raise InputValidationError(NO_CSV_DATA_MESSAGE)

    rows = parse_rows(csv_data)
    logger.info("Parsed %d job row(s)", len(rows))
    return JobInput(csv_data=csv_data, rows=rows)


def parse_rows(csv_data: str) -> list[JobRow]:
    rows: list[JobRow] = []
    for line in csv_data.splitlines():
        if not line.strip():
            continue
        url, *rest = [item.strip() for item in line.split(",")]
        name = rest[0] if rest else ""
        tags = [tag for tag in rest[1:] if tag]
        rows.append(JobRow(url=url, name=name, tags=tags))
    return rows
