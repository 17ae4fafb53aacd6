"""
CSV export of the waitlist for the admin console.
"""
import csv
import io
import re
from datetime import datetime, tzinfo
from typing import Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from logging_config import logger
from sync.errors import ValidationError
from sync.records import WaitlistEntry

# Postgres trims trailing zeros from fractional seconds (".12")
FRACTION_PATTERN = re.compile(r"([T ]\d{2}:\d{2}:\d{2})\.(\d+)")

CSV_HEADER = ("Email", "Joined Date")
EXPORT_FILENAME = "waitlist_emails.csv"


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown time zone: {name}", field="tz") from e


def parse_timestamp(timestamp: str) -> datetime:
    """ISO 8601 with any number of fraction digits and a Z or numeric offset"""
    text = timestamp.strip().replace("Z", "+00:00")
    text = FRACTION_PATTERN.sub(lambda m: f"{m.group(1)}.{(m.group(2) + '000000')[:6]}", text, count=1)
    return datetime.fromisoformat(text)


def local_date(timestamp: str, tz: Optional[tzinfo] = None) -> str:
    """M/D/YYYY in the viewer's zone, the way the browser's toLocaleDateString() printed it"""
    if not timestamp:
        return ""
    try:
        moment = parse_timestamp(timestamp)
    except ValueError:
        logger.warning("Unparseable waitlist timestamp, exporting it as is", timestamp=timestamp)
        return timestamp
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return f"{moment.month}/{moment.day}/{moment.year}"


def export_waitlist_csv(entries: Sequence[WaitlistEntry], tz: Optional[tzinfo] = None) -> str:
    """Header row plus one row per entry, in input order"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for entry in entries:
        writer.writerow((entry.email, local_date(entry.joined_at, tz)))
    return buffer.getvalue().rstrip("\n")
