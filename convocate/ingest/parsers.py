"""
Convocate - Format Parsers
Turns WhatsApp, CSV, JSON and SMS-backup XML exports into Message records.

Parsers skip malformed lines and records instead of failing; only an
oversized file, an unknown extension, or a document that is not readable
as its format at all fails the whole file.
"""

import csv
import io
import json
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Callable, Dict, List, Optional, Sequence

from ..errors import FileTooLargeError, UnreadableFileError, UnsupportedFileTypeError
from ..models.message import Message, parse_timestamp, utc_now

DEFAULT_EXTENSIONS = (".csv", ".json", ".txt", ".xml")

# [timestamp] sender: message
WHATSAPP_LINE = re.compile(r'^\[(.+?)\]\s(.+?):\s(.+)$')

# WhatsApp sprinkles direction marks and narrow no-break spaces into exports
WHATSAPP_WEIRD_SPACES = dict.fromkeys(map(ord, "\u202f\u00a0"), " ")
WHATSAPP_MARKS = re.compile("[\u200e\u200f\u2066-\u2069\ufeff]")


def decode_bytes(data: bytes) -> str:
    """Decode an upload as UTF-8, tolerating a BOM and bad bytes."""
    return data.decode("utf-8-sig", errors="replace")


def _field(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


# ============================================================================
# Per-format parsers
# ============================================================================

def parse_whatsapp(text: str, filename: str = "chat.txt") -> List[Message]:
    """Parse a WhatsApp .txt export. Continuation and system lines are dropped."""
    messages = []
    for raw_line in text.splitlines():
        line = WHATSAPP_MARKS.sub("", raw_line.translate(WHATSAPP_WEIRD_SPACES)).rstrip()
        match = WHATSAPP_LINE.match(line)
        if not match:
            continue
        stamp, sender, body = match.groups()
        messages.append(Message(sender=sender, text=body, timestamp=parse_timestamp(stamp)))
    return messages


def parse_csv(text: str, filename: str = "chat.csv") -> List[Message]:
    """Parse a CSV export with a sender,message,timestamp header."""
    reader = csv.DictReader(io.StringIO(text))
    messages = []
    try:
        for row in reader:
            normalized = {
                (key or "").strip().lower(): value
                for key, value in row.items()
                if isinstance(value, str)
            }
            sender = _field(normalized.get("sender"))
            body = _field(normalized.get("message"))
            if sender is None or body is None:
                continue
            messages.append(Message(
                sender=sender,
                text=body,
                timestamp=parse_timestamp(normalized.get("timestamp"))
            ))
    except csv.Error as e:
        raise UnreadableFileError(filename, f"invalid CSV ({e})")
    return messages


def parse_json(text: str, filename: str = "chat.json") -> List[Message]:
    """Parse a JSON array of {sender, message, timestamp}. Non-arrays yield nothing."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise UnreadableFileError(filename, f"invalid JSON ({e.msg})")

    if not isinstance(data, list):
        return []

    messages = []
    for item in data:
        if not isinstance(item, dict):
            continue
        sender = _field(item.get("sender"))
        body = _field(item.get("message"))
        if sender is None or body is None:
            continue
        messages.append(Message(sender=sender, text=body, timestamp=parse_timestamp(item.get("timestamp"))))
    return messages


def _epoch_millis(value: Optional[str]) -> datetime:
    if value is None:
        return utc_now()
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return utc_now()


def parse_sms_xml(text: str, filename: str = "sms.xml") -> List[Message]:
    """Parse an SMS Backup & Restore export: <smses><sms address body date/></smses>."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise UnreadableFileError(filename, f"invalid XML ({e})")

    if root.tag != "smses":
        return []

    messages = []
    for sms in root.findall("sms"):
        address = _field(sms.get("address"))
        body = _field(sms.get("body"))
        if address is None or body is None:
            continue
        messages.append(Message(sender=address, text=body, timestamp=_epoch_millis(sms.get("date"))))
    return messages


PARSERS: Dict[str, Callable[[str, str], List[Message]]] = {
    ".txt": parse_whatsapp,
    ".csv": parse_csv,
    ".json": parse_json,
    ".xml": parse_sms_xml,
}


# ============================================================================
# Dispatch
# ============================================================================

def file_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def validate_upload(
    filename: str,
    size: int,
    max_bytes: int,
    allowed_extensions: Sequence[str] = DEFAULT_EXTENSIONS
):
    """Reject a file by type or size before any parsing work happens."""
    allowed = [ext for ext in allowed_extensions if ext in PARSERS]
    if file_extension(filename) not in allowed:
        raise UnsupportedFileTypeError(filename, allowed)
    if size > max_bytes:
        raise FileTooLargeError(filename, max_bytes / (1024 * 1024))


def parse_file(
    data: bytes,
    filename: str,
    max_bytes: int,
    allowed_extensions: Sequence[str] = DEFAULT_EXTENSIONS
) -> List[Message]:
    """
    Parse one uploaded file into messages.

    Args:
        data: Raw file bytes.
        filename: Original filename; its extension picks the parser.
        max_bytes: Per-file size ceiling.
        allowed_extensions: Extensions accepted by this deployment.

    Returns:
        Messages in file order.
    """
    validate_upload(filename, len(data), max_bytes, allowed_extensions)
    parser = PARSERS[file_extension(filename)]
    return parser(decode_bytes(data), filename)
