"""
Tests for the chat export parsers.
"""

import json
from datetime import datetime, timezone, timedelta

import pytest

from convocate.errors import FileTooLargeError, UnreadableFileError, UnsupportedFileTypeError
from convocate.ingest.parsers import (
    parse_file,
    parse_whatsapp,
    parse_csv,
    parse_json,
    parse_sms_xml,
)

MB = 1024 * 1024


def _recent(ts: datetime) -> bool:
    return abs(datetime.now(timezone.utc) - ts) < timedelta(minutes=1)


# ============================================================================
# WhatsApp
# ============================================================================

def test_whatsapp_line_is_parsed():
    messages = parse_whatsapp("[1/2/23, 10:30] Alice: Hello there")

    assert len(messages) == 1
    assert messages[0].sender == "Alice"
    assert messages[0].text == "Hello there"
    assert messages[0].timestamp == datetime(2023, 1, 2, 10, 30, tzinfo=timezone.utc)


def test_whatsapp_drops_lines_that_do_not_match():
    text = "\n".join([
        "[1/2/23, 10:30] Alice: first",
        "a continuation line",
        "Messages and calls are end-to-end encrypted.",
        "",
        "[1/2/23, 10:31] Bob: second",
    ])
    messages = parse_whatsapp(text)

    assert [(m.sender, m.text) for m in messages] == [("Alice", "first"), ("Bob", "second")]


def test_whatsapp_invisible_marks_are_removed():
    text = "\u200e[1/2/23, 10:30\u202fAM] Alice: morning"
    messages = parse_whatsapp(text)

    assert len(messages) == 1
    assert messages[0].sender == "Alice"
    assert messages[0].timestamp.hour == 10


def test_whatsapp_unparseable_timestamp_defaults_to_now():
    messages = parse_whatsapp("[not a date] Alice: hi")

    assert len(messages) == 1
    assert _recent(messages[0].timestamp)


# ============================================================================
# CSV
# ============================================================================

def test_csv_headers_match_case_insensitively():
    text = "Sender,MESSAGE,Timestamp\nAlice,hi,2023-01-02T10:00:00Z\nBob,hey,2023-01-02T10:01:00Z\n"
    messages = parse_csv(text)

    assert [(m.sender, m.text) for m in messages] == [("Alice", "hi"), ("Bob", "hey")]
    assert messages[1].timestamp == datetime(2023, 1, 2, 10, 1, tzinfo=timezone.utc)


def test_csv_skips_rows_missing_fields_and_defaults_timestamp():
    text = "sender,message,timestamp\nAlice,,2023-01-02\n,orphan,2023-01-02\nBob,no time,\n"
    messages = parse_csv(text)

    assert len(messages) == 1
    assert messages[0].sender == "Bob"
    assert _recent(messages[0].timestamp)


# ============================================================================
# JSON
# ============================================================================

def test_json_array_is_parsed_and_bad_items_skipped():
    data = [
        {"sender": "Alice", "message": "hi", "timestamp": "2023-01-02T10:00:00+02:00"},
        {"sender": "Bob"},
        "not an object",
        {"sender": "Bob", "message": "hey"},
    ]
    messages = parse_json(json.dumps(data))

    assert [(m.sender, m.text) for m in messages] == [("Alice", "hi"), ("Bob", "hey")]
    assert messages[0].timestamp == datetime(2023, 1, 2, 8, 0, tzinfo=timezone.utc)


def test_json_non_array_yields_nothing():
    assert parse_json('{"sender": "Alice", "message": "hi"}') == []


def test_json_syntax_error_names_the_file():
    with pytest.raises(UnreadableFileError) as excinfo:
        parse_json("[{", "broken.json")
    assert "broken.json" in excinfo.value.message


# ============================================================================
# SMS XML
# ============================================================================

def test_sms_xml_uses_epoch_millis():
    text = (
        '<smses count="3">'
        '<sms address="+15550001" body="hello" date="1672653600000" />'
        '<sms address="+15550002" body="bad date" date="yesterday" />'
        '<sms address="+15550003" date="1672653600000" />'
        '</smses>'
    )
    messages = parse_sms_xml(text)

    assert [m.sender for m in messages] == ["+15550001", "+15550002"]
    assert messages[0].timestamp == datetime(2023, 1, 2, 10, 0, tzinfo=timezone.utc)
    assert _recent(messages[1].timestamp)


def test_sms_xml_other_root_yields_nothing():
    assert parse_sms_xml('<messages><sms address="a" body="b" date="0"/></messages>') == []


def test_sms_xml_malformed_document_is_rejected():
    with pytest.raises(UnreadableFileError):
        parse_sms_xml("<smses><sms", "backup.xml")


# ============================================================================
# Dispatch
# ============================================================================

def test_parse_file_dispatches_on_extension_and_tolerates_bom():
    data = "\ufeffsender,message,timestamp\nAlice,hi,2023-01-02\n".encode("utf-8")
    messages = parse_file(data, "Export.CSV", max_bytes=MB)

    assert [(m.sender, m.text) for m in messages] == [("Alice", "hi")]


def test_parse_file_rejects_unknown_extension():
    with pytest.raises(UnsupportedFileTypeError) as excinfo:
        parse_file(b"%PDF", "chat.pdf", max_bytes=MB)

    assert excinfo.value.status_code == 400
    assert excinfo.value.message == (
        "Unsupported file type: chat.pdf. Only .csv, .json, .txt, and .xml files are accepted."
    )


def test_parse_file_rejects_oversized_file():
    with pytest.raises(FileTooLargeError) as excinfo:
        parse_file(b"x" * (MB + 1), "chat.txt", max_bytes=MB)

    assert "chat.txt" in excinfo.value.message
    assert "1MB" in excinfo.value.message
