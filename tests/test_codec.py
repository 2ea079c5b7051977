"""Tests for the device line protocol."""

import json

import pytest

from workline.common.exceptions import ProtocolError
from workline.common.models import EventKind, WorkItem
from workline.services.device.codec import decode_line, encode_work_item, is_banner, parse_line


class TestEncode:
    """Outbound work item payload."""

    def test_payload_fields(self):
        item = WorkItem(id=7, code="LAV001", name="Standard job", duration=30)
        data = encode_work_item(item)

        assert data.endswith(b"\n")
        assert data.count(b"\n") == 1
        assert json.loads(data.decode("utf-8")) == {
            "id": 7,
            "name": "Standard job",
            "identificativo": "LAV001",
            "durata": 30,
        }

    def test_non_ascii_name_is_utf8(self):
        item = WorkItem(id=1, code="X1", name="Lavorazione più lunga", duration=5)
        payload = json.loads(encode_work_item(item).decode("utf-8"))
        assert payload["name"] == "Lavorazione più lunga"


class TestParseLine:
    """Inbound device lines."""

    @pytest.mark.parametrize("line,kind", [
        ("ACCEPTED:7", EventKind.ACCEPTED),
        ("STARTED:7", EventKind.STARTED),
        ("COMPLETED:7", EventKind.COMPLETED),
        ("REJECTED:7", EventKind.REJECTED),
        ("CANCELED:7", EventKind.CANCELED),
        ("CANCELLED:7", EventKind.CANCELED),
        ("ACCETTATA:7", EventKind.ACCEPTED),
        ("AVVIATA:7", EventKind.STARTED),
        ("COMPLETATA:7", EventKind.COMPLETED),
        ("RIFIUTATA:7", EventKind.REJECTED),
        ("CANCELLATA:7", EventKind.CANCELED),
    ])
    def test_tokens(self, line, kind):
        event = parse_line(line)
        assert event is not None
        assert event.kind is kind
        assert event.identity == "7"

    def test_token_embedded_in_text(self):
        event = parse_line(">> STARTED: LAV001 (countdown)\r")
        assert event.kind is EventKind.STARTED
        assert event.identity == "LAV001"
        assert event.raw == ">> STARTED: LAV001 (countdown)"

    def test_blank_lines_dropped(self):
        assert parse_line("") is None
        assert parse_line("   \r\n") is None

    @pytest.mark.parametrize("line", [
        "==========",
        "\U0001F527 Setup complete",
        "\U0001F4CB Waiting for work",
        "=== STARTED:7 ===",
    ])
    def test_banner_lines_dropped(self, line):
        assert parse_line(line) is None

    def test_custom_banner_markers(self):
        assert parse_line("## STARTED:7", markers=["##"]) is None
        assert parse_line("== STARTED:7", markers=["##"]).kind is EventKind.STARTED

    def test_unknown_line_dropped(self):
        assert parse_line("Device ready") is None
        assert parse_line("FINISHED:7") is None


class TestDecodeLine:
    """Strict decoding."""

    def test_raises_on_garbage(self):
        with pytest.raises(ProtocolError) as exc_info:
            decode_line("hello world")
        assert exc_info.value.line == "hello world"
        assert "Protocol Error" in exc_info.value.message

    def test_is_banner(self):
        assert is_banner("=====")
        assert not is_banner("STARTED:7")
