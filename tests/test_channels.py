"""Tests for notification sinks."""
import io
import json
from decimal import Decimal

from rich.console import Console

from alerts.channels import ConsoleChannel, FileChannel, HistoryChannel, NotificationSink
from models.alerts import Alert, TriggerEvent


def _event(condition="above"):
    alert = Alert(id=7, coin_id="bitcoin", coin_name="Bitcoin", symbol="btc",
                  target_price=Decimal("70000"), condition=condition)
    return TriggerEvent.for_alert(alert, Decimal("70123.45"))


def test_channels_are_sinks(temp_db, tmp_path):
    for channel in (ConsoleChannel(), FileChannel(tmp_path / "a.jsonl"), HistoryChannel(temp_db)):
        assert isinstance(channel, NotificationSink)


def test_console_channel():
    buf = io.StringIO()
    channel = ConsoleChannel(Console(file=buf, force_terminal=False, width=120))

    channel.send(_event("above"))
    channel.send(_event("below"))

    output = buf.getvalue()
    assert "▲ ALERT" in output
    assert "▼ ALERT" in output
    assert "Bitcoin (BTC) is now $70,123.45 (above $70,000.00)" in output


def test_file_channel_appends_json_lines(tmp_path):
    path = tmp_path / "logs" / "alerts.jsonl"
    channel = FileChannel(path)

    channel.send(_event())
    channel.send(_event("below"))

    lines = path.read_text().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["alert_id"] == 7
    assert first["evaluated_price"] == "70123.45"
    assert json.loads(lines[1])["condition"] == "below"


def test_history_channel(temp_db):
    HistoryChannel(temp_db).send(_event())
    recent = temp_db.get_recent_triggers()
    assert [e.alert_id for e in recent] == [7]
