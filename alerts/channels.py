"""Notification sinks for trigger events."""
import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from rich.console import Console

from models.enums import Condition

logger = logging.getLogger("coinwatch.alerts.channels")


@runtime_checkable
class NotificationSink(Protocol):
    def send(self, event) -> None: ...


class ConsoleChannel:
    """Print trigger events to the terminal with rich formatting."""

    STYLES = {
        Condition.ABOVE: "bold green",
        Condition.BELOW: "bold red",
    }

    def __init__(self, console=None):
        self.console = console or Console()

    def send(self, event):
        style = self.STYLES.get(event.condition, "bold")
        arrow = "▲" if event.condition is Condition.ABOVE else "▼"
        self.console.print(f"[{style}]{arrow} ALERT[/] {event.message}", highlight=False)


class FileChannel:
    """Append trigger events to a JSON lines log file."""

    def __init__(self, log_path="data/alerts.jsonl"):
        self.log_path = Path(log_path)

    def send(self, event):
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a") as f:
            f.write(json.dumps(event.to_dict()) + "\n")


class HistoryChannel:
    """Record trigger events in the database's trigger history."""

    def __init__(self, db):
        self.db = db

    def send(self, event):
        self.db.save_trigger(event)
