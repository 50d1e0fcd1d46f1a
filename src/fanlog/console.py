"""Rich console formatter for structured log records.

This module renders LogRecords with Rich: level first, coloured, one line
per record by default, with the context appended as compact JSON.
"""

import json
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.text import Text

from .records import LogRecord


class RichConsoleRenderer:
    """Console renderer using Rich for pretty, colourised output."""

    def __init__(
        self,
        console: Console | None = None,
        show_timestamp: bool = True,
        show_host: bool = True,
        single_line: bool = True,
    ) -> None:
        """Initialize the Rich console renderer.

        Args:
        ----
            console: Rich console to print to (stderr by default)
            show_timestamp: Whether to show the local timestamp
            show_host: Whether to show pid and hostname
            single_line: Keep context on the message line instead of indenting it

        """
        self.console = console or Console(stderr=True)
        self.show_timestamp = show_timestamp
        self.show_host = show_host
        self.single_line = single_line

        self.level_styles = {
            "trace": "dim",
            "debug": "cyan",
            "info": "green",
            "notice": "blue",
            "warn": "yellow",
            "error": "red bold",
            "fatal": "red bold reverse",
        }

    @staticmethod
    def translate_time(timestamp: str) -> str:
        """Convert an ISO-8601 UTC timestamp to local ``YYYY-MM-DD HH:MM:SS.mmm +zzzz``."""
        try:
            moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00")).astimezone()
        except ValueError:
            return timestamp
        return f"{moment.strftime('%Y-%m-%d %H:%M:%S')}.{moment.microsecond // 1000:03d} {moment.strftime('%z')}"

    def format(self, record: LogRecord) -> Text:
        """Build the main line for a record."""
        wire = record.to_wire()
        level = wire["level"]
        style = self.level_styles.get(level, "white")

        line = Text()
        line.append(f"{level.upper():<6}", style=style)

        if self.show_timestamp and wire["time"]:
            line.append(f" [{self.translate_time(wire['time'])}]", style="dim")

        if self.show_host:
            line.append(f" ({wire['pid']} on {wire['host']})", style="dim blue")

        line.append(": ")
        line.append(wire["msg"], style="bold")

        context = wire.get("data")
        if context and self.single_line:
            line.append(" ")
            line.append(json.dumps(context, default=repr, ensure_ascii=False), style="dim cyan")

        return line

    def render(self, record: LogRecord) -> None:
        """Print a record to the console."""
        self.console.print(self.format(record), soft_wrap=True, highlight=False)

        context = record.to_wire().get("data")
        if context and not self.single_line:
            self._render_extra_fields(context, indent=2)

    def _render_extra_fields(self, fields: dict[str, Any], indent: int = 0) -> None:
        """Render context fields as an indented tree."""
        indent_str = " " * indent
        for key, value in fields.items():
            label = Text(f"{indent_str}{key}:", style="dim cyan")
            if isinstance(value, dict):
                self.console.print(label, highlight=False)
                self._render_extra_fields(value, indent + 2)
            elif key == "stack" and isinstance(value, str):
                self.console.print(label, highlight=False)
                self.console.print(Text(value.rstrip(), style="dim"), highlight=False)
            else:
                self.console.print(label, Text(str(value)), highlight=False)
