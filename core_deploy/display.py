"""Console output for a deploy.

Everything the operator reads goes through :class:`Display`; the log stream is
kept for diagnostics.
"""

from typing import Any
import json

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .models import Output, StackEvent, Trigger

STATUS_STYLES = {
    "_COMPLETE": "green",
    "_FAILED": "red",
    "_IN_PROGRESS": "yellow",
}


def _status_style(status: str) -> str:
    for suffix, style in STATUS_STYLES.items():
        if status.endswith(suffix):
            return style
    return "white"


class Display:

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def info(self, message: str) -> None:
        self.console.print(message)

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]{message}[/yellow]")

    def error(self, message: str) -> None:
        self.console.print(f"[bold red]{message}[/bold red]")

    def success(self, message: str) -> None:
        self.console.print(f"[bold green]{message}[/bold green]")

    def diff(self, summary: str) -> None:
        self.console.print(summary, highlight=False, markup=False)

    def event(self, event: StackEvent) -> None:
        style = _status_style(event.status)
        line = f"{event.create_time:<20} [{style}]{event.status:<24}[/{style}] {event.resource_type:<22} {event.logical_resource_id}"
        if event.status_reason and not event.is_complete():
            line += f"  ({escape(event.status_reason)})"
        self.console.print(line, highlight=False)

    def trigger(self, trigger: Trigger) -> None:
        self.console.print(
            f"\nTrigger [bold]{trigger.trigger_name}[/bold] ({trigger.trigger_type}) "
            f"of {trigger.service_name}/{trigger.function_name}"
        )
        for key, value in trigger.trigger_config.items():
            self.console.print(f"  {key}: {self._format(value)}", highlight=False, markup=False)

    def outputs(self, outputs: list[Output]) -> None:
        if not outputs:
            return
        table = Table(title="Stack Outputs")
        table.add_column("Key")
        table.add_column("Value")
        table.add_column("Description")
        for output in outputs:
            table.add_row(output.key, self._format(output.value), output.description or "")
        self.console.print(table)

    @staticmethod
    def _format(value: Any) -> str:
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)
