"""
Rich progress bars for upload legs
"""

from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TextColumn, TimeElapsedColumn

from image_upload_module.core.progress import ProgressEvent, ProgressSink


class SpinnerManager:
    """Renders one progress bar per upload leg and prints status lines."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    @contextmanager
    def upload_progress(self, legs: list[str], style: str = "green") -> Iterator[ProgressSink]:
        """Yield a progress sink that drives one bar per leg."""
        with Progress(
            TextColumn(f"[{style}]{{task.description: <14}}[/{style}]"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            tasks: dict[str, TaskID] = {leg: progress.add_task(leg, total=100) for leg in legs}

            def sink(event: ProgressEvent) -> None:
                task = tasks.get(event.leg)
                if task is None:
                    task = tasks[event.leg] = progress.add_task(event.leg, total=100)
                progress.update(task, completed=event.percent)

            yield sink

    def print_success(self, message: str):
        self.console.print(f"✅ {message}")

    def print_error(self, message: str):
        self.console.print(f"❌ {message}")

    def print_info(self, message: str):
        self.console.print(f"ℹ️ {message}")

    def print_warning(self, message: str):
        self.console.print(f"⚠️ {message}")


spinner_manager = SpinnerManager()
