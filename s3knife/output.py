from __future__ import annotations

import threading

from rich.console import Console
from rich.text import Text


class Reporter:
    """Serialises progress, error and summary lines from worker threads."""

    def __init__(
        self,
        console: Console | None = None,
        *,
        quiet: bool = False,
        dry_run: bool = False,
    ) -> None:
        self._console = console or Console(highlight=False, soft_wrap=True)
        self._lock = threading.RLock()
        self.quiet = quiet
        self.dry_run = dry_run

    def exclusive(self) -> threading.RLock:
        """Hold this to keep a multi-part write (one ``cat`` object) together."""
        return self._lock

    def line(self, text: str, *, style: str | None = None) -> None:
        with self._lock:
            if style:
                self._console.print(Text(text, style=style), soft_wrap=True)
                return
            # Data lines go out verbatim: rich would expand the tabs.
            self._console.file.write(text + "\n")
            self._console.file.flush()

    def progress(self, text: str) -> None:
        if not self.quiet:
            self.line(text)

    def action(self, code: str, subject: object) -> None:
        self.progress(f"{code} {subject}")

    def error(self, subject: object, exc: BaseException) -> None:
        self.line(f"E {subject}: {exc}", style="red")

    def notice(self, text: str, *, style: str = "yellow") -> None:
        self.line(text, style=style)

    def write_bytes(self, data: bytes) -> None:
        with self._lock:
            target = self._console.file
            target.flush()
            buffer = getattr(target, "buffer", None)
            if buffer is None:
                target.write(data.decode("utf-8", "replace"))
                target.flush()
                return
            buffer.write(data)
            buffer.flush()

    def summary(self, added: int, deleted: int, updated: int, unchanged: int, took: float) -> None:
        rate = (added + deleted + updated) / took if took > 0 else 0.0
        with self._lock:
            self.line("-- summary (dry-run) --" if self.dry_run else "-- summary --")
            self.line(f"{added} added {deleted} deleted {updated} updated {unchanged} unchanged")
            self.line(f"took: {took:.2f}s ({rate:.1f} ops/s)")
            self.line("")
