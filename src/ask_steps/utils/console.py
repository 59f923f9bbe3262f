import sys
import time
from typing import IO

from rich.align import Align
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown


class PlainWriter:
    """Writes streamed text straight to a text stream."""

    def __init__(self, stream: IO[str] | None = None):
        self.stream = stream if stream is not None else sys.stdout
        self._wrote = False

    def __enter__(self) -> "PlainWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def write(self, text: str) -> int:
        self._wrote = True
        return self.stream.write(text)

    def flush(self) -> None:
        self.stream.flush()

    def close(self) -> None:
        if self._wrote:
            self.stream.write("\n")
            self.stream.flush()


class MarkdownWriter:
    """Renders streamed text as Markdown with a rich ``Live`` display."""

    # 20fps max
    min_refresh_interval = 0.05

    def __init__(self, console: Console | None = None):
        self.console = console if console is not None else Console()
        self.buffer = ""
        self._live: Live | None = None
        self._last_refresh_time = 0.0

    def __enter__(self) -> "MarkdownWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _renderable(self, cursor: bool = True):
        text = self.buffer.strip()
        return Align(Markdown(text + "▌" if cursor else text), align="left", pad=False)

    def write(self, text: str) -> int:
        self.buffer += text
        if self._live is None:
            self._live = Live(
                self._renderable(),
                console=self.console,
                refresh_per_second=15,
                vertical_overflow="visible",
                auto_refresh=False,
            )
            self._live.start(refresh=True)
            self._last_refresh_time = time.time()
        current_time = time.time()
        if current_time - self._last_refresh_time > self.min_refresh_interval:
            self._live.update(self._renderable(), refresh=True)
            self._last_refresh_time = current_time
        return len(text)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        if self._live is not None and self._live.is_started:
            self._live.update(self._renderable(cursor=False), refresh=True)
            self._live.stop()
            self.console.print()
        self._live = None


def create_writer(plain: bool, console: Console | None = None) -> PlainWriter | MarkdownWriter:
    if plain:
        return PlainWriter()
    return MarkdownWriter(console)
