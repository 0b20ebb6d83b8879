"""Terminal output helpers shared by the skein commands."""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Mapping, Sequence
from typing import Literal

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

OUTPUT_CHOICES = ("auto", "plain", "rich")
OUTPUT_ENV_VAR = "SKEIN_OUTPUT"
OutputMode = Literal["plain", "rich"]

STATUS_STYLES: dict[str, str] = {
    "draft": "dim",
    "open": "green",
    "progress": "yellow",
    "review": "cyan",
    "complete": "blue",
    "archived": "dim",
    "closed": "blue",
    "deleted": "red",
}


def add_output_mode_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        choices=OUTPUT_CHOICES,
        help=f"Output mode: auto (default), plain, or rich. Env: {OUTPUT_ENV_VAR}.",
    )


def _choice(raw: str | None, source: str) -> str | None:
    value = (raw or "").strip().lower()
    if not value:
        return None
    if value in OUTPUT_CHOICES:
        return value
    raise ValueError(
        f"invalid {source} value {raw!r}; expected one of: {', '.join(OUTPUT_CHOICES)}"
    )


def _stdout_is_tty() -> bool:
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError, ValueError):
        return False


def resolve_output_mode(
    requested: str | None = None,
    *,
    env: Mapping[str, str] | None = None,
    is_tty: bool | None = None,
) -> OutputMode:
    """Pick plain or rich output.

    ``--output`` wins over SKEIN_OUTPUT; ``auto`` means rich on a TTY.
    """
    environ = os.environ if env is None else env
    selected = _choice(requested, "--output") or _choice(
        environ.get(OUTPUT_ENV_VAR), OUTPUT_ENV_VAR
    )
    if selected in (None, "auto"):
        tty = _stdout_is_tty() if is_tty is None else is_tty
        return "rich" if tty else "plain"
    return "rich" if selected == "rich" else "plain"


def make_console(mode: OutputMode, *, stderr: bool = False) -> Console:
    return Console(
        file=sys.stderr if stderr else sys.stdout,
        force_terminal=mode == "rich",
        no_color=mode != "rich",
        highlight=False,
    )


def status_text(status: str) -> Text:
    return Text(status, style=STATUS_STYLES.get(status, ""))


def render_table(
    console: Console,
    *,
    headers: Sequence[str],
    rows: Sequence[Sequence[str | Text]],
    title: str | None = None,
    no_wrap_columns: Sequence[int] = (),
) -> None:
    table = Table(title=title, title_justify="left")
    for idx, header in enumerate(headers):
        table.add_column(header, no_wrap=idx in no_wrap_columns)
    for row in rows:
        table.add_row(*row)
    console.print(table)


def render_panel(console: Console, body: str, *, title: str | None = None) -> None:
    console.print(Panel(body, title=title, title_align="left"))


def render_markdown(console: Console, body: str, *, title: str | None = None) -> None:
    console.print(Panel(Markdown(body), title=title, title_align="left"))
