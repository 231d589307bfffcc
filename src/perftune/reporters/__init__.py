"""Output formats for run reports, revert plans and previews."""

import sys

from rich.console import Console

from perftune.reporters.base import BaseReporter
from perftune.reporters.json_reporter import JsonReporter
from perftune.reporters.plain_reporter import PlainReporter
from perftune.reporters.rich_reporter import RichReporter

REPORTERS: dict[str, type[BaseReporter]] = {
    "rich": RichReporter,
    "plain": PlainReporter,
    "json": JsonReporter,
}


def get_reporter(fmt: str | None, console: Console) -> BaseReporter:
    """Return the reporter for ``fmt``; auto-detect plain output when not a TTY."""
    if fmt is None:
        fmt = "plain" if not sys.stdout.isatty() else "rich"
    return REPORTERS[fmt](console)


__all__ = ["BaseReporter", "JsonReporter", "PlainReporter", "REPORTERS", "RichReporter", "get_reporter"]
