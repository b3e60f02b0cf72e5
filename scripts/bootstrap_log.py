"""
Log sink helpers shared by the schema bootstrap scripts.

Every administrative call accepts an optional ``log`` callable taking one
string (``print``, ``tqdm.write``, a list's ``append`` in tests). Messages are
given as a format string plus arguments and only rendered when a sink exists.
"""

from __future__ import annotations

import sys
from datetime import datetime
from typing import Callable, Optional

LogFunc = Callable[[str], None]


def _stderr(message: str) -> None:
    print(message, file=sys.stderr)


def render(fmt: str, *args: object) -> str:
    return fmt % args if args else fmt


def log_message(log: Optional[LogFunc], fmt: str, *args: object) -> None:
    if log is None:
        return
    log(render(fmt, *args))


def log_error(log: Optional[LogFunc], fmt: str, *args: object) -> None:
    (log or _stderr)(render(fmt, *args))


def timestamped(message: str) -> str:
    return f"[{datetime.now().strftime('%H:%M:%S')}] {message}"


def banner(title: str, body: str = "") -> str:
    rule = "=" * 20
    return f"\n{rule}\n{title}{': ' + body if body else ''}\n{rule}"
