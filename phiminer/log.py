"""Console logging with coloured channel tags and per-thread names."""

from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum

__all__ = [
    "Channel",
    "LogSettings",
    "settings",
    "strip_colors",
    "simple_debug_out",
    "set_thread_name",
    "get_thread_name",
    "log_prefix",
    "emit",
    "note",
    "warn",
    "LOG_JSON",
    "LOG_PER_GPU",
    "LOG_NEXT",
    "LOG_PROGRAMFLOW",
]

# Verbosity option bits.
LOG_JSON = 1
LOG_PER_GPU = 2
LOG_NEXT = 4
LOG_PROGRAMFLOW = 256

# Terminal escape sequences.
RESET = "\x1b[0m"

BLACK = "\x1b[30m"
COAL = "\x1b[90m"
GRAY = "\x1b[37m"
WHITE = "\x1b[97m"
MAROON = "\x1b[31m"
RED = "\x1b[91m"
GREEN = "\x1b[32m"
LIME = "\x1b[92m"
ORANGE = "\x1b[33m"
YELLOW = "\x1b[93m"
NAVY = "\x1b[34m"
BLUE = "\x1b[94m"
VIOLET = "\x1b[35m"
PURPLE = "\x1b[95m"
TEAL = "\x1b[36m"
CYAN = "\x1b[96m"

BLACK_BOLD = "\x1b[1;30m"
COAL_BOLD = "\x1b[1;90m"
GRAY_BOLD = "\x1b[1;37m"
WHITE_BOLD = "\x1b[1;97m"
MAROON_BOLD = "\x1b[1;31m"
RED_BOLD = "\x1b[1;91m"
GREEN_BOLD = "\x1b[1;32m"
LIME_BOLD = "\x1b[1;92m"
ORANGE_BOLD = "\x1b[1;33m"
YELLOW_BOLD = "\x1b[1;93m"
NAVY_BOLD = "\x1b[1;34m"
BLUE_BOLD = "\x1b[1;94m"
VIOLET_BOLD = "\x1b[1;35m"
PURPLE_BOLD = "\x1b[1;95m"
TEAL_BOLD = "\x1b[1;36m"
CYAN_BOLD = "\x1b[1;96m"

ON_BLACK = "\x1b[40m"
ON_COAL = "\x1b[100m"
ON_GRAY = "\x1b[47m"
ON_WHITE = "\x1b[107m"
ON_MAROON = "\x1b[41m"
ON_RED = "\x1b[101m"
ON_GREEN = "\x1b[42m"
ON_LIME = "\x1b[102m"
ON_ORANGE = "\x1b[43m"
ON_YELLOW = "\x1b[103m"
ON_NAVY = "\x1b[44m"
ON_BLUE = "\x1b[104m"
ON_VIOLET = "\x1b[45m"
ON_PURPLE = "\x1b[105m"
ON_TEAL = "\x1b[46m"
ON_CYAN = "\x1b[106m"

BLACK_UNDER = "\x1b[4;30m"
GRAY_UNDER = "\x1b[4;37m"
MAROON_UNDER = "\x1b[4;31m"
GREEN_UNDER = "\x1b[4;32m"
ORANGE_UNDER = "\x1b[4;33m"
NAVY_UNDER = "\x1b[4;34m"
VIOLET_UNDER = "\x1b[4;35m"
TEAL_UNDER = "\x1b[4;36m"


class Channel(Enum):
    """Log channels, each carrying its coloured two-character tag."""

    LOG = GRAY + ".."
    WARN = RED + " X"
    NOTE = BLUE + " i"

    @property
    def tag(self) -> str:
        return self.value


@dataclass
class LogSettings:
    """Process-wide logging options."""

    options: int = 0
    no_color: bool = False
    syslog: bool = False
    stdout: bool = False


settings = LogSettings()

_local = threading.local()


def strip_colors(text: str) -> str:
    """Remove terminal escape sequences (from ESC up to the next 'm')."""
    out: list[str] = []
    skip = False
    for char in text:
        if not skip and char == "\x1b":
            skip = True
        elif skip and char == "m":
            skip = False
        elif not skip:
            out.append(char)
    return "".join(out)


def simple_debug_out(text: str) -> None:
    """Write one log line to stderr (or stdout when configured)."""
    stream = sys.stdout if settings.stdout else sys.stderr
    line = text if not settings.no_color else strip_colors(text)
    try:
        stream.write(line + "\n")
        stream.flush()
    except (OSError, ValueError):
        return


def set_thread_name(name: str) -> None:
    """Name the current thread for log output."""
    _local.name = name
    threading.current_thread().name = name


def get_thread_name() -> str:
    """Return the log name of the current thread."""
    name = getattr(_local, "name", None)
    if name is not None:
        return name
    current = threading.current_thread()
    if current is threading.main_thread():
        return "main"
    return current.name


def log_prefix(channel: Channel) -> str:
    """Return the header that starts every log line of ``channel``."""
    thread_name = get_thread_name()
    if settings.syslog:
        return f"{thread_name:<8} {RESET}"
    stamp = time.strftime("%X", time.localtime())
    return f"{channel.tag} {VIOLET}{stamp} {BLUE}{thread_name:<9} {RESET}"


def emit(channel: Channel, *args: object) -> None:
    """Log the concatenation of ``args`` on ``channel``."""
    simple_debug_out(log_prefix(channel) + "".join(str(arg) for arg in args))


def note(*args: object) -> None:
    """Log an informational message."""
    emit(Channel.NOTE, *args)


def warn(*args: object) -> None:
    """Log a warning."""
    emit(Channel.WARN, *args)