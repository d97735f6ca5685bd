# helpers.py
# Small, frequently used helpers shared by the resolver, the pipeline and the commands

import re
from typing import Optional

from extraconfig import HUMANIZE_PRECISION

WS_REGEX = re.compile(r"\s+")

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")


def humanize_bytes(size: int, precision: int = HUMANIZE_PRECISION) -> str:
    """
    Humanize a byte count using binary steps (1024) and short unit names.
    Ergo: humanize_bytes(16_000_000) -> "15.26 MB"
    """
    value = float(size)
    for unit in SIZE_UNITS:
        if value < 1024.0:
            return f"{value:.{precision}f} {unit}"
        value /= 1024.0
    return "NaN"


def humanize_elapsed(seconds: float) -> str:
    """Render a wall-clock duration the way the process time line shows it."""
    ms = seconds * 1000.0
    if ms < 1000:
        return f"{ms:.0f} ms"
    return f"{seconds:.2f} s"


def first_token(content: Optional[str]) -> Optional[str]:
    """First whitespace-delimited token of a message, or None for empty content."""
    if not content or not content.strip():
        return None
    return WS_REGEX.split(content.strip(), maxsplit=1)[0]
