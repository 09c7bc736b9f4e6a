"""Wall clock used for cache timestamps."""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]
"""Returns the current time as integer Unix seconds."""


def system_clock() -> int:
    return int(time.time())
