#!/usr/bin/env python3
import time
from typing import Callable


def wait_for(
        condition: Callable[[], bool],
        retries: int,
        interval: float,
        sleep: Callable[[float], None] = time.sleep,
) -> tuple[bool, int]:
    """
    Poll condition until it returns True or retries polls are used up.

    Sleeps interval seconds between polls, never after the last one.
    Returns (met, polls_used).
    """
    retries = max(1, int(retries))
    for attempt in range(1, retries + 1):
        if condition():
            return True, attempt
        if attempt < retries:
            sleep(interval)
    return False, retries
