import time


def now() -> int:
    """Current UNIX time in whole seconds."""
    return int(time.time())
