import time

def now_ms() -> int:
    """Server clock as integer epoch milliseconds."""
    return int(time.time() * 1000)
