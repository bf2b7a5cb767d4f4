import time


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def elapsed_ms(start_ms: int) -> int:
    """Milliseconds since a monotonic_ms() reading, clamped to >= 0."""
    return max(0, monotonic_ms() - int(start_ms))
