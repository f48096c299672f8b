"""
时钟抽象 (Clock Abstraction)

窗口、冷却和超时判断都通过注入的时钟取当前时间，便于测试时固定时间。
Windowing, cooldown and timeout decisions read time through an injected clock
so tests can pin it.
"""
from datetime import datetime, timezone

UTC = timezone.utc


class Clock:
    """时间源接口 (Time source interface)"""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """系统 UTC 时钟 (System UTC clock)"""

    def now(self) -> datetime:
        return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes (e.g. read back from SQLite) are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
