"""
违规账本 (Breach Ledger)

按 "阈值ID:设备ID" 维护有界的违规事件序列，回答"某键自某时刻以来违规了多少次"。
每个键最多保留最近 N 条（默认 100），严格先进先出，不做基于时间的淘汰。
账本只存在于进程内存中，重启后清空。

Keeps a bounded series of breach events per "threshold_id:device_id" key and
answers "how many breaches of key K since T". Each key keeps the most recent N
records (100 by default), strict FIFO, no time-based eviction. Process memory
only; cleared on restart.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime

from alertflow.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreachRecord:
    timestamp: datetime
    value: float
    threshold_id: int


def ledger_key(threshold_id: int, device_id: str) -> str:
    return f"{threshold_id}:{device_id}"


class BreachLedger:
    """每键一个 deque 和一把锁；键的创建依赖 dict.setdefault 的原子性，没有全局锁。"""

    def __init__(self, capacity: int | None = None) -> None:
        self.capacity = capacity or settings.ledger_capacity
        self._series: dict[str, deque[BreachRecord]] = {}
        self._locks: dict[str, threading.Lock] = {}

    def _slot(self, key: str) -> tuple[deque[BreachRecord], threading.Lock]:
        lock = self._locks.setdefault(key, threading.Lock())
        series = self._series.setdefault(key, deque(maxlen=self.capacity))
        return series, lock

    def record(self, key: str, value: float, timestamp: datetime, threshold_id: int) -> None:
        series, lock = self._slot(key)
        with lock:
            series.append(BreachRecord(timestamp=timestamp, value=value, threshold_id=threshold_id))

    def range_since(self, key: str, since: datetime) -> list[BreachRecord]:
        series = self._series.get(key)
        lock = self._locks.get(key)
        if series is None or lock is None:
            return []
        with lock:
            return [r for r in series if r.timestamp >= since]

    def count_since(self, pattern: str, since: datetime) -> int:
        """
        统计窗口内违规次数 (Count breaches in the window)

        pattern 为精确键，或 "阈值ID:*" 表示该阈值下所有设备。
        """
        if pattern.endswith(":*"):
            prefix = pattern[:-1]
            keys = [k for k in list(self._series) if k.startswith(prefix)]
        else:
            keys = [pattern]
        return sum(len(self.range_since(k, since)) for k in keys)

    def forget_threshold(self, threshold_id: int) -> int:
        """删除阈值下所有键，返回删除的键数 (Drop every key of a threshold)."""
        prefix = f"{threshold_id}:"
        removed = 0
        for key in [k for k in list(self._series) if k.startswith(prefix)]:
            lock = self._locks.get(key)
            if lock is None:
                continue
            with lock:
                self._series.pop(key, None)
            self._locks.pop(key, None)
            removed += 1
        if removed:
            logger.info("Forgot %d ledger keys for threshold %s", removed, threshold_id)
        return removed

    def size(self, key: str) -> int:
        series = self._series.get(key)
        return len(series) if series is not None else 0
