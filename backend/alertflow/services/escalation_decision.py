"""
升级判定 (Escalation Decision)

根据阈值策略和违规账本判断一次违规是否需要升级：
窗口（escalation_delay 分钟）内该阈值所有设备的违规次数达到 escalation_threshold 即升级。
冷却检查与计数窗口是两个独立约束，由引擎门面同时校验。

Decides from the threshold policy and the breach ledger whether a breach
warrants escalation: the breach count of the threshold across all devices
within escalation_delay minutes must reach escalation_threshold. Cooldown is a
separate constraint; the engine façade enforces both.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from alertflow.core.clock import Clock, SystemClock, ensure_aware
from alertflow.core.config import settings
from alertflow.schemas.threshold import Threshold
from alertflow.services.breach_ledger import BreachLedger

logger = logging.getLogger(__name__)


class EscalationDecision:

    def __init__(self, ledger: BreachLedger, clock: Optional[Clock] = None) -> None:
        self.ledger = ledger
        self.clock = clock or SystemClock()

    def should_escalate(self, threshold: Threshold) -> bool:
        if not threshold.auto_escalate:
            return False
        delay = threshold.escalation_delay or settings.default_escalation_delay_minutes
        required = threshold.escalation_threshold or settings.default_escalation_threshold
        since = self.clock.now() - timedelta(minutes=delay)
        count = self.ledger.count_since(f"{threshold.id}:*", since)
        logger.debug(
            "Threshold %s: %d breach(es) in last %d min, %d required", threshold.id, count, delay, required
        )
        return count >= required

    def in_cooldown(self, threshold: Threshold, last_escalated_at: Optional[datetime]) -> bool:
        if last_escalated_at is None or threshold.cooldown_seconds <= 0:
            return False
        elapsed = (self.clock.now() - ensure_aware(last_escalated_at)).total_seconds()
        return elapsed < threshold.cooldown_seconds
