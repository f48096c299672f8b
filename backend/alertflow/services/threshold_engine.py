"""
阈值引擎门面 (Threshold Engine Façade)

样本 → 评估 → 违规账本 → 升级判定 → 动作 → 升级链执行 → 统计。
阈值和升级链从配置存储加载并缓存，按 config_refresh_seconds 与各阈值 check_interval 中较短者刷新。
同一 "阈值:设备" 的样本在一把 asyncio 锁下串行处理；每个动作相互隔离，单个失败不影响其他动作。

Sample → evaluator → ledger → decision → actions → chain runner → statistics.
Thresholds and chains are loaded from the configuration store, cached and
refreshed every config_refresh_seconds or sooner when a threshold's
check_interval is shorter. Samples of the same threshold:device
key are serialised under one asyncio lock; every action is isolated so one
failure never blocks the others.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from alertflow.core.clock import Clock, SystemClock
from alertflow.core.config import settings
from alertflow.core.locks import KeyedLocks
from alertflow.schemas.escalation import EscalationChain, EscalationContext
from alertflow.schemas.threshold import (
    AlertMetric,
    CheckResult,
    CreateTicketAction,
    EscalateAction,
    NotifyAction,
    RunScriptAction,
    Threshold,
    UpdateTicketAction,
)
from alertflow.services.breach_ledger import BreachLedger, ledger_key
from alertflow.services.chain_runner import EscalationChainRunner
from alertflow.services.escalation_decision import EscalationDecision
from alertflow.services.interfaces import ConfigurationStore, NotificationDispatcher, TicketRepository
from alertflow.services.threshold_evaluator import evaluate

logger = logging.getLogger(__name__)

# 阈值严重程度 → 工单优先级
SEVERITY_TO_PRIORITY = {
    "critical": "critical",
    "high": "high",
    "warning": "high",
    "medium": "medium",
    "low": "low",
    "info": "medium",
}


class ThresholdEngine:
    """阈值引擎 (Threshold engine)"""

    def __init__(
        self,
        config_store: ConfigurationStore,
        ledger: BreachLedger,
        runner: EscalationChainRunner,
        tickets: Optional[TicketRepository] = None,
        dispatchers: Optional[Dict[str, NotificationDispatcher]] = None,
        decision: Optional[EscalationDecision] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config_store = config_store
        self.ledger = ledger
        self.runner = runner
        self.tickets = tickets
        self.dispatchers = dispatchers or {}
        self.clock = clock or SystemClock()
        self.decision = decision or EscalationDecision(ledger, self.clock)
        self.thresholds: Dict[int, Threshold] = {}
        self.chains: Dict[int, EscalationChain] = {}
        self.last_escalated_at: Dict[int, datetime] = {}
        self._loaded_at: Optional[datetime] = None
        self._locks = KeyedLocks()

    # ------------------------------------------------------------------
    # 配置缓存 (Configuration cache)
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """重新加载阈值与升级链；已删除或停用的阈值清理其违规账本。"""
        thresholds = await self.config_store.list_active_thresholds()
        chains = await self.config_store.list_chains()

        fresh = {t.id: t for t in thresholds if t.is_active}
        for threshold_id in set(self.thresholds) - set(fresh):
            self.ledger.forget_threshold(threshold_id)
            self.last_escalated_at.pop(threshold_id, None)
        self.thresholds = fresh
        self.chains = {c.id: c for c in chains}
        self.runner.load_chains(chains)
        self._loaded_at = self.clock.now()
        logger.info("Loaded %d active threshold(s) and %d chain(s)", len(fresh), len(chains))

    async def _ensure_config(self) -> None:
        if self._loaded_at is None:
            await self.refresh()
            return
        age = (self.clock.now() - self._loaded_at).total_seconds()
        if age >= self.refresh_interval():
            await self.refresh()

    def refresh_interval(self) -> int:
        """缓存有效期：全局刷新间隔与各阈值 check_interval 中的最小值 (seconds)."""
        intervals = [t.check_interval for t in self.thresholds.values() if t.check_interval > 0]
        return min([settings.config_refresh_seconds, *intervals])

    # ------------------------------------------------------------------
    # 样本处理 (Sample handling)
    # ------------------------------------------------------------------

    async def on_sample(self, sample: AlertMetric) -> CheckResult:
        """
        处理一个指标样本 (Handle one metric sample)

        Args:
            sample: 外部监控源推送的指标样本
        Returns:
            CheckResult: 违规的阈值、执行的动作以及启动的升级执行
        """
        await self._ensure_config()
        result = CheckResult(breached=False)

        for threshold in list(self.thresholds.values()):
            if not self._in_scope(threshold, sample):
                continue
            key = ledger_key(threshold.id, sample.device_id)
            async with self._locks.hold(key):
                await self._check_threshold(threshold, sample, key, result)

        result.breached = bool(result.thresholds)
        return result

    @staticmethod
    def _in_scope(threshold: Threshold, sample: AlertMetric) -> bool:
        client_id = sample.metadata.get("client_id")
        return not (threshold.client_id and client_id and str(client_id) != threshold.client_id)

    async def _check_threshold(
        self, threshold: Threshold, sample: AlertMetric, key: str, result: CheckResult
    ) -> None:
        now = self.clock.now()
        threshold.last_checked_at = now
        evaluation = evaluate(threshold, sample)
        if not evaluation.breached:
            return

        result.thresholds.append(threshold.id)
        self.ledger.record(key, sample.value, now, threshold.id)
        stats = threshold.statistics
        stats.total_triggers += 1
        stats.last_triggered = now
        stats.last_breached_value = sample.value
        threshold.breach_count += 1
        threshold.last_breach_at = now
        logger.info("Threshold %s (%s) breached: %s", threshold.id, threshold.name, evaluation.message)

        if self.decision.should_escalate(threshold):
            if self.decision.in_cooldown(threshold, self.last_escalated_at.get(threshold.id)):
                logger.info("Threshold %s escalation suppressed by cooldown", threshold.id)
            else:
                self.last_escalated_at[threshold.id] = now
                await self._escalate(threshold, sample, key, result)

        await self._save_statistics(threshold)

    async def _escalate(self, threshold: Threshold, sample: AlertMetric, key: str, result: CheckResult) -> None:
        """按顺序执行动作：创建工单 → 更新工单 → 通知 → 升级链 → 脚本（不支持）。"""
        actions: List[str] = []
        all_ok = True

        ticket_id = sample.metadata.get("ticket_id")
        create_actions = [a for a in threshold.actions if isinstance(a, CreateTicketAction)]
        if threshold.create_ticket or create_actions:
            extra: Dict[str, Any] = {}
            for action in create_actions:
                extra.update(action.config.new_ticket_data)
            created = await self._create_ticket(threshold, sample, extra)
            if created is None:
                all_ok = False
                actions.append("Failed to create ticket")
            else:
                ticket_id = created
                actions.append(f"Created ticket: {created}")

        for action in threshold.actions:
            if isinstance(action, UpdateTicketAction):
                ok = await self._update_ticket(ticket_id, action.config.ticket_updates)
                all_ok = all_ok and ok
                actions.append(f"Updated ticket: {ticket_id}" if ok else "Failed to update ticket")

        notify_ok, notify_actions = await self._send_notifications(threshold, sample)
        all_ok = all_ok and notify_ok
        actions.extend(notify_actions)

        chains: List[EscalationChain] = []
        wants_chain = threshold.escalation_chain_id is not None or any(
            isinstance(a, EscalateAction) for a in threshold.actions
        )
        if wants_chain:
            try:
                context = self._context(threshold, sample, ticket_id, key)
            except ValueError as e:
                logger.error("Threshold %s: invalid escalation context: %s", threshold.id, e)
                all_ok = False
                actions.append("Failed to build escalation context")
            else:
                chains = self._chains_for(threshold, sample, context)
        for chain in chains:
            try:
                execution = await self.runner.start(chain, context)
            except Exception as e:
                logger.error("Failed to start escalation chain %s: %s", chain.id, e)
                execution = None
                all_ok = False
                actions.append(f"Failed to start escalation chain: {chain.name}")
            else:
                if execution is None:
                    actions.append(f"Escalation chain not started: {chain.name}")
                else:
                    result.executions.append(execution.id)
                    actions.append(f"Started escalation chain: {chain.name} (execution {execution.id})")

        for action in threshold.actions:
            if isinstance(action, RunScriptAction):
                logger.warning(
                    "Threshold %s: run_script action (script %s) is not supported", threshold.id,
                    action.config.script_id,
                )
                actions.append(f"Skipped unsupported script action: {action.config.script_id}")

        stats = threshold.statistics
        stats.total_escalations += 1
        if all_ok:
            stats.successful_escalations += 1
        stats.success_rate = stats.successful_escalations / stats.total_escalations
        logger.info("Escalated threshold %s (%s): %s", threshold.id, threshold.name, ", ".join(actions))
        result.actions.extend(actions)

    # ------------------------------------------------------------------
    # 动作 (Actions)
    # ------------------------------------------------------------------

    async def _create_ticket(self, threshold: Threshold, sample: AlertMetric, extra: Dict[str, Any]) -> Optional[str]:
        if self.tickets is None:
            logger.warning("Threshold %s wants a ticket but no ticket repository is configured", threshold.id)
            return None
        now = self.clock.now()
        fields: Dict[str, Any] = {
            "ticket_number": f"ALERT-{int(now.timestamp() * 1000)}",
            "title": f"Alert: {threshold.name} - {sample.device_name or sample.device_id}",
            "description": (
                "Automated alert triggered:\n\n"
                f"Threshold: {threshold.name}\nDevice: {sample.device_name or sample.device_id}\n"
                f"Metric: {sample.metric_type}\nValue: {sample.value}\n"
                f"Threshold: {threshold.value}\nOperator: {threshold.operator}\n"
                f"Severity: {threshold.severity}"
            ),
            "source": "automation",
            "client_name": sample.metadata.get("client_name") or "System",
            "device_id": sample.device_id,
            "device_name": sample.device_name,
            "priority": SEVERITY_TO_PRIORITY.get(threshold.severity, "medium"),
            "status": "open",
            "extra": {
                "alert_threshold_id": threshold.id,
                "metric_value": sample.value,
                "timestamp": sample.timestamp.isoformat(),
            },
        }
        fields.update(extra)
        try:
            return str(await self.tickets.create_ticket(fields))
        except Exception as e:
            logger.error("Failed to create ticket for threshold %s: %s", threshold.id, e)
            return None

    async def _update_ticket(self, ticket_id: Optional[str], updates: Dict[str, Any]) -> bool:
        if self.tickets is None or not ticket_id:
            logger.warning("update_ticket action skipped: no ticket to update")
            return False
        try:
            await self.tickets.update_ticket(ticket_id, updates)
            return True
        except Exception as e:
            logger.error("Failed to update ticket %s: %s", ticket_id, e)
            return False

    async def _send_notifications(self, threshold: Threshold, sample: AlertMetric) -> tuple[bool, List[str]]:
        """阈值渠道与 notify 动作的渠道合并发送 (Threshold channels plus notify actions)."""
        targets: Dict[str, List[str]] = {}
        for channel in threshold.notification_channels:
            targets.setdefault(channel, []).extend(threshold.notification_recipients)
        for action in threshold.actions:
            if isinstance(action, NotifyAction):
                for channel in action.config.notification_channels:
                    targets.setdefault(channel, []).extend(action.config.recipients)

        subject = f"Alert: {threshold.name}"
        body = (
            f"Device: {sample.device_name or sample.device_id}\nMetric: {sample.metric_type}\n"
            f"Value: {sample.value} (Threshold: {threshold.value})\nSeverity: {threshold.severity}\n"
            f"{settings.frontend_url}/alerts/{threshold.id}"
        )

        all_ok = True
        actions: List[str] = []
        for channel, recipients in targets.items():
            recipients = list(dict.fromkeys(recipients))
            if channel == "email" and not recipients:
                logger.info("Threshold %s: email channel without recipients, skipped", threshold.id)
                continue
            dispatcher = self.dispatchers.get(channel)
            if dispatcher is None:
                logger.warning("Threshold %s: no dispatcher for channel '%s'", threshold.id, channel)
                all_ok = False
                actions.append(f"Failed to send {channel} notification")
                continue
            try:
                ok = await dispatcher.notify(channel, recipients, subject, body, threshold.severity)
            except Exception as e:
                logger.error("Threshold %s: %s notification raised: %s", threshold.id, channel, e)
                ok = False
            all_ok = all_ok and ok
            if not ok:
                actions.append(f"Failed to send {channel} notification")
            elif recipients:
                actions.append(f"Sent {channel} notification to {len(recipients)} recipient(s)")
            else:
                actions.append(f"Sent {channel} notification")
        return all_ok, actions

    def _chains_for(
        self, threshold: Threshold, sample: AlertMetric, context: EscalationContext
    ) -> List[EscalationChain]:
        """
        选择升级链 (Pick escalation chains)

        阈值关联的链、escalate 动作指定的链；escalate 动作未指定时选择匹配告警类型和严重程度的最高优先级链。
        """
        chain_ids: List[int] = []
        if threshold.escalation_chain_id is not None:
            chain_ids.append(threshold.escalation_chain_id)
        wants_best_match = False
        for action in threshold.actions:
            if isinstance(action, EscalateAction):
                if action.config.escalation_chain_id is not None:
                    chain_ids.append(action.config.escalation_chain_id)
                else:
                    wants_best_match = True

        chosen: List[EscalationChain] = []
        for chain_id in dict.fromkeys(chain_ids):
            chain = self.chains.get(chain_id)
            if chain is None or not chain.is_active:
                logger.warning("Threshold %s: escalation chain %s is missing or inactive", threshold.id, chain_id)
                continue
            chosen.append(chain)

        if wants_best_match and not chosen:
            best = self.find_applicable_chain(threshold, sample, context)
            if best is not None:
                chosen.append(best)
            else:
                logger.warning("Threshold %s: no applicable escalation chain", threshold.id)
        return chosen

    def find_applicable_chain(
        self, threshold: Threshold, sample: AlertMetric, context: Optional[EscalationContext] = None
    ) -> Optional[EscalationChain]:
        """
        最高优先级的匹配链；优先级规则要求的等待时间未到时跳过该链。
        Highest-priority matching chain. A chain whose priority bracket for the
        context priority asks for more elapsed minutes than have passed is skipped.
        """
        candidates = sorted(
            (c for c in self.chains.values() if c.is_active),
            key=lambda c: (-c.priority, c.id),
        )
        for chain in candidates:
            if not (
                chain.applies_to(threshold.type.value, threshold.severity)
                or chain.applies_to(sample.metric_type, threshold.severity)
            ):
                continue
            if context is not None:
                bracket = chain.priority_rules.bracket_for(context.priority)
                if bracket and context.elapsed_minutes < bracket.escalate_after_minutes:
                    logger.debug(
                        "Chain %s waits %s min for %s priority, %.1f elapsed",
                        chain.id, bracket.escalate_after_minutes, context.priority, context.elapsed_minutes,
                    )
                    continue
            return chain
        return None

    def _elapsed_minutes(self, threshold: Threshold, key: str) -> float:
        """判定窗口内该设备最早一次违规至今的分钟数 (Minutes since the oldest breach in the window)."""
        now = self.clock.now()
        delay = threshold.escalation_delay or settings.default_escalation_delay_minutes
        records = self.ledger.range_since(key, now - timedelta(minutes=delay))
        if not records:
            return 0.0
        oldest = min(r.timestamp for r in records)
        return max(0.0, (now - oldest).total_seconds() / 60)

    def _context(
        self, threshold: Threshold, sample: AlertMetric, ticket_id: Optional[str], key: str
    ) -> EscalationContext:
        return EscalationContext(
            trigger_reason=f"Threshold '{threshold.name}' breached: {sample.summary()}",
            ticket_id=ticket_id,
            alert_id=sample.metadata.get("alert_id"),
            current_assignee_id=sample.metadata.get("assignee_id"),
            failure_count=threshold.breach_count,
            elapsed_minutes=self._elapsed_minutes(threshold, key),
            severity=threshold.severity,
            priority=SEVERITY_TO_PRIORITY.get(threshold.severity, "medium"),
            alert_type=sample.metric_type or threshold.type.value,
            client_name=sample.metadata.get("client_name"),
            device_id=sample.device_id,
            device_name=sample.device_name,
            threshold_id=threshold.id,
        )

    async def _save_statistics(self, threshold: Threshold) -> None:
        try:
            await self.config_store.save_threshold_statistics(threshold)
        except Exception as e:
            logger.error("Failed to persist statistics of threshold %s: %s", threshold.id, e)
