"""
升级链执行器 (Escalation Chain Runner)

按级别顺序推进一次升级执行的状态机：active → completed | failed | cancelled。
每进入一级：解析处理人 → 记录级别历史 → 分配工单 → 发送通知 → 启动等待计时器。
计时器到期、人工处理、级别失败、手动升级和取消都在同一把执行锁下串行处理；
对已终结执行的任何转换都会被忽略并记录 debug 日志。

Drives the state machine of one escalation execution level by level:
active → completed | failed | cancelled. Entering a level resolves an assignee,
records the level history, assigns the ticket, sends notifications and arms
the wait timer. Timer expiry, resolution, level failure, manual escalation and
cancellation are serialised under one per-execution lock; transitions on a
terminal execution are ignored and logged at debug level.
"""
from __future__ import annotations

import asyncio
import logging
import operator as op
import re
from datetime import datetime
from typing import Awaitable, Callable, Optional

from alertflow.core.clock import Clock, SystemClock, ensure_aware
from alertflow.core.exceptions import DispatchFailure, ResolutionFailure, StateConflict
from alertflow.core.locks import KeyedLocks
from alertflow.schemas.escalation import (
    ChainHistoryEntry,
    EscalationChain,
    EscalationContext,
    EscalationExecution,
    EscalationLevel,
    ExecutionMetadata,
    ExecutionStatus,
    LevelHistoryEntry,
    LevelOutcome,
    TriggerType,
)
from alertflow.services.assignment_resolver import AssignmentResolver, AssignmentState, priority_skip
from alertflow.services.interfaces import (
    ConfigurationStore,
    EscalationRepository,
    NotificationDispatcher,
    TicketRepository,
)

logger = logging.getLogger(__name__)

# 严重程度等级，用于 severity_level 触发条件比较
SEVERITY_RANK = {
    "info": 0,
    "low": 1,
    "medium": 2,
    "warning": 3,
    "high": 4,
    "error": 4,
    "critical": 5,
}

CUSTOM_OPERATORS = {
    ">": op.gt,
    ">=": op.ge,
    "<": op.lt,
    "<=": op.le,
    "==": op.eq,
    "!=": op.ne,
}
_CUSTOM_CONDITION_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(>=|<=|==|!=|>|<)\s*(-?\d+(?:\.\d+)?)\s*$")

DEFAULT_SUBJECT = "[{severity}] Escalation level {level}: {level_name}"
DEFAULT_ASSIGNMENT_SUBJECT = "Ticket {ticket_id} assigned to you (level {level})"
DEFAULT_BODY = (
    "Ticket {ticket_id} has been escalated to {assignee} (level {level}, {level_name}).\n"
    "Reason: {reason}\nPriority: {priority}\nDevice: {device_name}\nClient: {client_name}"
)


class _SafeDict(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def render_template(text: str, default: str, values: dict) -> str:
    """模板占位符替换，模板格式错误时回退到默认模板 (Falls back to the default on a malformed template)."""
    try:
        return (text or default).format_map(_SafeDict(values))
    except (ValueError, IndexError, KeyError) as e:
        logger.warning("Malformed notification template %r: %s", text, e)
        return default.format_map(_SafeDict(values))


def severity_rank(severity: Optional[str]) -> int:
    return SEVERITY_RANK.get((severity or "").lower(), 0)


def evaluate_custom_condition(condition: str, failure_count: int, elapsed_minutes: float) -> bool:
    """
    简单比较表达式 (Simple comparison expression)

    仅支持 "{failure_count} >= 3" 这类占位符替换后的数字比较，不支持任意脚本。
    """
    text = (condition or "").replace("{failure_count}", str(failure_count))
    text = text.replace("{elapsed_minutes}", str(round(elapsed_minutes, 3)))
    match = _CUSTOM_CONDITION_RE.match(text)
    if not match:
        logger.warning("Unsupported custom condition: %r", condition)
        return False
    lhs, symbol, rhs = match.groups()
    return CUSTOM_OPERATORS[symbol](float(lhs), float(rhs))


def _minutes_between(start: datetime, end: datetime) -> float:
    return (ensure_aware(end) - ensure_aware(start)).total_seconds() / 60.0


class EscalationChainRunner:
    """升级链执行器 (Escalation chain runner)"""

    def __init__(
        self,
        config_store: ConfigurationStore,
        executions: EscalationRepository,
        tickets: Optional[TicketRepository] = None,
        dispatchers: Optional[dict[str, NotificationDispatcher]] = None,
        resolver: Optional[AssignmentResolver] = None,
        clock: Optional[Clock] = None,
        arm_timers: bool = True,
    ) -> None:
        self.config_store = config_store
        self.executions = executions
        self.tickets = tickets
        self.dispatchers = dispatchers or {}
        self.resolver = resolver or AssignmentResolver()
        self.clock = clock or SystemClock()
        self.arm_timers = arm_timers
        self.chains: dict[int, EscalationChain] = {}
        self._locks = KeyedLocks()
        self._timers: dict[int, asyncio.Task] = {}

    def load_chains(self, chains: list[EscalationChain]) -> None:
        self.chains = {chain.id: chain for chain in chains}

    # ------------------------------------------------------------------
    # 公开操作 (Public operations)
    # ------------------------------------------------------------------

    async def start(self, chain: EscalationChain, context: EscalationContext) -> Optional[EscalationExecution]:
        """启动一次升级执行；首级触发条件不满足时返回 None。"""
        levels = chain.ordered_levels()
        if not levels:
            logger.warning("Escalation chain %s (%s) has no levels", chain.id, chain.name)
            return None
        self.chains[chain.id] = chain

        if context.ticket_id:
            existing = await self.executions.find_active_execution(context.ticket_id, chain.id)
            if existing is not None:
                logger.info(
                    "Ticket %s already has active execution %s on chain %s",
                    context.ticket_id, existing.id, chain.id,
                )
                return existing

        now = self.clock.now()
        start_index = min(priority_skip(chain.priority_rules, context.priority), len(levels) - 1)
        execution = EscalationExecution(
            chain_id=chain.id,
            ticket_id=context.ticket_id,
            alert_id=context.alert_id,
            current_level=start_index,
            metadata=ExecutionMetadata(
                trigger_reason=context.trigger_reason,
                original_assignee=context.current_assignee_id,
                priority=context.priority,
                severity=context.severity,
                alert_type=context.alert_type,
                client_name=context.client_name,
                device_id=context.device_id,
                device_name=context.device_name,
                threshold_id=context.threshold_id,
                failure_count=context.failure_count,
                elapsed_minutes=context.elapsed_minutes,
            ),
            started_at=now,
        )

        met, _ = self._check_trigger(levels[start_index], execution, now)
        if not met:
            logger.info(
                "Trigger of level %d on chain %s not met for ticket %s, not starting",
                start_index, chain.id, context.ticket_id,
            )
            return None

        execution = await self.executions.save_execution(execution)
        logger.info(
            "Started escalation %s on chain %s (%s) at level %d: %s",
            execution.id, chain.id, chain.name, start_index, context.trigger_reason,
        )
        async with self._locks.hold(execution.id):
            await self._move_to(chain, execution, start_index, context.trigger_reason)
            return await self._save(chain, execution)

    async def handle_timeout(self, execution_id: int) -> Optional[EscalationExecution]:
        """当前级别等待超时 (The current level's wait has elapsed)."""
        return await self._transition(execution_id, "timeout", self._on_timeout)

    async def resolve(
        self, execution_id: int, notes: Optional[str] = None, resolved_by: Optional[int] = None
    ) -> Optional[EscalationExecution]:
        async def handler(chain: EscalationChain, execution: EscalationExecution) -> None:
            self._close_level(execution, LevelOutcome.RESOLVED, notes)
            execution.resolution_notes = notes
            execution.resolved_by = resolved_by
            chain.successful_escalations += 1
            await self._finish(chain, execution, ExecutionStatus.COMPLETED, notes or "Resolved")

        return await self._transition(execution_id, "resolve", handler)

    async def fail_level(self, execution_id: int, notes: Optional[str] = None) -> Optional[EscalationExecution]:
        async def handler(chain: EscalationChain, execution: EscalationExecution) -> None:
            self._close_level(execution, LevelOutcome.FAILED, notes)
            await self._move_to(chain, execution, execution.current_level + 1, notes or "Level failed")

        return await self._transition(execution_id, "fail_level", handler)

    async def escalate(self, execution_id: int, reason: Optional[str] = None) -> Optional[EscalationExecution]:
        async def handler(chain: EscalationChain, execution: EscalationExecution) -> None:
            self._close_level(execution, LevelOutcome.ESCALATED, reason)
            await self._move_to(chain, execution, execution.current_level + 1, reason or "Manual escalation")

        return await self._transition(execution_id, "escalate", handler)

    async def cancel(self, execution_id: int, reason: Optional[str] = None) -> Optional[EscalationExecution]:
        async def handler(chain: EscalationChain, execution: EscalationExecution) -> None:
            entry = execution.current_entry()
            if entry is not None:
                entry.completed_at = self.clock.now()
                entry.notes = reason
            execution.resolution_notes = reason
            await self._finish(chain, execution, ExecutionStatus.CANCELLED, reason or "Cancelled")

        return await self._transition(execution_id, "cancel", handler)

    async def resume(self) -> int:
        """启动时恢复 active 执行并按剩余时间重新启动计时器 (Re-arm timers of active executions)."""
        active = await self.executions.list_executions(status=ExecutionStatus.ACTIVE.value, limit=10000)
        now = self.clock.now()
        resumed = 0
        for execution in active:
            chain = await self._chain(execution.chain_id)
            if chain is None:
                logger.error("Execution %s references unknown chain %s", execution.id, execution.chain_id)
                continue
            self._arm(execution.id, self._remaining_seconds(chain, execution, now))
            resumed += 1
        logger.info("Resumed %d active escalation execution(s)", resumed)
        return resumed

    async def sweep_overdue(self) -> int:
        """对等待已到期的级别触发超时，返回处理数量 (Fire timeouts of overdue levels)."""
        active = await self.executions.list_executions(status=ExecutionStatus.ACTIVE.value, limit=10000)
        fired = 0
        failed = 0
        for execution in active:
            try:
                if await self._timeout_if_due(execution.id):
                    fired += 1
            except Exception as e:
                logger.error("Sweep of escalation execution %s failed: %s", execution.id, e)
                failed += 1
        if fired or failed:
            logger.info("Sweep fired %d overdue escalation level(s), %d failed", fired, failed)
        return fired

    async def shutdown(self) -> None:
        timers = list(self._timers.values())
        self._timers.clear()
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

    # ------------------------------------------------------------------
    # 状态转换 (Transitions)
    # ------------------------------------------------------------------

    async def _transition(
        self,
        execution_id: int,
        name: str,
        handler: Callable[[EscalationChain, EscalationExecution], Awaitable[None]],
    ) -> Optional[EscalationExecution]:
        async with self._locks.hold(execution_id):
            execution = await self.executions.get_execution(execution_id)
            if execution is None:
                logger.warning("%s: escalation execution %s not found", name, execution_id)
                return None
            try:
                self._ensure_active(execution)
            except StateConflict as e:
                logger.debug("%s ignored: %s", name, e.message)
                return None
            chain = await self._chain(execution.chain_id)
            if chain is None:
                logger.error("%s: chain %s of execution %s not found", name, execution.chain_id, execution_id)
                return None
            await handler(chain, execution)
            return await self._save(chain, execution)

    @staticmethod
    def _ensure_active(execution: EscalationExecution) -> None:
        if execution.is_terminal:
            raise StateConflict(
                f"execution {execution.id} is already {execution.status.value}",
                {"execution_id": execution.id, "status": execution.status.value},
            )

    async def _on_timeout(self, chain: EscalationChain, execution: EscalationExecution) -> None:
        levels = chain.ordered_levels()
        index = execution.current_level
        entry = execution.current_entry()
        if entry is None:
            # 级别因时间触发条件延迟进入，到点后重新尝试进入
            await self._move_to(chain, execution, index, execution.metadata.trigger_reason)
            return

        level = levels[index]
        self._close_level(execution, LevelOutcome.TIMEOUT, "No response within wait time")
        attempts = execution.metadata.reassign_attempts.get(str(index), 0)
        if level.auto_reassign and attempts == 0:
            execution.metadata.reassign_attempts[str(index)] = 1
            logger.info("Execution %s: reassigning level %d after timeout", execution.id, index)
            if await self._enter_level(chain, level, index, execution, "Reassigned after timeout"):
                return
            index += 1
        else:
            index += 1
        await self._move_to(chain, execution, index, "Level timed out")

    async def _timeout_if_due(self, execution_id: int) -> bool:
        fired = False

        async def handler(chain: EscalationChain, execution: EscalationExecution) -> None:
            nonlocal fired
            if self._remaining_seconds(chain, execution, self.clock.now()) > 0:
                return
            fired = True
            await self._on_timeout(chain, execution)

        await self._transition(execution_id, "sweep", handler)
        return fired

    async def _move_to(
        self, chain: EscalationChain, execution: EscalationExecution, index: int, reason: str
    ) -> None:
        """
        推进到指定级别 (Advance to the given level)

        时间类触发条件未满足时延迟进入；其他未满足的触发条件直接越过该级别；
        级别全部用尽仍未解决则执行失败。
        """
        levels = chain.ordered_levels()
        while index < len(levels):
            level = levels[index]
            execution.current_level = index
            now = self.clock.now()
            met, remaining = self._check_trigger(level, execution, now)
            if not met:
                if remaining is not None:
                    logger.info(
                        "Execution %s: deferring level %d for %.1f min", execution.id, index, remaining
                    )
                    self._arm(execution.id, remaining * 60)
                    return
                logger.info("Execution %s: trigger of level %d not met, passing over", execution.id, index)
                index += 1
                continue
            if await self._enter_level(chain, level, index, execution, reason):
                return
            index += 1

        await self._finish(chain, execution, ExecutionStatus.FAILED, "Escalation chain exhausted")

    async def _enter_level(
        self,
        chain: EscalationChain,
        level: EscalationLevel,
        index: int,
        execution: EscalationExecution,
        reason: str,
    ) -> bool:
        """进入级别；无可用处理人且允许跳过时返回 False (False when skipped for lack of an assignee)."""
        previous = self._last_assignee(execution)
        now = self.clock.now()
        try:
            user_id = await self._resolve_assignee(chain, level, index, execution)
        except ResolutionFailure as e:
            user_id = None
            if level.skip_if_unavailable:
                logger.warning("Execution %s: %s, skipping", execution.id, e.message)
                execution.level_history.append(LevelHistoryEntry(
                    level=index, assigned_at=now, completed_at=now,
                    outcome=LevelOutcome.FAILED, notes="No available assignee",
                ))
                self._record_history(chain, execution, previous, None, index, "No available assignee", False)
                return False
            logger.warning("Execution %s: %s, waiting for timeout", execution.id, e.message)

        execution.level_history.append(LevelHistoryEntry(level=index, assigned_to=user_id, assigned_at=now))
        if user_id is not None:
            chain.total_escalations += 1
            chain.last_escalated_at = now
            self._record_history(chain, execution, previous, user_id, index, reason, True)
            await self._assign_ticket(execution, user_id)
            await self._notify_level(chain, level, index, execution, user_id, reason)
            logger.info("Execution %s: level %d (%s) assigned to user %s", execution.id, index, level.name, user_id)

        self._arm(execution.id, level.wait_minutes * 60)
        return True

    async def _finish(
        self, chain: EscalationChain, execution: EscalationExecution, status: ExecutionStatus, reason: str
    ) -> None:
        execution.status = status
        execution.completed_at = self.clock.now()
        self._cancel_timer(execution.id)
        self._record_history(
            chain, execution, self._last_assignee(execution), None,
            execution.current_level, reason, status == ExecutionStatus.COMPLETED,
        )
        logger.info("Escalation %s %s: %s", execution.id, status.value, reason)

    def _close_level(self, execution: EscalationExecution, outcome: LevelOutcome, notes: Optional[str]) -> None:
        now = self.clock.now()
        entry = execution.current_entry()
        if entry is None:
            # 延迟进入的级别没有等待中的条目
            execution.level_history.append(LevelHistoryEntry(
                level=execution.current_level, assigned_at=now, completed_at=now, outcome=outcome, notes=notes,
            ))
            return
        entry.outcome = outcome
        entry.completed_at = now
        if notes:
            entry.notes = notes

    # ------------------------------------------------------------------
    # 触发条件与计时 (Triggers and timing)
    # ------------------------------------------------------------------

    def _failures(self, execution: EscalationExecution) -> int:
        closed = sum(
            1 for e in execution.level_history if e.outcome in (LevelOutcome.FAILED, LevelOutcome.TIMEOUT)
        )
        return execution.metadata.failure_count + closed

    def _elapsed(self, execution: EscalationExecution, now: datetime) -> float:
        return execution.metadata.elapsed_minutes + _minutes_between(execution.started_at, now)

    def _check_trigger(
        self, level: EscalationLevel, execution: EscalationExecution, now: datetime
    ) -> tuple[bool, Optional[float]]:
        """返回 (是否满足, 时间类条件还需等待的分钟数)。"""
        trigger = level.trigger
        if trigger is None:
            return True, None

        if trigger.type == TriggerType.TIME_ELAPSED:
            required = float(trigger.value or 0)
            elapsed = self._elapsed(execution, now)
            return elapsed >= required, max(0.0, required - elapsed)

        if trigger.type == TriggerType.NO_RESPONSE:
            required = float(trigger.value or 0)
            since = execution.level_history[-1].assigned_at if execution.level_history else execution.started_at
            silent = _minutes_between(since, now)
            if not execution.level_history:
                silent += execution.metadata.elapsed_minutes
            return silent >= required, max(0.0, required - silent)

        if trigger.type == TriggerType.FAILURE_COUNT:
            return self._failures(execution) >= int(trigger.value or 0), None

        if trigger.type == TriggerType.SEVERITY_LEVEL:
            severity = execution.metadata.severity
            met = severity == trigger.value or severity_rank(severity) >= severity_rank(str(trigger.value))
            return met, None

        met = evaluate_custom_condition(trigger.condition or "", self._failures(execution), self._elapsed(execution, now))
        return met, None

    def _remaining_seconds(self, chain: EscalationChain, execution: EscalationExecution, now: datetime) -> float:
        levels = chain.ordered_levels()
        if execution.current_level >= len(levels):
            return 0.0
        level = levels[execution.current_level]
        entry = execution.current_entry()
        if entry is None:
            met, remaining = self._check_trigger(level, execution, now)
            return 0.0 if met or remaining is None else remaining * 60
        waited = (ensure_aware(now) - ensure_aware(entry.assigned_at)).total_seconds()
        return max(0.0, level.wait_minutes * 60 - waited)

    def _arm(self, execution_id: int, delay_seconds: float) -> None:
        self._cancel_timer(execution_id)
        if not self.arm_timers:
            return
        task = asyncio.create_task(self._timer(execution_id, max(0.0, delay_seconds)))
        self._timers[execution_id] = task

    def _cancel_timer(self, execution_id: int) -> None:
        task = self._timers.pop(execution_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _timer(self, execution_id: int, delay_seconds: float) -> None:
        try:
            await asyncio.sleep(delay_seconds)
            if self._timers.get(execution_id) is asyncio.current_task():
                self._timers.pop(execution_id, None)
            await self._timeout_if_due(execution_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Escalation timer for execution %s failed: %s", execution_id, e)

    # ------------------------------------------------------------------
    # 协作方调用 (Collaborator calls)
    # ------------------------------------------------------------------

    async def _resolve_assignee(
        self, chain: EscalationChain, level: EscalationLevel, index: int, execution: EscalationExecution
    ) -> int:
        try:
            profiles = await self.config_store.list_technician_profiles()
            counts = {}
            for profile in profiles:
                counts[profile.user_id] = await self.config_store.get_current_ticket_count(profile.user_id)
        except Exception as e:
            logger.error("Failed to load technician profiles: %s", e)
            profiles, counts = [], {}

        state = AssignmentState(
            now=self.clock.now(),
            profiles={p.user_id: p for p in profiles},
            ticket_counts=counts,
            priority=execution.metadata.priority,
        )
        user_id = self.resolver.resolve(level, chain.assignment_rules, state)
        if user_id is None:
            raise ResolutionFailure(
                f"no assignee for level {index} ({level.name})",
                {"assignment_type": level.assignment_type.value},
            )
        return user_id

    async def _assign_ticket(self, execution: EscalationExecution, user_id: int) -> None:
        if self.tickets is None or not execution.ticket_id:
            return
        try:
            await self.tickets.assign_ticket(execution.ticket_id, user_id)
        except Exception as e:
            failure = DispatchFailure("ticket", str(e), {"ticket_id": execution.ticket_id, "user_id": user_id})
            logger.error("Execution %s: %s", execution.id, failure.message)
            execution.metadata.dispatch_failures += 1

    async def _notify_level(
        self,
        chain: EscalationChain,
        level: EscalationLevel,
        index: int,
        execution: EscalationExecution,
        user_id: int,
        reason: str,
    ) -> None:
        templates = chain.notification_templates
        if not level.notification_channels and templates.assignment is None:
            return
        profile = await self._profile(user_id)
        recipient = profile.email if profile and profile.email else str(user_id)
        meta = execution.metadata
        values = dict(
            ticket_id=execution.ticket_id or "-",
            alert_id=execution.alert_id or "-",
            level=index,
            level_name=level.name,
            chain=chain.name,
            assignee=(profile.name or recipient) if profile else recipient,
            reason=reason,
            priority=meta.priority or "-",
            severity=(meta.severity or "info").upper(),
            client_name=meta.client_name or "-",
            device_name=meta.device_name or meta.device_id or "-",
        )
        template = templates.escalation
        subject = render_template(template.subject if template else "", DEFAULT_SUBJECT, values)
        body = render_template(template.body if template else "", DEFAULT_BODY, values)
        for channel in level.notification_channels:
            await self._dispatch(execution, channel, recipient, subject, body)

        # 分配通知直接发给新处理人 (Assignment notice goes to the new assignee by email)
        if templates.assignment is not None:
            subject = render_template(templates.assignment.subject, DEFAULT_ASSIGNMENT_SUBJECT, values)
            body = render_template(templates.assignment.body, DEFAULT_BODY, values)
            await self._dispatch(execution, "email", recipient, subject, body)

    async def _dispatch(
        self, execution: EscalationExecution, channel: str, recipient: str, subject: str, body: str
    ) -> None:
        dispatcher = self.dispatchers.get(channel)
        try:
            if dispatcher is None:
                raise DispatchFailure(channel, "no dispatcher configured")
            if not await dispatcher.notify(channel, [recipient], subject, body, execution.metadata.severity):
                raise DispatchFailure(channel, "dispatcher reported failure")
        except DispatchFailure as e:
            logger.warning("Execution %s: notification failed: %s", execution.id, e.message)
            execution.metadata.dispatch_failures += 1
        except Exception as e:
            logger.error("Execution %s: notification via %s raised: %s", execution.id, channel, e)
            execution.metadata.dispatch_failures += 1

    async def _profile(self, user_id: int):
        try:
            return await self.config_store.get_technician_profile(user_id)
        except Exception as e:
            logger.error("Failed to load technician profile %s: %s", user_id, e)
            return None

    # ------------------------------------------------------------------
    # 持久化与辅助 (Persistence and helpers)
    # ------------------------------------------------------------------

    async def _chain(self, chain_id: int) -> Optional[EscalationChain]:
        chain = self.chains.get(chain_id)
        if chain is None:
            self.load_chains(await self.config_store.list_chains())
            chain = self.chains.get(chain_id)
        return chain

    async def _save(self, chain: EscalationChain, execution: EscalationExecution) -> EscalationExecution:
        saved = await self.executions.save_execution(execution)
        try:
            await self.config_store.save_chain(chain)
        except Exception as e:
            logger.error("Failed to persist chain %s: %s", chain.id, e)
        return saved

    @staticmethod
    def _last_assignee(execution: EscalationExecution) -> Optional[int]:
        for entry in reversed(execution.level_history):
            if entry.assigned_to is not None:
                return entry.assigned_to
        return execution.metadata.original_assignee

    def _record_history(
        self,
        chain: EscalationChain,
        execution: EscalationExecution,
        from_user: Optional[int],
        to_user: Optional[int],
        level: int,
        reason: str,
        success: bool,
    ) -> None:
        chain.escalation_history.append(ChainHistoryEntry(
            ticket_id=execution.ticket_id,
            alert_id=execution.alert_id,
            from_user=from_user,
            to_user=to_user,
            level=level,
            reason=reason,
            timestamp=self.clock.now(),
            success=success,
        ))
