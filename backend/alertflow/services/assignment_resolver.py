"""
分配解析器 (Assignment Resolver)

将升级级别解析为具体处理人。每种分配类型对应一个策略类，在解析器边界通过一张映射表选择。
所有策略都是确定性的：不使用随机数，平局按工单数、用户 ID 或轮转游标打破。
轮转类策略会把游标写回升级链的 assignment_rules，由调用方负责持久化。

Resolves an escalation level to a concrete user id. One strategy class per
assignment type, picked through a single mapping at the resolver boundary.
Every strategy is deterministic: no randomness; ties are broken by ticket
count, user id or a rotation cursor. Rotating strategies write their cursor
back into the chain's assignment_rules; the caller persists it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from alertflow.core.config import settings
from alertflow.schemas.escalation import (
    AssignmentRules,
    AssignmentType,
    EscalationLevel,
    PriorityRules,
    RoundRobinRule,
    TechnicianProfile,
    WeeklySchedule,
)

logger = logging.getLogger(__name__)

# 高优先级工单优先分配给资深工程师
SENIOR_PRIORITIES = {"critical", "high"}
SENIOR_EXPERIENCE_LEVEL = 7


@dataclass
class AssignmentState:
    """解析时的只读上下文 (Read-only context of one resolution)"""
    now: datetime
    profiles: dict[int, TechnicianProfile] = field(default_factory=dict)
    ticket_counts: dict[int, int] = field(default_factory=dict)
    priority: Optional[str] = None

    def load(self, user_id: int) -> int:
        if user_id in self.ticket_counts:
            return self.ticket_counts[user_id]
        profile = self.profiles.get(user_id)
        return profile.current_ticket_count if profile else 0

    def is_offline(self, user_id: int) -> bool:
        profile = self.profiles.get(user_id)
        return profile is not None and profile.is_offline

    def has_capacity(self, user_id: int) -> bool:
        profile = self.profiles.get(user_id)
        limit = profile.max_concurrent_tickets if profile else settings.default_max_tickets_per_user
        return self.load(user_id) < limit


class AssignmentStrategy:
    """分配策略基类 (Base assignment strategy)"""

    def resolve(
        self, level: EscalationLevel, rules: AssignmentRules, state: AssignmentState
    ) -> Optional[int]:
        raise NotImplementedError


class SpecificUserStrategy(AssignmentStrategy):

    def resolve(self, level, rules, state):
        user_id = level.assign_to.user_id
        if user_id is None or state.is_offline(user_id):
            return None
        return user_id


class UserGroupStrategy(AssignmentStrategy):
    """组内未离线且未满负载的成员，工单最少者优先；平局时从组游标之后轮转。"""

    def resolve(self, level, rules, state):
        target = level.assign_to
        group_keys = {str(g) for g in (target.group_id, target.group_name) if g is not None}
        if not group_keys:
            return None

        members = sorted(
            uid for uid, profile in state.profiles.items()
            if group_keys.intersection(profile.groups)
            and not profile.is_offline
            and state.has_capacity(uid)
        )
        if not members:
            return None

        lowest = min(state.load(uid) for uid in members)
        tied = [uid for uid in members if state.load(uid) == lowest]

        cursor_key = str(target.group_id if target.group_id is not None else target.group_name)
        last = rules.group_cursors.get(cursor_key)
        chosen = tied[0]
        if last is not None:
            after = [uid for uid in tied if uid > last]
            chosen = after[0] if after else tied[0]
        rules.group_cursors[cursor_key] = chosen
        return chosen


class RoundRobinStrategy(AssignmentStrategy):

    def resolve(self, level, rules, state):
        rule = rules.round_robin
        if rule is None or not rule.user_pool:
            return None
        return advance_round_robin(rule, state)


def advance_round_robin(rule: RoundRobinRule, state: AssignmentState) -> Optional[int]:
    """从上次位置之后循环前进，写回 last_assigned_index (Advance circularly, writing the cursor back)."""
    pool = rule.user_pool
    size = len(pool)
    start = rule.last_assigned_index + 1 if rule.last_assigned_index >= 0 else 0
    for step in range(size):
        index = (start + step) % size
        user_id = pool[index]
        if rule.skip_offline_users and state.is_offline(user_id):
            continue
        rule.last_assigned_index = index
        return user_id
    return None


class LeastLoadedStrategy(AssignmentStrategy):

    def resolve(self, level, rules, state):
        rule = rules.least_loaded
        if rule is None or not rule.user_pool:
            return None
        cap = rule.max_tickets_per_user or settings.default_max_tickets_per_user
        candidates = [
            uid for uid in rule.user_pool
            if not state.is_offline(uid) and state.load(uid) < cap
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda uid: (state.load(uid), uid))


class SkillBasedStrategy(AssignmentStrategy):
    """
    技能匹配 (Skill matching)

    得分 = 已具备的必需技能占比 + 每个已具备的偏好技能 0.1。
    匹配百分比低于 minimum_skill_match、满负载或离线的技术人员被排除。
    """

    PREFERRED_BONUS = 0.1

    def resolve(self, level, rules, state):
        rule = rules.skill_based
        required = (rule.required_skills if rule and rule.required_skills else level.assign_to.skills)
        preferred = rule.preferred_skills if rule else []
        minimum = (rule.minimum_skill_match if rule else 0) / 100.0
        if not required:
            return None

        scored = []
        for uid, profile in state.profiles.items():
            if profile.is_offline or not state.has_capacity(uid):
                continue
            skills = set(profile.skills)
            match = sum(1 for s in required if s in skills) / len(required)
            if match == 0 or match < minimum:
                continue
            score = match + self.PREFERRED_BONUS * sum(1 for s in preferred if s in skills)
            scored.append((-score, state.load(uid), uid))
        if not scored:
            return None
        return min(scored)[2]


class TimeBasedStrategy(AssignmentStrategy):

    def resolve(self, level, rules, state):
        rule = rules.time_based
        if rule is None:
            return None
        for entry in rule.schedules:
            if on_shift(entry.schedule, state.now) and not state.is_offline(entry.user_id):
                return entry.user_id
        return None


def on_shift(schedule: WeeklySchedule, now: datetime) -> bool:
    """班次是否覆盖当前时刻（按排班时区），支持跨午夜班次。day_of_week 0 为周日。"""
    try:
        tz = ZoneInfo(schedule.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown schedule timezone '%s', using UTC", schedule.timezone)
        tz = ZoneInfo("UTC")
    local = now.astimezone(tz)
    today = (local.weekday() + 1) % 7
    yesterday = (today - 1) % 7
    clock = local.time().replace(second=0, microsecond=0)

    for shift in schedule.shifts:
        start, end = _parse_hhmm(shift.start_time), _parse_hhmm(shift.end_time)
        if start is None or end is None:
            logger.warning("Ignoring malformed shift %s", shift.model_dump())
            continue
        if start <= end:
            if shift.day_of_week == today and start <= clock <= end:
                return True
        else:
            # 跨午夜：当天 start 之后，或次日 end 之前
            if shift.day_of_week == today and clock >= start:
                return True
            if shift.day_of_week == yesterday and clock <= end:
                return True
    return False


def _parse_hhmm(value: str) -> Optional[time]:
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        return None


class PriorityBasedStrategy(AssignmentStrategy):
    """critical/high 优先级选经验最丰富的可用人员，其余按轮转。"""

    def resolve(self, level, rules, state):
        if (state.priority or "").lower() in SENIOR_PRIORITIES:
            pool = level.assign_to.user_ids or (rules.round_robin.user_pool if rules.round_robin else [])
            candidates = [
                uid for uid in (pool or state.profiles.keys())
                if uid in state.profiles
                and state.profiles[uid].experience_level > SENIOR_EXPERIENCE_LEVEL
                and not state.is_offline(uid)
                and state.has_capacity(uid)
            ]
            if candidates:
                return min(candidates, key=lambda uid: (-state.profiles[uid].experience_level, state.load(uid), uid))

        rule = rules.round_robin
        if (rule is None or not rule.user_pool) and level.assign_to.user_ids:
            rule = _seed_round_robin(rules, level.assign_to.user_ids)
        if rule is None or not rule.user_pool:
            return None
        return advance_round_robin(rule, state)


def _seed_round_robin(rules: AssignmentRules, pool: list[int]) -> RoundRobinRule:
    rules.round_robin = RoundRobinRule(user_pool=list(pool))
    return rules.round_robin


def priority_skip(priority_rules: PriorityRules, priority: Optional[str]) -> int:
    """优先级规则给出的起始跳级数 (Levels to skip at start for this priority)."""
    bracket = priority_rules.bracket_for(priority)
    return bracket.skip_levels if bracket else 0


STRATEGIES: dict[AssignmentType, AssignmentStrategy] = {
    AssignmentType.SPECIFIC_USER: SpecificUserStrategy(),
    AssignmentType.USER_GROUP: UserGroupStrategy(),
    AssignmentType.ROUND_ROBIN: RoundRobinStrategy(),
    AssignmentType.LEAST_LOADED: LeastLoadedStrategy(),
    AssignmentType.SKILL_BASED: SkillBasedStrategy(),
    AssignmentType.TIME_BASED: TimeBasedStrategy(),
    AssignmentType.PRIORITY_BASED: PriorityBasedStrategy(),
}


class AssignmentResolver:

    def __init__(self, strategies: Optional[dict[AssignmentType, AssignmentStrategy]] = None) -> None:
        self.strategies = strategies or STRATEGIES

    def resolve(
        self, level: EscalationLevel, rules: AssignmentRules, state: AssignmentState
    ) -> Optional[int]:
        strategy = self.strategies.get(level.assignment_type)
        if strategy is None:
            logger.warning("No strategy for assignment type %s", level.assignment_type)
            return None
        user_id = strategy.resolve(level, rules, state)
        logger.debug("Level '%s' (%s) resolved to %s", level.name, level.assignment_type.value, user_id)
        return user_id
