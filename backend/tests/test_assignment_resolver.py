"""分配策略测试：每种分配类型一个测试类。"""
from datetime import datetime, timezone

from alertflow.schemas.escalation import (
    AssignmentRules,
    AssignmentType,
    AssignTo,
    Availability,
    LeastLoadedRule,
    PriorityRules,
    PriorityThreshold,
    Shift,
    SkillBasedRule,
    TechnicianProfile,
    TimeBasedRule,
    UserSchedule,
    WeeklySchedule,
)
from alertflow.services.assignment_resolver import (
    AssignmentResolver,
    AssignmentState,
    on_shift,
    priority_skip,
)

from tests.conftest import T0, make_level, round_robin_rules


def profile(user_id, **kwargs) -> TechnicianProfile:
    status = kwargs.pop("status", "available")
    return TechnicianProfile(user_id=user_id, availability=Availability(status=status), **kwargs)


def state(*profiles, **kwargs) -> AssignmentState:
    kwargs.setdefault("now", T0)
    return AssignmentState(profiles={p.user_id: p for p in profiles}, **kwargs)


resolver = AssignmentResolver()


class TestSpecificUser:
    def test_returns_configured_user(self):
        level = make_level(0, assign_to=AssignTo(user_id=7))
        assert resolver.resolve(level, AssignmentRules(), state()) == 7

    def test_offline_user_is_unavailable(self):
        level = make_level(0, assign_to=AssignTo(user_id=7))
        assert resolver.resolve(level, AssignmentRules(), state(profile(7, status="offline"))) is None

    def test_missing_user_id(self):
        level = make_level(0, assign_to=AssignTo())
        assert resolver.resolve(level, AssignmentRules(), state()) is None


class TestRoundRobin:
    def test_rotates_and_wraps(self):
        level = make_level(0, assignment_type=AssignmentType.ROUND_ROBIN)
        rules = round_robin_rules(1, 2, 3)
        picks = [resolver.resolve(level, rules, state()) for _ in range(4)]
        assert picks == [1, 2, 3, 1]
        assert rules.round_robin.last_assigned_index == 0

    def test_skips_offline_users(self):
        level = make_level(0, assignment_type=AssignmentType.ROUND_ROBIN)
        rules = round_robin_rules(1, 2, 3, skip_offline=True)
        current = state(profile(2, status="offline"))
        picks = [resolver.resolve(level, rules, current) for _ in range(3)]
        assert picks == [1, 3, 1]

    def test_offline_not_skipped_without_flag(self):
        level = make_level(0, assignment_type=AssignmentType.ROUND_ROBIN)
        rules = round_robin_rules(1, 2)
        current = state(profile(1, status="offline"))
        assert resolver.resolve(level, rules, current) == 1

    def test_all_offline(self):
        level = make_level(0, assignment_type=AssignmentType.ROUND_ROBIN)
        rules = round_robin_rules(1, 2, skip_offline=True)
        current = state(profile(1, status="offline"), profile(2, status="offline"))
        assert resolver.resolve(level, rules, current) is None

    def test_empty_pool(self):
        level = make_level(0, assignment_type=AssignmentType.ROUND_ROBIN)
        assert resolver.resolve(level, AssignmentRules(), state()) is None


class TestLeastLoaded:
    def _rules(self, *pool, cap=None):
        return AssignmentRules(least_loaded=LeastLoadedRule(user_pool=list(pool), max_tickets_per_user=cap))

    def test_picks_lowest_load(self):
        level = make_level(0, assignment_type=AssignmentType.LEAST_LOADED)
        current = state(ticket_counts={1: 5, 2: 1, 3: 3})
        assert resolver.resolve(level, self._rules(1, 2, 3), current) == 2

    def test_ties_go_to_lowest_user_id(self):
        level = make_level(0, assignment_type=AssignmentType.LEAST_LOADED)
        current = state(ticket_counts={5: 2, 3: 2, 4: 4})
        assert resolver.resolve(level, self._rules(5, 3, 4), current) == 3

    def test_respects_cap(self):
        level = make_level(0, assignment_type=AssignmentType.LEAST_LOADED)
        current = state(ticket_counts={1: 4, 2: 4})
        assert resolver.resolve(level, self._rules(1, 2, cap=4), current) is None

    def test_offline_excluded(self):
        level = make_level(0, assignment_type=AssignmentType.LEAST_LOADED)
        current = state(profile(1, status="offline"), ticket_counts={1: 0, 2: 3})
        assert resolver.resolve(level, self._rules(1, 2), current) == 2


class TestSkillBased:
    def test_best_match_with_preferred_bonus(self):
        level = make_level(0, assignment_type=AssignmentType.SKILL_BASED)
        rules = AssignmentRules(skill_based=SkillBasedRule(
            required_skills=["linux", "network"], preferred_skills=["cisco"],
        ))
        current = state(
            profile(1, skills=["linux"]),
            profile(2, skills=["linux", "network"]),
            profile(3, skills=["linux", "network", "cisco"]),
        )
        assert resolver.resolve(level, rules, current) == 3

    def test_minimum_match_excludes(self):
        level = make_level(0, assignment_type=AssignmentType.SKILL_BASED)
        rules = AssignmentRules(skill_based=SkillBasedRule(
            required_skills=["linux", "network"], minimum_skill_match=60,
        ))
        current = state(profile(1, skills=["linux"]))
        assert resolver.resolve(level, rules, current) is None

    def test_equal_scores_prefer_lower_load(self):
        level = make_level(0, assignment_type=AssignmentType.SKILL_BASED, assign_to=AssignTo(skills=["sql"]))
        current = state(
            profile(1, skills=["sql"], current_ticket_count=4),
            profile(2, skills=["sql"], current_ticket_count=1),
        )
        assert resolver.resolve(level, AssignmentRules(), current) == 2

    def test_full_capacity_excluded(self):
        level = make_level(0, assignment_type=AssignmentType.SKILL_BASED, assign_to=AssignTo(skills=["sql"]))
        current = state(profile(1, skills=["sql"], current_ticket_count=2, max_concurrent_tickets=2))
        assert resolver.resolve(level, AssignmentRules(), current) is None


class TestTimeBased:
    def _rules(self, *entries):
        return AssignmentRules(time_based=TimeBasedRule(schedules=[
            UserSchedule(user_id=uid, schedule=WeeklySchedule(timezone=tz, shifts=shifts))
            for uid, tz, shifts in entries
        ]))

    def test_first_user_on_shift(self):
        level = make_level(0, assignment_type=AssignmentType.TIME_BASED)
        rules = self._rules(
            (1, "UTC", [Shift(day_of_week=1, start_time="00:00", end_time="08:00")]),
            (2, "UTC", [Shift(day_of_week=1, start_time="08:00", end_time="16:00")]),
        )
        assert resolver.resolve(level, rules, state()) == 2

    def test_nobody_on_shift(self):
        level = make_level(0, assignment_type=AssignmentType.TIME_BASED)
        rules = self._rules((1, "UTC", [Shift(day_of_week=2, start_time="08:00", end_time="16:00")]))
        assert resolver.resolve(level, rules, state()) is None

    def test_schedule_timezone_applies(self):
        # 10:00 UTC 即 19:00 Asia/Tokyo
        schedule = WeeklySchedule(
            timezone="Asia/Tokyo", shifts=[Shift(day_of_week=1, start_time="18:00", end_time="20:00")],
        )
        assert on_shift(schedule, T0) is True

    def test_sunday_is_zero(self):
        sunday = datetime(2024, 3, 3, 12, 0, tzinfo=timezone.utc)
        schedule = WeeklySchedule(shifts=[Shift(day_of_week=0, start_time="09:00", end_time="17:00")])
        assert on_shift(schedule, sunday) is True

    def test_overnight_shift_spans_midnight(self):
        schedule = WeeklySchedule(shifts=[Shift(day_of_week=0, start_time="22:00", end_time="06:00")])
        assert on_shift(schedule, datetime(2024, 3, 3, 23, 0, tzinfo=timezone.utc)) is True
        assert on_shift(schedule, datetime(2024, 3, 4, 5, 30, tzinfo=timezone.utc)) is True
        assert on_shift(schedule, datetime(2024, 3, 4, 7, 0, tzinfo=timezone.utc)) is False

    def test_unknown_timezone_falls_back_to_utc(self):
        schedule = WeeklySchedule(
            timezone="Mars/Olympus", shifts=[Shift(day_of_week=1, start_time="09:00", end_time="11:00")],
        )
        assert on_shift(schedule, T0) is True


class TestUserGroup:
    def test_least_loaded_member(self):
        level = make_level(0, assignment_type=AssignmentType.USER_GROUP, assign_to=AssignTo(group_name="noc"))
        current = state(
            profile(1, groups=["noc"], current_ticket_count=3),
            profile(2, groups=["noc"], current_ticket_count=1),
            profile(3, groups=["dba"], current_ticket_count=0),
        )
        assert resolver.resolve(level, AssignmentRules(), current) == 2

    def test_ties_rotate(self):
        level = make_level(0, assignment_type=AssignmentType.USER_GROUP, assign_to=AssignTo(group_name="noc"))
        current = state(profile(1, groups=["noc"]), profile(2, groups=["noc"]), profile(3, groups=["noc"]))
        rules = AssignmentRules()
        picks = [resolver.resolve(level, rules, current) for _ in range(4)]
        assert picks == [1, 2, 3, 1]
        assert rules.group_cursors["noc"] == 1

    def test_offline_members_skipped(self):
        level = make_level(0, assignment_type=AssignmentType.USER_GROUP, assign_to=AssignTo(group_name="noc"))
        current = state(profile(1, groups=["noc"], status="offline"))
        assert resolver.resolve(level, AssignmentRules(), current) is None


class TestPriorityBased:
    def test_critical_goes_to_senior(self):
        level = make_level(0, assignment_type=AssignmentType.PRIORITY_BASED, assign_to=AssignTo(user_ids=[1, 2, 3]))
        current = state(
            profile(1, experience_level=3),
            profile(2, experience_level=9),
            profile(3, experience_level=8),
            priority="critical",
        )
        assert resolver.resolve(level, AssignmentRules(), current) == 2

    def test_low_priority_rotates(self):
        level = make_level(0, assignment_type=AssignmentType.PRIORITY_BASED, assign_to=AssignTo(user_ids=[1, 2]))
        rules = AssignmentRules()
        current = state(profile(1, experience_level=9), priority="low")
        picks = [resolver.resolve(level, rules, current) for _ in range(3)]
        assert picks == [1, 2, 1]

    def test_no_senior_falls_back_to_rotation(self):
        level = make_level(0, assignment_type=AssignmentType.PRIORITY_BASED)
        rules = round_robin_rules(4, 5)
        current = state(profile(4, experience_level=2), priority="high")
        assert resolver.resolve(level, rules, current) == 4


class TestPrioritySkip:
    def test_bracket_applies_when_enabled(self):
        rules = PriorityRules(enabled=True, thresholds=[PriorityThreshold(priority="critical", skip_levels=2)])
        assert priority_skip(rules, "critical") == 2
        assert priority_skip(rules, "low") == 0

    def test_disabled_rules(self):
        rules = PriorityRules(enabled=False, thresholds=[PriorityThreshold(priority="critical", skip_levels=2)])
        assert priority_skip(rules, "critical") == 0
