"""升级判定与冷却测试。"""
from alertflow.services.breach_ledger import ledger_key
from alertflow.services.escalation_decision import EscalationDecision

from tests.conftest import make_threshold


def _breach(ledger, clock, threshold_id=1, device_id="dev-1", value=95.0):
    ledger.record(ledger_key(threshold_id, device_id), value, clock.now(), threshold_id)


class TestShouldEscalate:
    def test_auto_escalate_disabled(self, ledger, clock):
        decision = EscalationDecision(ledger, clock)
        threshold = make_threshold(auto_escalate=False, escalation_threshold=1)
        _breach(ledger, clock)
        assert decision.should_escalate(threshold) is False

    def test_requires_count_within_window(self, ledger, clock):
        decision = EscalationDecision(ledger, clock)
        threshold = make_threshold(auto_escalate=True, escalation_threshold=3, escalation_delay=5)
        _breach(ledger, clock)
        clock.advance(minutes=1)
        _breach(ledger, clock)
        assert decision.should_escalate(threshold) is False
        clock.advance(minutes=1)
        _breach(ledger, clock)
        assert decision.should_escalate(threshold) is True

    def test_counts_all_devices_of_threshold(self, ledger, clock):
        decision = EscalationDecision(ledger, clock)
        threshold = make_threshold(auto_escalate=True, escalation_threshold=2, escalation_delay=5)
        _breach(ledger, clock, device_id="dev-1")
        _breach(ledger, clock, device_id="dev-2")
        _breach(ledger, clock, threshold_id=2, device_id="dev-1")
        assert decision.should_escalate(threshold) is True
        assert decision.should_escalate(make_threshold(2, auto_escalate=True, escalation_threshold=2)) is False

    def test_old_breaches_fall_out_of_window(self, ledger, clock):
        decision = EscalationDecision(ledger, clock)
        threshold = make_threshold(auto_escalate=True, escalation_threshold=2, escalation_delay=5)
        _breach(ledger, clock)
        clock.advance(minutes=6)
        _breach(ledger, clock)
        assert decision.should_escalate(threshold) is False

    def test_defaults_apply_when_unset(self, ledger, clock):
        # 默认窗口 5 分钟，默认需要 3 次
        decision = EscalationDecision(ledger, clock)
        threshold = make_threshold(auto_escalate=True)
        for _ in range(2):
            _breach(ledger, clock)
        assert decision.should_escalate(threshold) is False
        _breach(ledger, clock)
        assert decision.should_escalate(threshold) is True


class TestCooldown:
    def test_never_escalated(self, ledger, clock):
        decision = EscalationDecision(ledger, clock)
        assert decision.in_cooldown(make_threshold(cooldown_seconds=600), None) is False

    def test_zero_cooldown_disables_check(self, ledger, clock):
        decision = EscalationDecision(ledger, clock)
        assert decision.in_cooldown(make_threshold(cooldown_seconds=0), clock.now()) is False

    def test_cooldown_expires(self, ledger, clock):
        decision = EscalationDecision(ledger, clock)
        threshold = make_threshold(cooldown_seconds=600)
        escalated_at = clock.now()
        clock.advance(seconds=599)
        assert decision.in_cooldown(threshold, escalated_at) is True
        clock.advance(seconds=1)
        assert decision.in_cooldown(threshold, escalated_at) is False

    def test_naive_timestamp_treated_as_utc(self, ledger, clock):
        decision = EscalationDecision(ledger, clock)
        threshold = make_threshold(cooldown_seconds=60)
        assert decision.in_cooldown(threshold, clock.now().replace(tzinfo=None)) is True
