"""
阈值评估器 (Threshold Evaluator)

给定一个指标样本和一个阈值，判断是否违规。纯函数：不读写违规账本，不访问数据库。
定义不合法的阈值不会抛出到调用方，记录日志后按未违规处理；单个不合法的条件只按不成立计。

Given one sample and one threshold, decides breach or no breach. Pure: never
touches the ledger or the database. A malformed threshold never raises out of
evaluate(); it is logged and treated as not breached. A malformed condition is
logged and counts as not met, leaving its siblings to decide.
"""
import logging
import operator as op
import re
from typing import Any

from alertflow.core.exceptions import ConfigurationError
from alertflow.schemas.threshold import (
    AlertMetric,
    Evaluation,
    Threshold,
    ThresholdCondition,
    ThresholdType,
)

logger = logging.getLogger(__name__)

# 阈值级比较运算符映射，命名形式与符号形式等价
OPERATORS = {
    ">": op.gt,
    ">=": op.ge,
    "<": op.lt,
    "<=": op.le,
    "==": op.eq,
    "!=": op.ne,
    "greater_than": op.gt,
    "greater_than_or_equals": op.ge,
    "less_than": op.lt,
    "less_than_or_equals": op.le,
    "equals": op.eq,
    "not_equals": op.ne,
}

# 样本自身字段，优先于 metadata 解析
SAMPLE_FIELDS = {"value", "device_id", "device_name", "metric_type", "timestamp"}

_MISSING = object()


def evaluate(threshold: Threshold, sample: AlertMetric) -> Evaluation:
    """评估单个阈值 (Evaluate one threshold against one sample)."""
    try:
        breached, message = _evaluate(threshold, sample)
    except ConfigurationError as e:
        logger.warning("Threshold %s (%s) is not usable: %s", threshold.id, threshold.name, e.message)
        return Evaluation(breached=False, value=sample.value, message=f"configuration error: {e.message}")
    return Evaluation(breached=breached, value=sample.value, message=message)


def _evaluate(threshold: Threshold, sample: AlertMetric) -> tuple[bool, str]:
    errors = threshold.definition_errors()
    if errors:
        raise ConfigurationError("; ".join(errors), {"threshold_id": threshold.id})

    operator_name = (threshold.operator or "").strip().lower()
    if threshold.type != ThresholdType.COMPOSITE:
        return _compare(operator_name, sample.value, threshold.value)

    if operator_name:
        breached, message = _compare(operator_name, sample.value, threshold.value)
        if not breached:
            return False, message
    else:
        message = ""

    conditions = threshold.conditions
    failed = [c.field for c in conditions.all if not _checked(threshold, c, sample)]
    if failed:
        return False, f"conditions not met: {', '.join(failed)}"
    if conditions.any and not any(_checked(threshold, c, sample) for c in conditions.any):
        return False, "no alternative condition met"

    matched = len(conditions.all) + (1 if conditions.any else 0)
    detail = f"{matched} condition group(s) matched"
    return True, f"{message}; {detail}" if message else detail


def _checked(threshold: Threshold, condition: ThresholdCondition, sample: AlertMetric) -> bool:
    """坏条件只让自己不成立，不影响同组其它条件 (A malformed condition only fails itself)."""
    try:
        return check_condition(condition, sample)
    except ConfigurationError as e:
        logger.warning("Threshold %s condition on '%s' is not usable: %s", threshold.id, condition.field, e.message)
        return False


def _compare(operator_name: str, actual: float, expected: float | None) -> tuple[bool, str]:
    cmp_fn = OPERATORS.get(operator_name)
    if cmp_fn is None:
        raise ConfigurationError(f"operator '{operator_name}' cannot be used for a threshold comparison")
    if expected is None:
        raise ConfigurationError(f"operator '{operator_name}' requires a numeric value")
    breached = cmp_fn(float(actual), float(expected))
    verb = "breached" if breached else "within"
    return breached, f"value {actual} {verb} threshold ({operator_name} {expected})"


def resolve_field(sample: AlertMetric, field: str) -> Any:
    """先查样本字段，再按点号路径查 metadata (Sample attributes first, then dotted metadata path)."""
    if field in SAMPLE_FIELDS:
        return getattr(sample, field)
    current: Any = sample.metadata
    for part in field.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def check_condition(condition: ThresholdCondition, sample: AlertMetric) -> bool:
    """单个字段条件；缺失字段视为不满足 (A missing field never matches)."""
    actual = resolve_field(sample, condition.field)
    if actual is _MISSING or actual is None:
        return False
    expected = condition.value
    name = condition.operator

    if name in ("greater_than", "less_than"):
        try:
            lhs, rhs = float(actual), float(expected)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"condition on '{condition.field}' compares non-numeric values", {"value": expected}
            )
        return lhs > rhs if name == "greater_than" else lhs < rhs

    if name == "regex":
        flags = 0 if condition.case_sensitive else re.IGNORECASE
        try:
            return re.search(str(expected), str(actual), flags) is not None
        except re.error as e:
            raise ConfigurationError(f"invalid regex on '{condition.field}': {e}")

    if name in ("in", "not_in"):
        if not isinstance(expected, (list, tuple, set)):
            raise ConfigurationError(f"'{name}' on '{condition.field}' requires a list value")
        members = {_fold(v, condition.case_sensitive) for v in expected}
        found = _fold(actual, condition.case_sensitive) in members
        return found if name == "in" else not found

    if name == "contains":
        if isinstance(actual, (list, tuple, set)):
            return _fold(expected, condition.case_sensitive) in {
                _fold(v, condition.case_sensitive) for v in actual
            }
        return _fold(str(expected), condition.case_sensitive) in _fold(str(actual), condition.case_sensitive)

    # equals
    if isinstance(actual, (int, float)) and not isinstance(actual, bool):
        try:
            return float(actual) == float(expected)
        except (TypeError, ValueError):
            return False
    return _fold(actual, condition.case_sensitive) == _fold(expected, condition.case_sensitive)


def _fold(value: Any, case_sensitive: bool) -> Any:
    if isinstance(value, str) and not case_sensitive:
        return value.lower()
    return value
