"""
Condition tree evaluation. Pure: no I/O, no logging, no mutation. Any
problem inside a leaf (missing field, failed coercion, odd types) makes that
leaf False instead of raising.
"""

import math
from typing import Any, Callable, Dict

from models import ConditionGroup, ConditionLeaf, ConditionOperator

from .facts import MISSING, resolve_path


def _same(actual: Any, expected: Any) -> bool:
    # True == 1 in Python, but a boolean fact should not equal a number
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _compare(check: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def _apply(actual: Any, expected: Any) -> bool:
        left, right = _number(actual), _number(expected)
        if left is None or right is None:
            return False
        return check(left, right)

    return _apply


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return expected is not None and str(expected).lower() in actual.lower()
    if isinstance(actual, (list, tuple)):
        return any(_same(item, expected) for item in actual)
    return False


def _does_not_contain(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (str, list, tuple)):
        return not _contains(actual, expected)
    return False


def _in(actual: Any, expected: Any) -> bool:
    return isinstance(expected, (list, tuple)) and any(_same(actual, item) for item in expected)


def _not_in(actual: Any, expected: Any) -> bool:
    return isinstance(expected, (list, tuple)) and not any(_same(actual, item) for item in expected)


_OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _same,
    ConditionOperator.NOT_EQUALS: lambda actual, expected: not _same(actual, expected),
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.DOES_NOT_CONTAIN: _does_not_contain,
    ConditionOperator.GREATER_THAN: _compare(lambda a, b: a > b),
    ConditionOperator.GREATER_THAN_INCLUSIVE: _compare(lambda a, b: a >= b),
    ConditionOperator.LESS_THAN: _compare(lambda a, b: a < b),
    ConditionOperator.LESS_THAN_INCLUSIVE: _compare(lambda a, b: a <= b),
    ConditionOperator.IN: _in,
    ConditionOperator.NOT_IN: _not_in,
}


def evaluate_leaf(leaf: ConditionLeaf, facts: Dict[str, Any]) -> bool:
    actual = resolve_path(facts, leaf.field)
    present = actual is not MISSING and actual is not None
    if leaf.operator is ConditionOperator.EXISTS:
        return present
    if leaf.operator is ConditionOperator.NOT_EXISTS:
        return not present
    if actual is MISSING:
        return False
    check = _OPERATORS.get(leaf.operator)
    if check is None:
        return False
    try:
        return bool(check(actual, leaf.value))
    except (TypeError, ValueError, OverflowError):
        return False


def evaluate(node: ConditionGroup | ConditionLeaf | None, facts: Dict[str, Any]) -> bool:
    """
    `all` is true when every child is true (an empty list is true), `any` is
    true when at least one child is (an empty list is false). Both stop at the
    first child that decides the result. A missing tree matches everything.
    """
    if node is None:
        return True
    if isinstance(node, ConditionLeaf):
        return evaluate_leaf(node, facts)
    if node.all_ is not None:
        return all(evaluate(child, facts) for child in node.all_)
    return any(evaluate(child, facts) for child in node.any_ or [])
