"""
Condition evaluation for Condition nodes.

Works on already-resolved branches: every rule's ``source`` and ``value``
are plain values by the time they get here. Branches are tried in order and
the first one whose rules hold selects its label; otherwise the else label
is selected. A branch with no rules never matches.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from dagflow.graph.node import ConditionOperator
from dagflow.graph.variables import stringify

logger = logging.getLogger(__name__)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _equals(left: Any, right: Any) -> bool:
    if left == right:
        return True
    left_number, right_number = _as_number(left), _as_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    return stringify(left) == stringify(right)


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, Mapping):
        return stringify(right) in left
    if isinstance(left, list | tuple):
        return any(_equals(item, right) for item in left)
    return stringify(right) in stringify(left)


def _is_empty(left: Any) -> bool:
    if left is None:
        return True
    if isinstance(left, str):
        return not left.strip()
    if isinstance(left, Mapping | list | tuple):
        return len(left) == 0
    return False


def _compare(predicate: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def check(left: Any, right: Any) -> bool:
        left_number, right_number = _as_number(left), _as_number(right)
        if left_number is None or right_number is None:
            return False
        return predicate(left_number, right_number)

    return check


def _is_true(left: Any, _right: Any) -> bool:
    if isinstance(left, bool):
        return left
    if isinstance(left, str):
        return left.strip().lower() == "true"
    number = _as_number(left)
    return number is not None and number != 0


def _is_false(left: Any, _right: Any) -> bool:
    if isinstance(left, bool):
        return not left
    if isinstance(left, str):
        return left.strip().lower() == "false"
    number = _as_number(left)
    return number is not None and number == 0


OPERATORS: dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _equals,
    ConditionOperator.NOT_EQUALS: lambda left, right: not _equals(left, right),
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.NOT_CONTAINS: lambda left, right: not _contains(left, right),
    ConditionOperator.STARTS_WITH: lambda left, right: stringify(left).startswith(stringify(right)),
    ConditionOperator.ENDS_WITH: lambda left, right: stringify(left).endswith(stringify(right)),
    ConditionOperator.IS_EMPTY: lambda left, _right: _is_empty(left),
    ConditionOperator.IS_NOT_EMPTY: lambda left, _right: not _is_empty(left),
    ConditionOperator.GREATER_THAN: _compare(lambda a, b: a > b),
    ConditionOperator.LESS_THAN: _compare(lambda a, b: a < b),
    ConditionOperator.GREATER_THAN_OR_EQUAL: _compare(lambda a, b: a >= b),
    ConditionOperator.LESS_THAN_OR_EQUAL: _compare(lambda a, b: a <= b),
    ConditionOperator.IS_TRUE: _is_true,
    ConditionOperator.IS_FALSE: _is_false,
}


def evaluate_rule(operator: ConditionOperator | str, left: Any, right: Any = None) -> bool:
    return OPERATORS[ConditionOperator(operator)](left, right)


def evaluate_branch(branch: Mapping[str, Any]) -> bool:
    rules = branch.get("conditions") or []
    if not rules:
        return False
    outcomes = (evaluate_rule(r["operator"], r.get("source"), r.get("value")) for r in rules)
    if branch.get("logical_operator", "and") == "or":
        return any(outcomes)
    return all(outcomes)


def select_branch(branches: Sequence[Mapping[str, Any]], else_label: str) -> str:
    """Return the label of the first matching branch, or ``else_label``."""
    for branch in branches:
        if evaluate_branch(branch):
            logger.debug(f"Condition branch '{branch['id']}' matched")
            return branch["id"]
    logger.debug(f"No condition branch matched, taking '{else_label}'")
    return else_label
