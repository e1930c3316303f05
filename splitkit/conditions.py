"""
Default targeting condition evaluator.

Conditions use a MongoDB-like syntax, for example::

    {"country": {"$in": ["US", "CA"]}, "age": {"$gte": 18}}

The engine only relies on the ``evalCondition(attributes, condition)``
signature, so a host can plug in its own matcher through the ``Context``.
"""

import logging
import re

from typing import Any, Callable, Dict, List

logger = logging.getLogger("splitkit.conditions")


def evalCondition(attributes: dict, condition: dict) -> bool:
    if "$or" in condition:
        return evalOr(attributes, condition["$or"])
    if "$nor" in condition:
        return not evalOr(attributes, condition["$nor"])
    if "$and" in condition:
        return evalAnd(attributes, condition["$and"])
    if "$not" in condition:
        return not evalCondition(attributes, condition["$not"])

    return all(
        evalConditionValue(value, getPath(attributes, path))
        for path, value in condition.items()
    )


def evalOr(attributes: dict, conditions: List[dict]) -> bool:
    if not conditions:
        return True
    return any(evalCondition(attributes, c) for c in conditions)


def evalAnd(attributes: dict, conditions: List[dict]) -> bool:
    return all(evalCondition(attributes, c) for c in conditions)


def isOperatorObject(obj: dict) -> bool:
    return all(key.startswith("$") for key in obj.keys())


def getType(attributeValue) -> str:
    # bool is checked first since it is a subclass of int
    if attributeValue is None:
        return "null"
    if isinstance(attributeValue, bool):
        return "boolean"
    if isinstance(attributeValue, (int, float)):
        return "number"
    if isinstance(attributeValue, str):
        return "string"
    if isinstance(attributeValue, (list, set, tuple)):
        return "array"
    if isinstance(attributeValue, dict):
        return "object"
    return "unknown"


def getPath(attributes: dict, path: str):
    current: Any = attributes
    for segment in path.split("."):
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        else:
            return None
    return current


def evalConditionValue(conditionValue, attributeValue) -> bool:
    if isinstance(conditionValue, dict) and isOperatorObject(conditionValue):
        return all(
            evalOperatorCondition(op, attributeValue, value)
            for op, value in conditionValue.items()
        )
    return conditionValue == attributeValue


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def compare(val1, val2) -> int:
    if _is_number(val1) and not _is_number(val2):
        val2 = 0 if val2 is None else float(val2)
    elif _is_number(val2) and not _is_number(val1):
        val1 = 0 if val1 is None else float(val1)

    if val1 > val2:
        return 1
    if val1 < val2:
        return -1
    return 0


def paddedVersionString(version) -> str:
    if _is_number(version):
        version = str(version)
    if not version or not isinstance(version, str):
        version = "0"

    # "v1.2.3-rc.1+build" -> ["1", "2", "3", "rc", "1"]
    parts = re.split(r"[-.]", re.sub(r"(^v|\+.*$)", "", version))
    # "~" sorts after any pre-release tag, so 1.0.0 > 1.0.0-beta
    if len(parts) == 3:
        parts.append("~")
    return "-".join(p.rjust(5, " ") if p.isdigit() else p for p in parts)


def isIn(conditionValue, attributeValue) -> bool:
    if isinstance(attributeValue, list):
        return any(item in conditionValue for item in attributeValue)
    return attributeValue in conditionValue


def elemMatch(condition, attributeValue) -> bool:
    if not isinstance(attributeValue, list):
        return False

    for item in attributeValue:
        if isOperatorObject(condition):
            if evalConditionValue(condition, item):
                return True
        elif evalCondition(item, condition):
            return True
    return False


def _comparison(check: Callable[[int], bool]) -> Callable[[Any, Any], bool]:
    def op(attributeValue, conditionValue) -> bool:
        try:
            return check(compare(attributeValue, conditionValue))
        except (TypeError, ValueError):
            return False
    return op


def _version(check: Callable[[str, str], bool]) -> Callable[[Any, Any], bool]:
    def op(attributeValue, conditionValue) -> bool:
        return check(paddedVersionString(attributeValue), paddedVersionString(conditionValue))
    return op


def _regex(attributeValue, pattern) -> bool:
    try:
        return bool(re.search(pattern, attributeValue))
    except (re.error, TypeError):
        return False


def _in(attributeValue, conditionValue) -> bool:
    return isinstance(conditionValue, list) and isIn(conditionValue, attributeValue)


def _nin(attributeValue, conditionValue) -> bool:
    return isinstance(conditionValue, list) and not isIn(conditionValue, attributeValue)


def _size(attributeValue, conditionValue) -> bool:
    if not isinstance(attributeValue, list):
        return False
    return evalConditionValue(conditionValue, len(attributeValue))


def _all(attributeValue, conditionValue) -> bool:
    if not isinstance(attributeValue, list):
        return False
    return all(
        any(evalConditionValue(cond, attr) for attr in attributeValue)
        for cond in conditionValue
    )


def _exists(attributeValue, conditionValue) -> bool:
    if not conditionValue:
        return attributeValue is None
    return attributeValue is not None


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$eq": _comparison(lambda c: c == 0),
    "$ne": _comparison(lambda c: c != 0),
    "$lt": _comparison(lambda c: c < 0),
    "$lte": _comparison(lambda c: c <= 0),
    "$gt": _comparison(lambda c: c > 0),
    "$gte": _comparison(lambda c: c >= 0),
    "$veq": _version(lambda a, b: a == b),
    "$vne": _version(lambda a, b: a != b),
    "$vlt": _version(lambda a, b: a < b),
    "$vlte": _version(lambda a, b: a <= b),
    "$vgt": _version(lambda a, b: a > b),
    "$vgte": _version(lambda a, b: a >= b),
    "$regex": _regex,
    "$in": _in,
    "$nin": _nin,
    "$elemMatch": lambda attr, cond: elemMatch(cond, attr),
    "$size": _size,
    "$all": _all,
    "$exists": _exists,
    "$type": lambda attr, cond: getType(attr) == cond,
    "$not": lambda attr, cond: not evalConditionValue(cond, attr),
}


def evalOperatorCondition(operator: str, attributeValue, conditionValue) -> bool:
    op = OPERATORS.get(operator)
    if op is None:
        logger.warning("Unknown condition operator %s", operator)
        return False
    return op(attributeValue, conditionValue)
