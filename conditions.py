"""Success/fail/reward evaluation against live memory-watch values."""
from __future__ import annotations

import logging
import operator
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Union

from bench_types import ConditionOutcome
from config import Condition, ConditionInput, EmuTestConfig
from exceptions import ConditionEvaluationError

Number = Union[int, float]


class ConditionEvaluator(Protocol):
    def evaluate(self, condition: Condition) -> Union[bool, Number]: ...


def parse_input(condition_input: ConditionInput) -> Any:
    """Parse an input's raw string according to its declared type."""
    raw = condition_input.raw_value
    if raw is None:
        raise ConditionEvaluationError(f"Input {condition_input.name!r} has no value")
    kind = condition_input.type
    try:
        if kind == "int":
            return int(raw.strip(), 0)
        if kind == "hex":
            return int(raw.strip(), 16)
        if kind == "float":
            return float(raw)
        if kind == "bool":
            lowered = raw.strip().lower()
            if lowered in {"true", "1"}:
                return True
            if lowered in {"false", "0"}:
                return False
            raise ValueError(f"not a boolean: {raw!r}")
    except ValueError as exc:
        raise ConditionEvaluationError(f"Cannot parse input {condition_input.name!r} as {kind}: {exc}") from exc
    return raw


def _and(*args: Any) -> bool:
    return all(bool(a) for a in args)


def _or(*args: Any) -> bool:
    return any(bool(a) for a in args)


def _not(value: Any) -> bool:
    return not value


def _div(a: Number, b: Number) -> float:
    if b == 0:
        raise ConditionEvaluationError("Division by zero")
    return a / b


OPERATORS: Dict[str, Callable[..., Any]] = {
    "and": _and,
    "or": _or,
    "not": _not,
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": _div,
}


class ExpressionEvaluator:
    """Evaluates a JSON expression tree over a condition's inputs.

    Nodes are `{"input": name}`, `{"const": value}`, bare literals, or
    `{"op": <operator>, "args": [...]}`. Parsed input values are cached on the
    input objects.
    """

    def evaluate(self, condition: Condition) -> Union[bool, Number]:
        result = self._eval(condition.expression, condition.inputs)
        if isinstance(result, (bool, int, float)):
            return result
        raise ConditionEvaluationError("Condition did not produce a boolean or number", condition.expression)

    def _resolve_input(self, name: str, inputs: Mapping[str, ConditionInput]) -> Any:
        condition_input = inputs.get(name)
        if condition_input is None:
            raise ConditionEvaluationError(f"Unknown input: {name}")
        if condition_input.parsed_value is None:
            condition_input.parsed_value = parse_input(condition_input)
        return condition_input.parsed_value

    def _eval(self, node: Any, inputs: Mapping[str, ConditionInput]) -> Any:
        if isinstance(node, dict):
            if "input" in node:
                return self._resolve_input(str(node["input"]), inputs)
            if "const" in node:
                return node["const"]
            op = node.get("op")
            fn = OPERATORS.get(op) if isinstance(op, str) else None
            if fn is None:
                raise ConditionEvaluationError(f"Unknown operator: {op!r}", node)
            args = [self._eval(arg, inputs) for arg in node.get("args", [])]
            try:
                return fn(*args)
            except TypeError as exc:
                raise ConditionEvaluationError(f"Bad operands for {op}: {exc}", node) from exc
        if isinstance(node, (bool, int, float, str)) or node is None:
            return node
        raise ConditionEvaluationError(f"Unsupported expression node: {node!r}")


def refresh_inputs(condition: Condition, snapshot: Mapping[str, str]) -> None:
    """Pull current values into the condition's inputs.

    Names absent from the snapshot keep their last known raw value. Parsed
    values are always cleared.
    """
    for name, condition_input in condition.inputs.items():
        if name in snapshot:
            condition_input.raw_value = snapshot[name]
        condition_input.parsed_value = None


class ConditionAdapter:
    """Feeds memory-watch values into the configured conditions.

    Any evaluation error is reported as a fail (success=False, fail=True,
    reward=None).
    """

    def __init__(
        self,
        test_config: EmuTestConfig,
        evaluator: Optional[ConditionEvaluator] = None,
        logger: Optional[logging.Logger] = None,
    ):
        # Private copies so each condition keeps its own fallback history.
        self.success_condition = test_config.success_condition.model_copy(deep=True) if test_config.success_condition else None
        self.fail_condition = test_config.fail_condition.model_copy(deep=True) if test_config.fail_condition else None
        self.reward_condition = test_config.reward_condition.model_copy(deep=True) if test_config.reward_condition else None
        self.evaluator = evaluator or ExpressionEvaluator()
        self.logger = logger or logging.getLogger("emu_conditions")

    def _evaluate(self, condition: Optional[Condition], snapshot: Mapping[str, str]) -> Optional[Union[bool, Number]]:
        if condition is None:
            return None
        refresh_inputs(condition, snapshot)
        return self.evaluator.evaluate(condition)

    def evaluate(self, snapshot: Mapping[str, str]) -> ConditionOutcome:
        try:
            success = self._evaluate(self.success_condition, snapshot)
            fail = self._evaluate(self.fail_condition, snapshot)
            reward = self._evaluate(self.reward_condition, snapshot)
        except Exception as exc:
            self.logger.warning(f"Condition evaluation failed, treating as fail: {exc}")
            return ConditionOutcome(success_result=False, fail_result=True, reward=None)

        return ConditionOutcome(
            success_result=bool(success),
            fail_result=bool(fail),
            reward=float(reward) if reward is not None else None,
        )
