"""Unit tests for condition evaluation."""
from __future__ import annotations

import pytest

from conditions import ConditionAdapter, ExpressionEvaluator, parse_input, refresh_inputs
from config import Condition, ConditionInput, EmuTestConfig
from exceptions import ConditionEvaluationError


def _condition(expression, **inputs):
    return Condition(expression=expression, inputs={k: ConditionInput(name=k, **v) for k, v in inputs.items()})


class ExplodingEvaluator:
    def evaluate(self, condition):
        raise RuntimeError("evaluator blew up")


class TestParseInput:
    @pytest.mark.parametrize(
        "raw,kind,expected",
        [
            ("42", "int", 42),
            ("0x10", "int", 16),
            ("ff", "hex", 255),
            ("1.5", "float", 1.5),
            ("true", "bool", True),
            ("0", "bool", False),
            ("mario", "string", "mario"),
        ],
    )
    def test_parses_declared_type(self, raw, kind, expected):
        assert parse_input(ConditionInput(name="v", raw_value=raw, type=kind)) == expected

    def test_missing_value_raises(self):
        with pytest.raises(ConditionEvaluationError):
            parse_input(ConditionInput(name="v", type="int"))

    def test_unparseable_value_raises(self):
        with pytest.raises(ConditionEvaluationError):
            parse_input(ConditionInput(name="v", raw_value="abc", type="int"))


class TestExpressionEvaluator:
    def test_comparison_over_inputs(self):
        condition = _condition({"op": ">=", "args": [{"input": "coins"}, 3]}, coins={"raw_value": "5", "type": "int"})
        assert ExpressionEvaluator().evaluate(condition) is True

    def test_nested_logic_and_arithmetic(self):
        condition = _condition(
            {
                "op": "and",
                "args": [
                    {"op": "==", "args": [{"input": "stage"}, {"const": "plaza"}]},
                    {"op": ">", "args": [{"op": "+", "args": [{"input": "a"}, {"input": "b"}]}, 10]},
                ],
            },
            stage={"raw_value": "plaza"},
            a={"raw_value": "4", "type": "int"},
            b={"raw_value": "0x08", "type": "int"},
        )
        assert ExpressionEvaluator().evaluate(condition) is True

    def test_numeric_result(self):
        condition = _condition({"op": "*", "args": [{"input": "coins"}, 10]}, coins={"raw_value": "3", "type": "int"})
        assert ExpressionEvaluator().evaluate(condition) == 30

    def test_unknown_operator_raises(self):
        with pytest.raises(ConditionEvaluationError):
            ExpressionEvaluator().evaluate(_condition({"op": "xor", "args": [True, False]}))

    def test_unknown_input_raises(self):
        with pytest.raises(ConditionEvaluationError):
            ExpressionEvaluator().evaluate(_condition({"input": "missing"}))

    def test_division_by_zero_raises(self):
        with pytest.raises(ConditionEvaluationError):
            ExpressionEvaluator().evaluate(_condition({"op": "/", "args": [1, 0]}))

    def test_string_result_rejected(self):
        with pytest.raises(ConditionEvaluationError):
            ExpressionEvaluator().evaluate(_condition({"const": "yes"}))


class TestRefreshInputs:
    def test_missing_name_keeps_previous_raw_value(self):
        condition = _condition({"input": "x"}, x={"raw_value": "7", "type": "int"})
        refresh_inputs(condition, {"other": "1"})
        assert condition.inputs["x"].raw_value == "7"

    def test_never_seen_name_stays_unset(self):
        condition = _condition({"input": "x"}, x={"type": "int"})
        refresh_inputs(condition, {})
        assert condition.inputs["x"].raw_value is None

    def test_parsed_value_invalidated(self):
        condition = _condition({"input": "x"}, x={"raw_value": "7", "type": "int"})
        ExpressionEvaluator().evaluate(condition)
        assert condition.inputs["x"].parsed_value == 7
        refresh_inputs(condition, {"x": "8"})
        assert condition.inputs["x"].parsed_value is None
        assert ExpressionEvaluator().evaluate(condition) == 8


class TestConditionAdapter:
    def test_evaluates_all_conditions(self, boot_config):
        adapter = ConditionAdapter(boot_config.test_config)
        outcome = adapter.evaluate({"goal": "1", "coins": "4"})
        assert outcome.success_result is True
        assert outcome.fail_result is False
        assert outcome.reward == 40.0

    def test_last_known_value_survives_missing_snapshot_entry(self, boot_config):
        adapter = ConditionAdapter(boot_config.test_config)
        adapter.evaluate({"goal": "0", "coins": "4"})
        outcome = adapter.evaluate({"goal": "0"})
        assert outcome.reward == 40.0
        assert outcome.fail_result is False

    def test_never_supplied_input_is_conservative_fail(self, boot_config):
        adapter = ConditionAdapter(boot_config.test_config)
        outcome = adapter.evaluate({"coins": "4"})
        assert (outcome.success_result, outcome.fail_result, outcome.reward) == (False, True, None)

    def test_evaluator_exception_yields_fail(self, boot_config):
        adapter = ConditionAdapter(boot_config.test_config, evaluator=ExplodingEvaluator())
        outcome = adapter.evaluate({"goal": "1", "coins": "4"})
        assert (outcome.success_result, outcome.fail_result, outcome.reward) == (False, True, None)

    def test_absent_conditions(self):
        adapter = ConditionAdapter(EmuTestConfig(id="t"))
        outcome = adapter.evaluate({"anything": "1"})
        assert (outcome.success_result, outcome.fail_result, outcome.reward) == (False, False, None)

    def test_conditions_keep_isolated_input_state(self, boot_config):
        adapter = ConditionAdapter(boot_config.test_config)
        adapter.evaluate({"goal": "0", "coins": "2"})
        assert adapter.fail_condition.inputs["coins"] is not adapter.reward_condition.inputs["coins"]
        assert boot_config.test_config.reward_condition.inputs["coins"].raw_value is None
