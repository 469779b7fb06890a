"""
Tests for the formula evaluator.
"""

import logging
import math

import pytest

from iotcs.formula import (
    Evaluator,
    Formula,
    MappingValueProvider,
    Node,
    Operation,
    Terminal,
    TerminalType,
    Value,
    compute,
    like,
    like_to_regex,
)


def compute_formula(
    source: str,
    current: dict | None = None,
    in_process: dict | None = None,
) -> Value:
    """Helper to parse a formula and compute it against attribute values."""
    provider = MappingValueProvider(current, in_process)
    return Formula(source).compute(provider)


def string(value: str) -> Terminal:
    return Terminal(terminal_type=TerminalType.STRING, value=value)


def number(value: str) -> Terminal:
    return Terminal(terminal_type=TerminalType.NUMBER, value=value)


class TestArithmetic:
    """Tests for arithmetic operators."""

    def test_addition(self):
        assert compute_formula("1 + 2") == 3.0

    def test_result_is_float(self):
        assert isinstance(compute_formula("1 + 2"), float)

    def test_precedence(self):
        assert compute_formula("2 + 3 * 4") == 14.0
        assert compute_formula("(2 + 3) * 4") == 20.0

    def test_left_associative_subtraction(self):
        assert compute_formula("10 - 3 - 2") == 5.0
        assert compute_formula("10-3-2-1") == 4.0

    def test_left_associative_division(self):
        assert compute_formula("100 / 10 / 5") == 2.0

    def test_division(self):
        assert compute_formula("7 / 2") == 3.5

    def test_modulo(self):
        assert compute_formula("7 % 3") == 1.0

    def test_modulo_takes_sign_of_dividend(self):
        assert compute_formula("-7 % 3") == -1.0

    def test_decimal(self):
        assert compute_formula("0.1 + 0.2") == pytest.approx(0.3)

    def test_unary(self):
        assert compute_formula("-5 + 2") == -3.0
        assert compute_formula("+5") == 5.0
        assert compute_formula("-(1 + 2)") == -3.0

    def test_division_by_zero_is_infinite(self):
        assert compute_formula("1 / 0") == math.inf
        assert compute_formula("-1 / 0") == -math.inf

    def test_zero_over_zero_is_nan(self):
        assert math.isnan(compute_formula("0 / 0"))

    def test_modulo_by_zero_is_nan(self):
        assert math.isnan(compute_formula("5 % 0"))

    def test_malformed_number_is_nan(self):
        assert math.isnan(compute_formula("1.5.3"))


class TestStrings:
    """Tests for string values."""

    def test_string_literal(self):
        assert compute_formula('"abc"') == "abc"

    def test_identifier_evaluates_to_its_text(self):
        assert compute_formula("abc") == "abc"

    def test_concatenation(self):
        assert compute_formula('"a" + "b"') == "ab"

    def test_string_in_numeric_context_is_nan(self):
        assert math.isnan(compute_formula('"a" + 1'))
        assert math.isnan(compute_formula('"2" * 3'))


class TestAttributes:
    """Tests for attribute references."""

    def test_in_process_value(self):
        assert compute_formula("$(t) + 1", in_process={"t": 5}) == 6.0

    def test_in_process_falls_back_to_current(self):
        assert compute_formula("$(t) + 1", current={"t": 5}) == 6.0

    def test_in_process_preferred_over_current(self):
        assert compute_formula("$(t)", current={"t": 5}, in_process={"t": 9}) == 9.0

    def test_current_ignores_in_process(self):
        assert compute_formula("$$(t)", current={"t": 5}, in_process={"t": 9}) == 5.0

    def test_missing_attribute_is_nan(self):
        assert math.isnan(compute_formula("$(missing) + 1"))

    def test_boolean_attribute(self):
        assert compute_formula("$(on)", current={"on": True}) == 1.0
        assert compute_formula("$(on)", current={"on": False}) == 0.0

    def test_integer_attribute_becomes_float(self):
        value = compute_formula("$(count)", current={"count": 3})
        assert value == 3.0
        assert isinstance(value, float)

    def test_string_attribute(self):
        assert compute_formula("$(name)", current={"name": "pump"}) == "pump"

    def test_unsupported_attribute_type_is_nan(self, caplog):
        with caplog.at_level(logging.WARNING, logger="iotcs.formula.evaluator"):
            value = compute_formula("$(tags)", current={"tags": ["a"]})
        assert math.isnan(value)
        assert "attribute_type_mismatch" in caplog.text

    def test_attribute_names_may_contain_minus(self):
        assert compute_formula("$(engine-temp) * 2", current={"engine-temp": 4}) == 8.0


class TestComparison:
    """Tests for NaN-aware relational operators."""

    def test_ordering(self):
        assert compute_formula("2 > 1") == 1.0
        assert compute_formula("1 > 2") == 0.0
        assert compute_formula("2 >= 2") == 1.0
        assert compute_formula("1 < 2") == 1.0
        assert compute_formula("3 <= 2") == 0.0

    def test_unknown_lhs_is_false(self):
        assert compute_formula("$(x) > 1") == 0.0
        assert compute_formula("$(x) < 1") == 0.0
        assert compute_formula("$(x) >= 1") == 0.0
        assert compute_formula("$(x) <= 1") == 0.0

    def test_unknown_rhs_is_true(self):
        assert compute_formula("1 > $(x)") == 1.0
        assert compute_formula("1 < $(x)") == 1.0
        assert compute_formula("1 >= $(x)") == 1.0
        assert compute_formula("1 <= $(x)") == 1.0

    def test_both_unknown(self):
        assert compute_formula("$(x) > $(y)") == 0.0
        assert compute_formula("$(x) < $(y)") == 0.0
        assert compute_formula("$(x) >= $(y)") == 1.0
        assert compute_formula("$(x) <= $(y)") == 1.0


class TestEquality:
    """Tests for EQ and NEQ."""

    def test_numbers(self):
        assert compute_formula("1 == 1") == 1.0
        assert compute_formula("1 = 2") == 0.0
        assert compute_formula("1 != 2") == 1.0

    def test_strings(self):
        assert compute_formula('"a" == "a"') == 1.0
        assert compute_formula('"a" != "b"') == 1.0

    def test_type_mismatch_is_not_equal(self):
        assert compute_formula('1 == "1"') == 0.0
        assert compute_formula('1 != "1"') == 1.0

    def test_unknown_equals_unknown(self):
        assert compute_formula("$(x) == $(y)") == 1.0

    def test_unknown_does_not_equal_number(self):
        assert compute_formula("$(x) == 1") == 0.0

    def test_zero_sign_matters(self):
        assert compute_formula("0 == -0") == 0.0
        assert compute_formula("0 != -0") == 1.0
        assert compute_formula("-0 == -0") == 1.0
        assert compute_formula("$(z) == 0", in_process={"z": -0.0}) == 0.0

    def test_zero_sign_ignored_by_ordering_and_logic(self):
        assert compute_formula("-0 < 0") == 0.0
        assert compute_formula("-0 >= 0") == 1.0
        assert compute_formula("-0 || 0") == 0.0


class TestLogical:
    """Tests for logical operators."""

    def test_and(self):
        assert compute_formula("1 && 1") == 1.0
        assert compute_formula("1 && 0") == 0.0
        assert compute_formula("1 AND 2") == 1.0

    def test_or(self):
        assert compute_formula("1 || 0") == 1.0
        assert compute_formula("0 || 0") == 0.0
        assert compute_formula("0 OR 3") == 1.0

    def test_and_with_unknown_is_false(self):
        assert compute_formula("$(x) && 1") == 0.0
        assert compute_formula("1 && $(x)") == 0.0

    def test_or_with_unknown(self):
        assert compute_formula("$(x) || 0") == 1.0
        assert compute_formula("0 || $(x)") == 1.0
        assert compute_formula("$(x) || $(y)") == 0.0

    def test_not(self):
        assert compute_formula("!1") == 0.0
        assert compute_formula("!0") == 1.0
        assert compute_formula("NOT 1") == 0.0

    def test_not_is_true_for_anything_but_one(self):
        assert compute_formula("!2") == 1.0
        assert compute_formula("!$(x)") == 1.0

    def test_not_of_comparison(self):
        assert compute_formula("!(2 > 1)") == 0.0


class TestTernary:
    """Tests for the conditional operator."""

    def test_true_branch(self):
        assert compute_formula("1 ? 10 : 20") == 10.0

    def test_false_branch(self):
        assert compute_formula("0 ? 10 : 20") == 20.0

    def test_only_exactly_one_selects_true_branch(self):
        assert compute_formula("2 ? 10 : 20") == 20.0

    def test_unknown_condition_selects_false_branch(self):
        assert compute_formula("$(x) ? 10 : 20") == 20.0

    def test_with_attributes(self):
        source = "$(t) > 50 ? $(t) * 2 : 0"
        assert compute_formula(source, current={"t": 60}) == 120.0
        assert compute_formula(source, current={"t": 40}) == 0.0

    def test_branches_may_be_strings(self):
        assert compute_formula('$(on) ? "yes" : "no"', current={"on": True}) == "yes"


class TestLike:
    """Tests for LIKE pattern matching."""

    def test_percent_matches_any_run(self):
        assert compute_formula('"abc" LIKE "a%"') == 1.0
        assert compute_formula('"abc" LIKE "%c"') == 1.0
        assert compute_formula('"abc" LIKE "b%"') == 0.0

    def test_underscore_matches_one_character(self):
        assert compute_formula('"abc" LIKE "a_c"') == 1.0
        assert compute_formula('"abc" LIKE "a_"') == 0.0

    def test_escaped_wildcards_are_literal(self):
        assert compute_formula(r'"a%c" LIKE "a\%c"') == 1.0
        assert compute_formula(r'"abc" LIKE "a\%c"') == 0.0
        assert compute_formula(r'"a_c" LIKE "a\_c"') == 1.0

    def test_regex_characters_are_literal(self):
        assert compute_formula('"a.c" LIKE "a.c"') == 1.0
        assert compute_formula('"abc" LIKE "a.c"') == 0.0

    def test_non_string_is_false(self):
        assert compute_formula('1 LIKE "1"') == 0.0
        assert compute_formula('$(x) LIKE "%"') == 0.0

    def test_attribute(self):
        assert compute_formula('$(id) LIKE "pump-%"', current={"id": "pump-7"}) == 1.0

    def test_like_to_regex(self):
        assert like_to_regex("a%b_c") == "a.*b.c"
        assert like_to_regex("a.b") == "a\\.b"
        assert like_to_regex("50\\%") == "50%"

    def test_like_matches_whole_string(self):
        assert like("abc", "abc")
        assert not like("abcd", "abc")


class TestFunctions:
    """Tests for built-in functions."""

    def test_upper(self):
        assert compute_formula('UPPER("abc")') == "ABC"

    def test_lower(self):
        assert compute_formula('LOWER("ABC")') == "abc"

    def test_function_names_are_case_insensitive(self):
        assert compute_formula('upper("abc")') == "ABC"
        assert compute_formula('Lower("ABC")') == "abc"

    def test_function_of_attribute(self):
        assert compute_formula("UPPER($(name))", current={"name": "pump"}) == "PUMP"

    def test_comparison_with_function(self):
        assert compute_formula('UPPER($(name)) == "PUMP"', current={"name": "Pump"}) == 1.0

    def test_no_argument_is_empty_string(self):
        assert compute_formula("UPPER()") == ""

    def test_non_string_argument_is_nan(self, caplog):
        with caplog.at_level(logging.WARNING, logger="iotcs.formula.evaluator"):
            assert math.isnan(compute_formula("UPPER(1)"))
        assert "function_argument_not_string" in caplog.text

    def test_unknown_function_is_nan(self, caplog):
        with caplog.at_level(logging.WARNING, logger="iotcs.formula.evaluator"):
            assert math.isnan(compute_formula("foo(1)"))
        assert "unknown_function" in caplog.text
        assert caplog.records[-1].function == "foo"


class TestEvaluator:
    """Tests for direct evaluator use."""

    def test_missing_node_is_nan(self):
        assert math.isnan(compute(None, MappingValueProvider()))

    def test_alternative_alone_is_nan(self):
        node = Node(Operation.ALTERNATIVE, number("1"), number("2"))
        assert math.isnan(compute(node, MappingValueProvider()))

    def test_upper_operation(self):
        node = Node(Operation.UPPER, string("abc"))
        assert compute(node, MappingValueProvider()) == "ABC"

    def test_lower_operation_on_number_is_nan(self):
        node = Node(Operation.LOWER, number("1"))
        assert math.isnan(compute(node, MappingValueProvider()))

    def test_injected_logger(self, caplog):
        custom = logging.getLogger("tests.formula.custom")
        evaluator = Evaluator(MappingValueProvider(), logger=custom)
        with caplog.at_level(logging.WARNING, logger="tests.formula.custom"):
            assert math.isnan(evaluator.compute(Formula("bogus(1)").root))
        assert caplog.records[-1].name == "tests.formula.custom"

    def test_compute_is_pure(self):
        provider = MappingValueProvider(current={"t": 5}, in_process={"t": 7})
        formula = Formula("$(t) * 2 + $$(t)")
        assert formula.compute(provider) == 19.0
        assert formula.compute(provider) == 19.0
        assert provider.get_in_process_value("t") == 7
        assert provider.get_current_value("t") == 5

    def test_provider_errors_propagate(self):
        class FailingProvider:
            def get_current_value(self, name):
                raise RuntimeError("device offline")

            def get_in_process_value(self, name):
                return None

        with pytest.raises(RuntimeError):
            Formula("$(t)").compute(FailingProvider())
