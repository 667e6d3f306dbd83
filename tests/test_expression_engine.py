"""Tests for the expression engine."""

import pytest

from bpm_engine.core.exceptions import EvalError
from bpm_engine.engine.expression_engine import UNDEFINED, ExpressionEngine


@pytest.fixture
def expressions() -> ExpressionEngine:
    return ExpressionEngine()


DATA = {
    "amount": 1500,
    "decision": "approved",
    "customer": {"name": "Acme", "tier": "gold", "tags": ["vip", "eu"]},
    "items": [{"sku": "A1", "qty": 2}, {"sku": "B2", "qty": 3}],
}


def test_comparisons_and_bare_names(expressions):
    assert expressions.evaluate("amount > 1000", DATA) is True
    assert expressions.evaluate('decision == "approved"', DATA) is True
    assert expressions.evaluate("amount * 2", DATA) == 3000


def test_data_prefix_and_nested_access(expressions):
    assert expressions.evaluate("data.customer.name", DATA) == "Acme"
    assert expressions.evaluate('customer["tier"]', DATA) == "gold"
    assert expressions.evaluate("items[1].qty", DATA) == 3


def test_javascript_operators(expressions):
    assert expressions.evaluate('amount > 1000 && customer.tier === "gold"', DATA) is True
    assert expressions.evaluate("amount < 10 || !false", DATA) is True
    assert expressions.evaluate('decision !== "rejected"', DATA) is True


def test_operators_inside_string_literals_are_kept(expressions):
    assert expressions.evaluate('"a && b"', {}) == "a && b"


def test_missing_variables_are_undefined_and_fail_closed(expressions):
    assert expressions.evaluate("missing", DATA) is UNDEFINED
    assert expressions.evaluate("customer.address.city", DATA) is UNDEFINED
    assert expressions.evaluate_bool("missing > 5", DATA) is False
    assert expressions.evaluate_bool("missing < 5", DATA) is False
    assert expressions.evaluate_bool("missing == 0", DATA) is False
    assert expressions.evaluate_bool("is_defined(missing)", DATA) is False


def test_helper_functions(expressions):
    assert expressions.evaluate("length(items)", DATA) == 2
    assert expressions.evaluate('includes(customer.tags, "vip")', DATA) is True
    assert expressions.evaluate("upper(customer.name)", DATA) == "ACME"
    assert expressions.evaluate('"vip" in customer.tags', DATA) is True


def test_invalid_syntax_raises_eval_error(expressions):
    with pytest.raises(EvalError) as exc_info:
        expressions.evaluate("amount >", DATA)
    assert exc_info.value.details["expression"] == "amount >"


def test_evaluation_errors_raise_eval_error(expressions):
    with pytest.raises(EvalError):
        expressions.evaluate("amount / 0", DATA)


def test_no_access_to_clock_or_environment(expressions):
    for expression in ("now()", "__import__('os')", "open('x')"):
        with pytest.raises(EvalError):
            expressions.evaluate(expression, {})


def test_render_templates(expressions):
    assert expressions.render("Order for {{ customer.name }}: {{ amount }} EUR", DATA) == "Order for Acme: 1500 EUR"
    assert expressions.render("Hello {{ nobody }}!", DATA) == "Hello !"


def test_resolve_keeps_types_for_single_expressions(expressions):
    resolved = expressions.resolve(
        {"total": "{{ amount }}", "tags": ["{{ customer.tier }}", "fixed"], "missing": "{{ nope }}"},
        DATA,
    )
    assert resolved == {"total": 1500, "tags": ["gold", "fixed"], "missing": None}


def test_evaluate_accepts_template_syntax(expressions):
    assert expressions.evaluate("{{ amount + 1 }}", DATA) == 1501


def test_determinism(expressions):
    results = {expressions.evaluate('amount > 1000 and decision == "approved"', DATA) for _ in range(5)}
    assert results == {True}
