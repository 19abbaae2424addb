"""
Unit Tests - Formula parsing and validation
"""
import pytest

from laika.core.errors import FormulaError
from laika.engine.formula import Call, compile_formula, parse, tokenize


class TestTokenizer:
    """Tests for the formula tokenizer"""

    def test_bare_words_keep_inner_spaces(self):
        tokens = tokenize("fetchCountryVisits(United States)")
        assert [t.kind for t in tokens] == ["word", "lparen", "word", "rparen"]
        assert tokens[2].text == "United States"

    def test_quoted_strings_are_unwrapped(self):
        tokens = tokenize("fetchData('getSessions', \"date\")")
        assert [t.text for t in tokens if t.kind == "string"] == ["getSessions", "date"]

    def test_unterminated_string(self):
        with pytest.raises(FormulaError, match="unterminated"):
            tokenize("fetchData('getSessions")


class TestParser:
    """Tests for the recursive-descent parser"""

    def test_simple_call(self):
        call = parse("fetchScalar(getSessions, date, sessions)")
        assert call.name == "fetchScalar"
        assert [a.text for a in call.args] == ["getSessions", "date", "sessions"]

    def test_nested_call(self):
        call = parse("percentToFraction(priorValue(5))")
        assert isinstance(call.args[0], Call)
        assert call.args[0].name == "priorValue"

    def test_trailing_semicolon_is_allowed(self):
        assert parse("fetchGoalData();").name == "fetchGoalData"

    def test_empty_formula(self):
        with pytest.raises(FormulaError, match="empty"):
            parse("   ")

    def test_trailing_garbage(self):
        with pytest.raises(FormulaError, match="unexpected"):
            parse("fetchGoalCompletions() priorValue(1)")

    def test_missing_paren(self):
        with pytest.raises(FormulaError):
            parse("priorValue(1")

    def test_nesting_limit(self):
        with pytest.raises(FormulaError, match="nested"):
            parse("percentToFraction(percentToFraction(priorValue(1)))")

    def test_code_is_not_a_primitive_name(self):
        with pytest.raises(FormulaError):
            parse("__import__('os').system('ls')")


class TestCompile:
    """Tests for validation against the primitive registry"""

    def test_fetch_scalar(self):
        formula = compile_formula("fetchScalar(getSessions, date, sessions)")
        assert formula.root == Call("fetchScalar", ("getSessions", "date", "sessions"))

    def test_fetch_scalar_with_filter(self):
        formula = compile_formula(
            "fetchScalar(getSessions, country, sessions, 'country == Canada')"
        )
        assert formula.root.args[3] == "country == Canada"

    def test_legacy_names_resolve_to_primitives(self):
        formula = compile_formula("dePercent(getValue(3));")
        assert formula.root == Call("percentToFraction", (Call("priorValue", (3,)),))

    def test_legacy_fetch_data(self):
        formula = compile_formula("fetchData('getBounceRate', 'date', 'bounceRate');")
        assert formula.root.name == "fetchScalar"

    def test_number_literal(self):
        formula = compile_formula("percentToFraction(42.5)")
        assert formula.root.args == (42.5,)

    def test_calls_sees_nested_and_legacy_names(self):
        formula = compile_formula("dePercent(fetchGoalData())")
        assert formula.calls("fetchGoalCompletions")
        assert formula.calls("percentToFraction")
        assert not compile_formula("priorValue(7)").calls("fetchGoalCompletions")

    def test_unknown_primitive(self):
        with pytest.raises(FormulaError, match="unknown primitive: system"):
            compile_formula("system(ls)")

    def test_wrong_arity(self):
        with pytest.raises(FormulaError, match="takes 3-4 arguments, got 2"):
            compile_formula("fetchScalar(getSessions, date)")

    def test_prior_value_needs_integer(self):
        with pytest.raises(FormulaError, match="must be an integer"):
            compile_formula("priorValue(sessions)")

    def test_text_argument_cannot_be_a_call(self):
        with pytest.raises(FormulaError, match="must be text"):
            compile_formula("fetchCountryVisits(priorValue(1))")

    def test_unknown_accessor(self):
        with pytest.raises(FormulaError, match="unknown report accessor"):
            compile_formula("fetchScalar(getEverything, date, sessions)")

    def test_accessor_must_read_a_requested_metric(self):
        with pytest.raises(FormulaError, match="not among the requested metrics"):
            compile_formula("fetchScalar(getPageviews, date, sessions)")

    def test_invalid_filter(self):
        with pytest.raises(FormulaError, match="invalid filter"):
            compile_formula("fetchScalar(getSessions, date, sessions, 'country')")

    def test_error_names_the_metric(self):
        with pytest.raises(FormulaError) as excinfo:
            compile_formula("priorValue()", metric_id=12)
        assert excinfo.value.metric_id == 12
        assert str(excinfo.value).startswith("metric 12:")
