"""Tests for the expression builder E."""

import pytest
from simplisp import E, Atom, Compound, SingleVar, RestVar


class TestExprBuilder:
    """Tests for E expression builder."""

    def test_parse_simple(self):
        """E() parses simple s-expressions."""
        assert E("x") == Atom("symbol", "x")
        assert E("42") == Atom("integer", 42)
        assert E("3.14") == Atom("float", 3.14)

    def test_parse_nested(self):
        assert E("(+ x (* 2 y))") == E.op("+", "x", E.op("*", 2, "y"))

    def test_parse_patterns(self):
        """E.pattern() and E(..., patterns=True) read placeholders."""
        assert E.pattern("(+ ?x 1)") == E("(+ ?x 1)", patterns=True)
        assert E.pattern("(+ ?x 1)")[1] == SingleVar("x")

    def test_op_variadic(self):
        """E.op() handles any number of arguments."""
        assert E.op("+") == E("(+)")
        assert E.op("+", "x", "y", "z") == E("(+ x y z)")

    def test_op_custom_operators(self):
        assert E.op("clojure.string/join", "xs") == E("(clojure.string/join xs)")

    def test_literal_builders(self):
        assert E.sym("x") == E("x")
        assert E.kw("k") == E(":k")
        assert E.string("s") == E('"s"')
        assert E.num(2) == E("2")
        assert E.num(2.5) == E("2.5")
        assert E.char("a") == E("\\a")

    def test_annotations_use_builtin_str(self):
        """Builder method names do not shadow builtins used in annotations."""
        assert not hasattr(E, "str")
        assert type(E).op.__annotations__["name"] is str
        assert type(E).char.__annotations__["value"] is str

    def test_num_rejects_non_numbers(self):
        with pytest.raises(TypeError):
            E.num(True)
        with pytest.raises(TypeError):
            E.num("2")

    def test_coerce(self):
        """Python values become atoms; expressions pass through."""
        assert E.coerce(None) == E("nil")
        assert E.coerce(True) == E("true")
        assert E.coerce(1) == E("1")
        assert E.coerce(1.0) == E("1.0")
        assert E.coerce("x") == E("x")
        node = E("(f)")
        assert E.coerce(node) is node

    def test_coerce_rejects_other_values(self):
        with pytest.raises(TypeError):
            E.coerce(object())

    def test_compound_builders(self):
        assert E.vector(1, 2) == E("[1 2]")
        assert E.map(E.kw("a"), 1) == E("{:a 1}")
        assert E.set(1, 2) == E("#{1 2}")
        assert E.list() == Compound("list", [])

    def test_placeholders(self):
        pat = E.op("conj", E.vector(), E.rest("xs"))
        assert pat == E.pattern("(conj [] . ?xs)")
        assert E.var("x") == SingleVar("x")
        assert E.rest("xs") == RestVar("xs")

    def test_built_nodes_have_no_position(self):
        assert E.op("+", "x", 1).position is None

    def test_repr(self):
        assert "builder" in repr(E)
