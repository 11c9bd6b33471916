"""Tests for the Rule Store and rule loaders."""

import json

import pytest
from simplisp import (
    E, Rule, RuleMetadata, RuleStore, MalformedRuleError, RestVar, SingleVar, Compound,
    build_rule, parse_rule_line, load_rules_from_dsl, load_rules_from_json,
)


class TestLoad:
    """Tests for RuleStore.load()."""

    def test_load_pairs(self):
        store = RuleStore.load([
            ("(+ ?x 1)", "(inc ?x)"),
            ("(conj [] . ?xs)", "(vector . ?xs)"),
        ])
        assert len(store) == 2
        rules = store.all()
        assert isinstance(rules, tuple)
        assert rules[0].pattern == E.pattern("(+ ?x 1)")
        assert rules[1].replacement == E.pattern("(vector . ?xs)")

    def test_order_preserved(self):
        definitions = [("(f ?x)", "(g ?x)"), ("(a)", "(b)"), ("(f 1)", "1")]
        store = RuleStore.load(definitions)
        assert [r.pattern for r in store.all()] == [E.pattern(p) for p, _ in definitions]

    def test_load_expressions(self):
        """Either side may be an already-built expression."""
        pattern = Compound("list", [E.sym("conj"), E.vector(), RestVar("xs")])
        replacement = Compound("list", [E.sym("vector"), RestVar("xs")])
        store = RuleStore.load([(pattern, replacement)])
        assert store.all()[0].pattern == E.pattern("(conj [] . ?xs)")

    def test_load_empty(self):
        store = RuleStore.load([])
        assert len(store) == 0
        assert store.all() == ()

    def test_anonymous_names(self):
        store = RuleStore.load([("(a)", "(b)"), ("(c)", "(d)")], group="misc")
        assert [r.name for r in store] == ["misc[0]", "misc[1]"]
        assert all(r.group == "misc" for r in store)

    def test_anonymous_names_without_group(self):
        store = RuleStore.load([("(a)", "(b)")])
        assert store.all()[0].name == "rule[0]"

    def test_load_rule_objects(self):
        rule = build_rule("(+ ?x 1)", "(inc ?x)", name="plus-one")
        store = RuleStore.load([rule])
        assert store["plus-one"] is rule

    def test_immutable(self):
        store = RuleStore.load([("(a)", "(b)")])
        assert not hasattr(store, "append")
        with pytest.raises(AttributeError):
            store._rules = ()

    def test_rules_immutable(self):
        """Loaded rules and their metadata cannot be changed in place."""
        rule = RuleStore.load([("(a)", "(b)")], group="g").all()[0]
        with pytest.raises(AttributeError):
            rule.pattern = E.pattern("(g)")
        with pytest.raises(AttributeError):
            rule.metadata = RuleMetadata(name="x")
        with pytest.raises(AttributeError):
            rule.metadata.name = "x"
        assert (rule.pattern, rule.name) == (E.pattern("(a)"), "g[0]")


class TestMalformedRules:
    """Rules that cannot be used are rejected while loading."""

    def test_unbound_placeholder(self):
        with pytest.raises(MalformedRuleError) as exc_info:
            RuleStore.load([("(+ ?x 1)", "(inc ?y)")])
        assert exc_info.value.rule_name == "rule[0]"
        assert "?y" in exc_info.value.reason

    def test_error_names_rule(self):
        with pytest.raises(MalformedRuleError, match=r"arith\[1\]"):
            RuleStore.load([("(a)", "(b)"), ("(f ?x)", "?z")], group="arith")

    def test_unreadable_side(self):
        with pytest.raises(MalformedRuleError):
            RuleStore.load([("(+ ?x 1", "(inc ?x)")])

    def test_two_forms_on_one_side(self):
        with pytest.raises(MalformedRuleError):
            RuleStore.load([("(a) (b)", "(c)")])

    def test_rest_not_last(self):
        pattern = Compound("list", [E.sym("f"), RestVar("xs"), SingleVar("y")])
        with pytest.raises(MalformedRuleError):
            RuleStore.load([(pattern, "(g ?y)")])

    def test_bare_rest(self):
        with pytest.raises(MalformedRuleError):
            RuleStore.load([(RestVar("xs"), "(g)")])
        with pytest.raises(MalformedRuleError):
            RuleStore.load([("(f . ?xs)", RestVar("xs"))])

    def test_single_used_as_rest(self):
        with pytest.raises(MalformedRuleError):
            RuleStore.load([("(f ?x)", "(g . ?x)")])

    def test_rest_used_as_single(self):
        with pytest.raises(MalformedRuleError):
            RuleStore.load([("(f . ?xs)", "(g ?xs)")])

    def test_mixed_kinds_in_pattern(self):
        with pytest.raises(MalformedRuleError):
            RuleStore.load([("(f ?x [. ?x])", "(g ?x)")])

    def test_not_a_pair(self):
        with pytest.raises(MalformedRuleError):
            RuleStore.load([("(a)",)])
        with pytest.raises(MalformedRuleError):
            RuleStore.load([("(a)", 42)])

    def test_rest_splice_anywhere_in_replacement(self):
        store = RuleStore.load([("(->> ?x (?f . ?args))", "(?f ?args... ?x)")])
        assert len(store) == 1

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            RuleStore.load([("(f ?x)", "?y")])

    def test_nothing_loaded_on_error(self):
        """A failing load produces no store at all."""
        store = None
        with pytest.raises(MalformedRuleError):
            store = RuleStore.load([("(a)", "(b)"), ("(f", "(g)")])
        assert store is None


class TestStoreOperations:
    """Tests for grouping, concatenation and lookup."""

    @pytest.fixture
    def store(self):
        return RuleStore.from_groups([
            ("arithmetic", [("(+ ?x 1)", "(inc ?x)"), ("(- ?x 1)", "(dec ?x)")]),
            ("collections", [("(into [] ?c)", "(vec ?c)")]),
        ])

    def test_from_groups_order(self, store):
        assert [r.group for r in store] == ["arithmetic", "arithmetic", "collections"]
        assert store.groups() == ["arithmetic", "collections"]

    def test_from_groups_dict(self):
        store = RuleStore.from_groups({"a": [("(a)", "(b)")], "b": [("(c)", "(d)")]})
        assert store.groups() == ["a", "b"]

    def test_only(self, store):
        only = store.only(["collections"])
        assert len(only) == 1
        assert only.groups() == ["collections"]
        assert len(store) == 3

    def test_without(self, store):
        assert store.without(["collections"]).groups() == ["arithmetic"]

    def test_add(self, store):
        extra = RuleStore.load([("(a)", "(b)")], group="extra")
        combined = store + extra
        assert len(combined) == 4
        assert combined.all()[:3] == store.all()
        assert combined.groups()[-1] == "extra"

    def test_contains_and_getitem(self, store):
        assert "arithmetic[1]" in store
        assert store["arithmetic[1]"].replacement == E.pattern("(dec ?x)")
        with pytest.raises(KeyError):
            _ = store["nope"]

    def test_first_name_wins(self):
        a = build_rule("(a)", "(b)", name="dup")
        b = build_rule("(c)", "(d)", name="dup")
        store = RuleStore([a, b])
        assert store["dup"] is a

    def test_equality(self, store):
        again = RuleStore.from_groups([
            ("arithmetic", [("(+ ?x 1)", "(inc ?x)"), ("(- ?x 1)", "(dec ?x)")]),
            ("collections", [("(into [] ?c)", "(vec ?c)")]),
        ])
        assert store == again
        assert hash(store) == hash(again)

    def test_repr(self, store):
        assert repr(store) == "RuleStore(3 rules)"


class TestDSL:
    """Tests for the rule DSL."""

    def test_parse_named_line(self):
        rule = parse_rule_line('@plus-one "Use inc": (+ ?x 1) => (inc ?x)', "unused")
        assert rule.name == "plus-one"
        assert rule.description == "Use inc"
        assert rule.pattern == E.pattern("(+ ?x 1)")

    def test_parse_anonymous_line(self):
        rule = parse_rule_line("(+ ?x 1) => (inc ?x)", "rule[0]")
        assert rule.name == "rule[0]"

    def test_comments_and_blanks(self):
        assert parse_rule_line("", "r") is None
        assert parse_rule_line("# comment", "r") is None
        assert parse_rule_line("; comment", "r") is None

    def test_set_literal_rule(self):
        """A line opening with #{ is a rule, not a comment."""
        rules = load_rules_from_dsl("""
            # comment
            #{?x} => (hash-set ?x)
            (+ ?x 1) => (inc ?x)
        """)
        assert len(rules) == 2
        assert rules[0].pattern == E.set(E.var("x"))
        assert rules[0].name == "rule[0]"

    def test_malformed_set_literal_rule(self):
        with pytest.raises(MalformedRuleError):
            load_rules_from_dsl("#{?x} => (f ?unbound)")

    def test_missing_arrow(self):
        with pytest.raises(MalformedRuleError):
            parse_rule_line("(+ ?x 1) (inc ?x)", "r")

    def test_groups(self):
        rules = load_rules_from_dsl("""
            [arithmetic]
            (+ ?x 1) => (inc ?x)
            (- ?x 1) => (dec ?x)

            [collections]
            @conj-vec: (conj [] . ?xs) => (vector . ?xs)
        """)
        assert [r.name for r in rules] == ["arithmetic[0]", "arithmetic[1]", "conj-vec"]
        assert [r.group for r in rules] == ["arithmetic", "arithmetic", "collections"]

    def test_malformed_line_names_rule(self):
        with pytest.raises(MalformedRuleError, match="bad-rule"):
            load_rules_from_dsl("@bad-rule: (+ ?x 1) => (inc ?y)")

    def test_to_dsl_loads_back(self):
        store = RuleStore.from_groups([
            ("arithmetic", [("(+ ?x 1)", "(inc ?x)")]),
            ("misc", [("(->> ?x (?f . ?args))", "(?f ?args... ?x)")]),
        ])
        again = RuleStore.from_dsl(store.to_dsl(name="exported"))
        assert again == store

    def test_rule_to_dsl(self):
        rule = build_rule("(conj [] . ?xs)", "(vector . ?xs)", name="conj-vec",
                          description="Use vector")
        assert rule.to_dsl() == '@conj-vec "Use vector": (conj [] . ?xs) => (vector . ?xs)'


class TestJSON:
    """Tests for JSON rule files."""

    def test_objects_and_pairs(self):
        rules = load_rules_from_json(json.dumps({
            "groups": [
                {"name": "arithmetic", "rules": [
                    {"name": "plus-one", "pattern": "(+ ?x 1)", "replacement": "(inc ?x)"},
                    ["(- ?x 1)", "(dec ?x)"],
                ]},
            ],
            "rules": [["(a)", "(b)"]],
        }))
        assert [r.name for r in rules] == ["plus-one", "arithmetic[1]", "rule[0]"]
        assert [r.group for r in rules] == ["arithmetic", "arithmetic", None]

    def test_missing_replacement(self):
        with pytest.raises(MalformedRuleError, match="plus-one"):
            load_rules_from_json(json.dumps({"rules": [{"name": "plus-one", "pattern": "(+ ?x 1)"}]}))

    @pytest.mark.parametrize("document", [
        [["(a)", "(b)"]],
        "rules",
        {"groups": [["(a)", "(b)"]]},
        {"groups": {"name": "g"}},
        {"rules": {"a": "b"}},
        {"groups": [{"name": "g", "rules": "(a) => (b)"}]},
    ])
    def test_wrong_shape(self, document):
        with pytest.raises(MalformedRuleError):
            load_rules_from_json(json.dumps(document))

    def test_name_prefix(self):
        rules = load_rules_from_json(json.dumps({"rules": [["(a)", "(b)"]]}), name_prefix="base")
        assert rules[0].name == "base/rule[0]"

    def test_to_json_loads_back(self):
        store = RuleStore.load([("(+ ?x 1)", "(inc ?x)")], group="arithmetic")
        assert RuleStore.from_json(store.to_json()) == store

    def test_from_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"rules": [["(into [] ?c)", "(vec ?c)"]]}))
        store = RuleStore.from_file(path)
        assert len(store) == 1


class TestRuleMetadata:
    """Tests for Rule and RuleMetadata value objects."""

    def test_metadata_equality(self):
        assert RuleMetadata("a", "d", "g") == RuleMetadata("a", "d", "g")
        assert RuleMetadata("a") != RuleMetadata("b")

    def test_rule_properties(self):
        rule = Rule(E.pattern("(a)"), E.pattern("(b)"), RuleMetadata("r", "desc", "grp"))
        assert (rule.name, rule.description, rule.group) == ("r", "desc", "grp")

    def test_to_dict(self):
        rule = build_rule("(+ ?x 1)", "(inc ?x)", name="plus-one", group="arithmetic")
        assert rule.to_dict() == {
            "pattern": "(+ ?x 1)",
            "replacement": "(inc ?x)",
            "name": "plus-one",
            "group": "arithmetic",
        }
