"""
simplisp - pattern-based simplification of Lisp code-as-data

Finds sub-expressions of Clojure-style s-expressions that a rewrite rule
can replace with a simpler, more idiomatic form.

Quick Start:
    from simplisp import Engine, RuleStore, E

    store = RuleStore.load([
        ("(+ ?x 1)", "(inc ?x)"),
        ("(conj [] . ?xs)", "(vector . ?xs)"),
    ])
    engine = Engine(store)

    for result in engine.check_expression(E("(conj [] (+ n 1) 2)")):
        print(result.expr, result.position, result.replacement)

    # Or with the built-in rule groups
    engine = Engine(default_rule_store())
    results = list(engine.check_source(source_text))

Pattern Syntax:
    ?x              - match any one expression, bind to x
    . ?xs / ?xs...  - match the remaining elements of a form, bind to xs
    literal         - match an equal atom or a form of the same shape

Rule DSL (.rules files):
    # Comment
    [group-name]
    @rule-name "Description": (pattern) => (replacement)
    (pattern) => (replacement)
    :include other.rules
"""

__version__ = "0.1.0"

# Expression data model
from .expr import (
    Node,
    Atom,
    Compound,
    SingleVar,
    RestVar,
    Position,
    ExprType,
    walk,
    get_at,
    replace_at,
    strip_positions,
)

# Reader and printer
from .reader import (
    E,
    ReadError,
    parse_sexpr,
    parse_pattern,
    read_forms,
    format_sexpr,
)

# Matching
from .rewriter import (
    match,
    instantiate,
    Bindings,
    NoMatch,
    wrap_bindings,
)

# Rule Store
from .rules import (
    Rule,
    RuleMetadata,
    RuleStore,
    MalformedRuleError,
    build_rule,
    validate_rule,
    parse_rule_line,
    load_rules_from_dsl,
    load_rules_from_file,
    load_rules_from_json,
)

# Built-in rule groups
from .rulesets import (
    ARITHMETIC_RULES,
    COLLECTION_RULES,
    CONTROL_STRUCTURE_RULES,
    EQUALITY_RULES,
    MISC_RULES,
    BUILTIN_RULE_GROUPS,
    DEFAULT_GROUP_ORDER,
    default_rule_store,
)

# Rewrite Engine
from .engine import (
    Engine,
    MatchResult,
)

# Public API
__all__ = [
    # Version
    "__version__",
    # Expressions
    "Node",
    "Atom",
    "Compound",
    "SingleVar",
    "RestVar",
    "Position",
    "ExprType",
    "walk",
    "get_at",
    "replace_at",
    "strip_positions",
    # Reader
    "E",
    "ReadError",
    "parse_sexpr",
    "parse_pattern",
    "read_forms",
    "format_sexpr",
    # Matching
    "match",
    "instantiate",
    "Bindings",
    "NoMatch",
    "wrap_bindings",
    # Rules
    "Rule",
    "RuleMetadata",
    "RuleStore",
    "MalformedRuleError",
    "build_rule",
    "validate_rule",
    "parse_rule_line",
    "load_rules_from_dsl",
    "load_rules_from_file",
    "load_rules_from_json",
    # Built-in rule groups
    "ARITHMETIC_RULES",
    "COLLECTION_RULES",
    "CONTROL_STRUCTURE_RULES",
    "EQUALITY_RULES",
    "MISC_RULES",
    "BUILTIN_RULE_GROUPS",
    "DEFAULT_GROUP_ORDER",
    "default_rule_store",
    # Engine
    "Engine",
    "MatchResult",
]
