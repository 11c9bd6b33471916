#!/usr/bin/env python3
"""
simplisp Feature Demonstration

This script demonstrates the major features of the simplisp library.
"""

import logging
from pathlib import Path

from simplisp import (
    Engine, RuleStore, MalformedRuleError, E,
    default_rule_store, format_sexpr,
)

SOURCE = """
(ns demo.core)

(defn add-one [xs]
  (vec (map (fn [x] (+ x 1)) xs)))

(defn describe [m]
  (if (not (empty? m))
    (do (println "non-empty")
        (count (seq m)))
    nil))
"""


def section(title: str):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def demo_basic_usage():
    """Check single expressions against a small store."""
    section("Basic Usage")

    engine = Engine(RuleStore.load([
        ("(+ ?x 1)", "(inc ?x)"),
        ("(conj [] . ?xs)", "(vector . ?xs)"),
        ("(= ?x ?x)", "true"),
    ]))

    examples = [
        "(+ n 1)",
        "(conj [] 1 2 3)",
        "(= a a)",
        "(= a b)",
        "(if true (+ (+ a 1) (+ a 1)))",
    ]

    for expr_str in examples:
        results = engine.matches(E(expr_str))
        if not results:
            print(f"  {expr_str}: nothing to simplify")
        for result in results:
            print(f"  {result}")


def demo_source():
    """Check every form of a source text with the built-in groups."""
    section("Checking Source Text")

    engine = Engine(default_rule_store())
    print(f"  {engine} in groups {engine.rule_store.groups()}")

    for result in engine.check_source(SOURCE):
        print(f"  line {result.line}, column {result.column}: "
              f"{format_sexpr(result.expr)} -> {format_sexpr(result.replacement)}")


def demo_simplify():
    """Apply suggestions until nothing matches."""
    section("Simplifying to a Fixpoint")

    engine = Engine(default_rule_store())
    expr = E("(if (not (= a nil)) (do (+ n 1)) nil)")
    result, steps = engine.simplify(expr, trace=True)

    print(f"  Start: {format_sexpr(expr)}")
    for step in steps:
        print(f"    [{step.rule.name}] {format_sexpr(step.expr)} -> {format_sexpr(step.replacement)}")
    print(f"  Result: {format_sexpr(result)}")


def demo_file_loading():
    """Extend the built-in groups with a project rules file."""
    section("Loading Rules from Files")

    examples_dir = Path(__file__).parent
    project = RuleStore.from_file(examples_dir / "project.rules")
    print(f"  Loaded {len(project)} rules from project.rules")

    engine = Engine(default_rule_store() + project)
    for result in engine.check_expression(E("(when (seq xs) (count (seq xs)))")):
        print(f"  {result}")


def demo_malformed_rule():
    """Broken rules are rejected when the store is loaded."""
    section("Malformed Rules")

    try:
        RuleStore.load([("(+ ?x 1)", "(inc ?y)")], group="broken")
    except MalformedRuleError as e:
        print(f"  {e}")


def main():
    """Run all demonstrations."""
    logging.basicConfig(level=logging.INFO)

    print("simplisp - pattern-based simplification of Lisp code")
    print("Feature Demonstration")

    demo_basic_usage()
    demo_source()
    demo_simplify()
    demo_file_loading()
    demo_malformed_rule()

    print("\n" + "="*60)
    print(" Demo complete!")
    print("="*60)


if __name__ == "__main__":
    main()
