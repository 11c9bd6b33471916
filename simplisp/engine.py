"""
Rewrite Engine for simplisp.

The engine walks an expression depth-first in pre-order (a node before its
children, children left to right) and, at every node, tries the rules of
its RuleStore in order. The first rule whose pattern matches produces one
MatchResult; later rules are not tried for that node. Matching continues
into the children whether or not the node itself matched, so a single call
can report any number of results.

The input expression is never modified.

Example:
    from simplisp import Engine, RuleStore, E

    engine = Engine(RuleStore.load([("(+ ?x 1)", "(inc ?x)")]))
    for result in engine.check_expression(E("(if true (+ (+ a 1) (+ a 1)))")):
        print(result)   # (+ a 1) -> (inc a), twice
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .expr import Node, PathType, walk, get_at, replace_at
from .reader import format_sexpr, read_forms, parse_pattern
from .rewriter import (
    Bindings, FAILED, _NoMatch, match as _match_internal, instantiate, wrap_bindings,
)
from .rules import Rule, RuleStore

logger = logging.getLogger(__name__)


class MatchResult:
    """
    One simplification opportunity found by the engine.

    Attributes:
        expr: The matched sub-expression (shared with the input, not copied)
        position: Position of the matched node, or None if unknown
        replacement: The proposed simpler expression
        rule: The rule that matched
        path: Child indices leading from the checked root to expr
        bindings: The placeholder bindings of the match
    """

    __slots__ = ('expr', 'position', 'replacement', 'rule', 'path', 'bindings')

    def __init__(self, expr: Node, replacement: Node, rule: Rule,
                 path: PathType = (), bindings: Optional[Bindings] = None):
        object.__setattr__(self, 'expr', expr)
        object.__setattr__(self, 'position', expr.position)
        object.__setattr__(self, 'replacement', replacement)
        object.__setattr__(self, 'rule', rule)
        object.__setattr__(self, 'path', tuple(path))
        object.__setattr__(self, 'bindings', bindings if bindings is not None else Bindings([]))

    def __setattr__(self, name, value):
        raise AttributeError("MatchResult is immutable")

    @property
    def line(self) -> Optional[int]:
        return self.position.line if self.position else None

    @property
    def column(self) -> Optional[int]:
        return self.position.column if self.position else None

    def __eq__(self, other):
        if isinstance(other, MatchResult):
            return (self.expr, self.replacement, self.rule, self.path, self.position) == \
                   (other.expr, other.replacement, other.rule, other.path, other.position)
        return False

    def __hash__(self):
        return hash((self.expr, self.replacement, self.path, self.position))

    def __repr__(self) -> str:
        name = self.rule.name or "<anonymous>"
        where = f" at {self.line}:{self.column}" if self.position else ""
        return f"{name}{where}: {format_sexpr(self.expr)} -> {format_sexpr(self.replacement)}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "rule": self.rule.name,
            "group": self.rule.group,
            "expr": format_sexpr(self.expr),
            "replacement": format_sexpr(self.replacement),
            "line": self.line,
            "column": self.column,
            "path": list(self.path),
        }


class Engine:
    """
    Applies a RuleStore to expressions.

    The engine holds no per-call state, so one instance can check many
    expressions, from several threads if needed.

    Example:
        from simplisp import Engine, default_rule_store

        engine = Engine(default_rule_store())
        results = engine.matches(E("(if (not ready) (do (+ n 1)) nil)"))
    """

    def __init__(self, rule_store: RuleStore):
        if not isinstance(rule_store, RuleStore):
            raise TypeError(f"Engine needs a RuleStore, got {rule_store!r}")
        self._store = rule_store

    @property
    def rule_store(self) -> RuleStore:
        return self._store

    @property
    def rules(self) -> Tuple[Rule, ...]:
        """Get all loaded rules, in the order they are tried."""
        return self._store.all()

    def match(self, pattern: Union[str, Node], expr: Node) -> Union[Bindings, _NoMatch]:
        """
        Match a single pattern against an expression.

        Returns Bindings if matched, NoMatch (falsy) if not.

        Example:
            if bindings := engine.match("(+ ?a ?b)", expr):
                print(bindings["a"], bindings["b"])
        """
        if isinstance(pattern, str):
            pattern = parse_pattern(pattern)
        return wrap_bindings(_match_internal(pattern, expr, []))

    def _first_match(self, expr: Node) -> Optional[Tuple[Rule, list]]:
        """Return (rule, raw bindings) for the first rule matching expr."""
        for rule in self._store.all():
            bindings = _match_internal(rule.pattern, expr, [])
            if bindings != FAILED:
                return rule, bindings
        return None

    def apply_once(self, expr: Node) -> Tuple[Node, Optional[Rule]]:
        """
        Apply at most one rule to the expression root.

        Does not recurse into subexpressions.

        Returns:
            (result, rule) where rule is None if nothing applied

        Example:
            result, applied = engine.apply_once(expr)
            if applied:
                print(f"Applied rule: {applied.name}")
        """
        found = self._first_match(expr)
        if found is None:
            return expr, None
        rule, bindings = found
        return instantiate(rule.replacement, bindings), rule

    def check_expression(self, expr: Node) -> Iterator[MatchResult]:
        """
        Lazily yield a MatchResult for every matching node of expr.

        Nodes are visited depth-first in pre-order, each exactly once.
        At most one result is produced per node: the first matching rule
        in store order wins.
        """
        for path, node in walk(expr):
            found = self._first_match(node)
            if found is None:
                continue
            rule, bindings = found
            replacement = instantiate(rule.replacement, bindings)
            logger.debug("Rule %s matched at path %s", rule.name, path)
            yield MatchResult(node, replacement, rule, path, Bindings(bindings))

    def check_forms(self, forms: Iterable[Node]) -> Iterator[MatchResult]:
        """Check several top-level forms, one after the other."""
        for form in forms:
            yield from self.check_expression(form)

    def check_source(self, text: str) -> Iterator[MatchResult]:
        """
        Read every form in text and check it.

        Positions in the results refer to lines and columns of text.

        Raises:
            ReadError: If text is not well-formed (raised before any result)
        """
        forms = read_forms(text)
        return self.check_forms(forms)

    def matches(self, expr: Node) -> List[MatchResult]:
        """Return every MatchResult for expr as a list."""
        return list(self.check_expression(expr))

    def apply(self, expr: Node, result: MatchResult) -> Node:
        """
        Return a copy of expr with result's replacement substituted in.

        Args:
            expr: The expression the result was produced from
            result: A MatchResult from check_expression(expr)

        Raises:
            ValueError: If result does not describe a node of expr
        """
        try:
            target = get_at(expr, result.path)
        except IndexError:
            target = None
        if target is None or target != result.expr:
            raise ValueError(f"Match result {result!r} does not belong to this expression")
        return replace_at(expr, result.path, result.replacement)

    def simplify(self, expr: Node, max_steps: int = 1000, trace: bool = False):
        """
        Apply results repeatedly until no rule matches.

        Each step applies the first result in pre-order and re-checks the
        new expression.

        Args:
            expr: Expression to simplify
            max_steps: Maximum rewrite steps (default: 1000)
            trace: If True, return (expression, [MatchResult, ...])

        Returns:
            Simplified expression, or (expression, steps) if trace=True
        """
        current = expr
        steps: List[MatchResult] = []
        for _ in range(max_steps):
            result = next(self.check_expression(current), None)
            if result is None:
                break
            current = self.apply(current, result)
            steps.append(result)
        else:
            logger.debug("simplify stopped after %d steps", max_steps)

        if trace:
            return current, steps
        return current

    def __call__(self, expr: Node) -> Iterator[MatchResult]:
        """Make engine callable: engine(expr) is shorthand for check_expression(expr)."""
        return self.check_expression(expr)

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"Engine({len(self._store)} rules)"

