"""
Core matching module for simplisp.

This module provides pattern matching and replacement instantiation over
Expression trees. Both are pure functions: they never modify the
expressions they are given.

Pattern syntax (as read by reader.parse_pattern):
    ?x              - match any one expression, bind to x
    . ?xs / ?xs...  - match the remaining elements of a form, bind to xs
    literal         - match an equal atom / compound of the same shape

A name used twice in one pattern must bind structurally equal values:
(= ?x ?x) matches (= a a) but not (= a b).
"""

from typing import Any, Dict, List, Tuple, Union

from .expr import (
    Node, Compound, SingleVar, RestVar, ExprType,
    is_atom, is_compound,
)

# Type aliases
BindingValue = Union[Node, Tuple[Node, ...]]  # rest slots bind a tuple
BindingsType = Union[List[List], str]  # List of [name, value] pairs or "failed"

FAILED = "failed"


# ============================================================
# Bindings Class - Dict-like interface for match results
# ============================================================

class Bindings:
    """
    Dict-like wrapper for pattern matching bindings.

    Provides convenient access to bound values with a clean interface:

        if bindings := engine.match("(+ ?a ?b)", expr):
            print(bindings["a"], bindings["b"])
            print(bindings.get("c", default=None))

    Single-slot placeholders map to an expression, rest-slot placeholders
    to a tuple of expressions. Bindings objects are truthy when a match
    succeeded; NoMatch (which is falsy) represents failed matches.
    """

    __slots__ = ('_dict',)

    def __init__(self, pairs: List[List]):
        """Initialize from list of [name, value] pairs."""
        self._dict = {name: value for name, value in pairs}

    def __bool__(self) -> bool:
        """Bindings are always truthy (use NoMatch for failed matches)."""
        return True

    def __getitem__(self, key: str) -> BindingValue:
        return self._dict[key]

    def get(self, key: str, default=None):
        """Get a bound value with optional default."""
        return self._dict.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._dict

    def keys(self):
        return self._dict.keys()

    def values(self):
        return self._dict.values()

    def items(self):
        return self._dict.items()

    def __iter__(self):
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"Bindings({self._dict})"

    def __eq__(self, other):
        if isinstance(other, Bindings):
            return self._dict == other._dict
        return False

    def __hash__(self):
        return hash(tuple(sorted(self._dict.items(), key=lambda item: item[0])))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary."""
        return self._dict.copy()


class _NoMatch:
    """
    Singleton representing a failed pattern match.

    NoMatch is falsy, allowing natural use in conditionals:

        if bindings := engine.match(pattern, expr):
            # matched
        else:
            # NoMatch
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NoMatch"

    def __getitem__(self, key: str):
        raise KeyError(f"NoMatch has no binding for '{key}'")

    def get(self, key: str, default=None):
        return default

    def __contains__(self, key: str) -> bool:
        return False

    def __len__(self) -> int:
        return 0

    def __iter__(self):
        return iter([])


# Singleton instance
NoMatch = _NoMatch()


def wrap_bindings(result: BindingsType) -> Union[Bindings, _NoMatch]:
    """
    Convert internal bindings representation to Bindings or NoMatch.

    Args:
        result: Either list of [name, value] pairs or "failed"

    Returns:
        Bindings object if matched, NoMatch if failed
    """
    if result == FAILED:
        return NoMatch
    return Bindings(result)


# ============================================================
# Binding helpers
# ============================================================

def extend_bindings(
    pat: Union[SingleVar, RestVar], dat: BindingValue, bindings: BindingsType
) -> BindingsType:
    """
    Extend bindings with a new binding for the placeholder pat.

    Returns a new list; the bindings passed in are never modified, so a
    failed attempt leaves nothing behind for sibling attempts.

    Returns:
        Extended bindings or "failed" on conflict
    """
    if bindings == FAILED:
        return FAILED

    for entry in bindings:
        if entry[0] == pat.name:
            # Consistent binding: a repeated name must see an equal value
            if entry[1] == dat:
                return bindings
            return FAILED

    return bindings + [[pat.name, dat]]


def lookup(name: str, bindings: BindingsType) -> Any:
    """
    Look up a placeholder name in the bindings.

    Returns:
        The bound value

    Raises:
        KeyError: If the name is not bound
    """
    if bindings != FAILED:
        for entry in bindings:
            if entry[0] == name:
                return entry[1]
    raise KeyError(f"Unbound placeholder '?{name}'")


# ============================================================
# Pattern Matching
# ============================================================

def match(pat: ExprType, exp: ExprType, bindings: BindingsType) -> BindingsType:
    """
    Match a pattern against an expression with bindings.

    Args:
        pat: The pattern to match
        exp: The expression to match against
        bindings: Current bindings (list of [name, value] pairs)

    Returns:
        Updated bindings on success, "failed" on failure
    """
    if bindings == FAILED:
        return FAILED

    if isinstance(pat, SingleVar):
        return extend_bindings(pat, exp, bindings)

    if isinstance(pat, RestVar):
        # Rest patterns are handled in compound matching. Called directly,
        # a rest pattern binds the children of a compound.
        if is_compound(exp):
            return extend_bindings(pat, exp.children, bindings)
        return FAILED

    if is_atom(pat):
        return bindings if is_atom(exp) and pat == exp else FAILED

    if is_atom(exp) or not is_compound(exp):
        return FAILED

    # Both are compound - structural matching
    if pat.kind != exp.kind:
        return FAILED

    return match_compound(pat.children, exp.children, bindings)


def match_compound(pats: Tuple[Node, ...], exps: Tuple[Node, ...],
                   bindings: BindingsType) -> BindingsType:
    """
    Match the children of a compound pattern against candidate children.

    Handles rest patterns (. ?xs), which must appear at the end.
    """
    for i, current_pat in enumerate(pats):
        if bindings == FAILED:
            return FAILED

        if isinstance(current_pat, RestVar):
            if i != len(pats) - 1:
                raise ValueError("Rest pattern (. ?xs) must be last in compound pattern")
            # Bind the (possibly empty) tail
            return extend_bindings(current_pat, tuple(exps[i:]), bindings)

        # Expression ran out but the pattern needs more
        if i >= len(exps):
            return FAILED

        bindings = match(current_pat, exps[i], bindings)

    if bindings == FAILED:
        return FAILED

    # Pattern exhausted; expression must be too
    return bindings if len(exps) == len(pats) else FAILED


# ============================================================
# Instantiation
# ============================================================

def instantiate(template: ExprType, bindings: BindingsType) -> ExprType:
    """
    Instantiate a replacement template with bindings.

    Template syntax:
        ?x       - substitute the bound expression
        . ?xs    - splice the bound sequence into the enclosing form
        literal  - keep as-is

    Template nodes carry no position in the result; substituted
    sub-expressions keep the positions they had in the matched input.

    Raises:
        KeyError: If the template uses an unbound placeholder
        ValueError: If a rest placeholder is used outside a form
    """
    if isinstance(template, SingleVar):
        value = lookup(template.name, bindings)
        if isinstance(value, tuple):
            raise ValueError(f"Placeholder ?{template.name} is bound to a sequence")
        return value
    if isinstance(template, RestVar):
        raise ValueError(f"Rest placeholder ?{template.name} must appear inside a form")
    if is_compound(template):
        return Compound(template.kind, instantiate_compound(template.children, bindings))
    if is_atom(template):
        return template.with_position(None)
    raise TypeError(f"Not an expression: {template!r}")


def instantiate_compound(templates: Tuple[Node, ...], bindings: BindingsType) -> List[Node]:
    """
    Instantiate the children of a compound template, handling splices.

    When a rest placeholder is encountered its bound sequence is spliced
    into the result rather than inserted as a single nested element, so
    (vector . ?xs) with xs = (1 2 3) becomes (vector 1 2 3).
    """
    result: List[Node] = []
    for child in templates:
        if isinstance(child, RestVar):
            spliced = lookup(child.name, bindings)
            if isinstance(spliced, tuple):
                result.extend(spliced)
            else:
                result.append(spliced)
        else:
            result.append(instantiate(child, bindings))
    return result
