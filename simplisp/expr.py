"""
Expression data model for simplisp.

Code and patterns share one immutable tree representation:

    Atom(kind, value)          - symbol, keyword, string, number, char, boolean, nil
    Compound(kind, children)   - list (), vector [], map {}, set #{}
    SingleVar(name)            - pattern placeholder matching one element (?x)
    RestVar(name)              - pattern placeholder matching a trailing
                                 sequence of zero or more elements (. ?xs)

Every node may carry a Position (1-based line and column of the source it
was read from). Positions are side-channel data: they never take part in
equality, hashing or pattern matching.

Examples:
    Atom("symbol", "x") == Atom("symbol", "x", Position(3, 7))   # => True
    Atom("integer", 1) == Atom("float", 1.0)                     # => False
"""

from typing import Any, Iterator, Optional, Sequence, Tuple, Union

# Atom kinds
SYMBOL = "symbol"
KEYWORD = "keyword"
STRING = "string"
INTEGER = "integer"
FLOAT = "float"
CHAR = "char"
BOOLEAN = "boolean"
NIL = "nil"

ATOM_KINDS = frozenset([SYMBOL, KEYWORD, STRING, INTEGER, FLOAT, CHAR, BOOLEAN, NIL])

# Compound kinds
LIST = "list"
VECTOR = "vector"
MAP = "map"
SET = "set"

COMPOUND_KINDS = frozenset([LIST, VECTOR, MAP, SET])

PathType = Tuple[int, ...]


class Position:
    """Line and column (both 1-based) of a node in its source text."""

    __slots__ = ('line', 'column')

    def __init__(self, line: int, column: int):
        if not isinstance(line, int) or not isinstance(column, int):
            raise ValueError(f"Position requires integers, got ({line!r}, {column!r})")
        if line < 1 or column < 1:
            raise ValueError(f"Position must be 1-based, got ({line}, {column})")
        object.__setattr__(self, 'line', line)
        object.__setattr__(self, 'column', column)

    def __setattr__(self, name, value):
        raise AttributeError("Position is immutable")

    def __eq__(self, other):
        if isinstance(other, Position):
            return (self.line, self.column) == (other.line, other.column)
        return NotImplemented

    def __hash__(self):
        return hash((self.line, self.column))

    def __iter__(self):
        return iter((self.line, self.column))

    def __repr__(self) -> str:
        return f"Position({self.line}, {self.column})"


class Node:
    """
    Base class for all expression nodes.

    Subclasses define `_key()`, the tuple used for structural equality.
    Nodes are immutable once constructed.
    """

    __slots__ = ('position',)

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def _key(self) -> tuple:
        raise NotImplementedError

    def __eq__(self, other):
        if isinstance(other, Node):
            return type(self) is type(other) and self._key() == other._key()
        return NotImplemented

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self):
        return hash((type(self).__name__,) + self._key())

    def with_position(self, position: Optional[Position]) -> 'Node':
        """Return a copy of this node carrying a different position."""
        raise NotImplementedError


class Atom(Node):
    """A leaf value: symbol, keyword, string, number, char, boolean or nil."""

    __slots__ = ('kind', 'value')

    def __init__(self, kind: str, value: Any, position: Optional[Position] = None):
        if kind not in ATOM_KINDS:
            raise ValueError(f"Unknown atom kind: {kind!r}")
        object.__setattr__(self, 'kind', kind)
        object.__setattr__(self, 'value', value)
        object.__setattr__(self, 'position', position)

    def _key(self) -> tuple:
        return (self.kind, self.value)

    def with_position(self, position: Optional[Position]) -> 'Atom':
        return Atom(self.kind, self.value, position)

    def __repr__(self) -> str:
        return f"Atom({self.kind!r}, {self.value!r})"


class Compound(Node):
    """An ordered sequence of child expressions: (...), [...], {...} or #{...}."""

    __slots__ = ('kind', 'children')

    def __init__(self, kind: str, children: Sequence[Node] = (),
                 position: Optional[Position] = None):
        if kind not in COMPOUND_KINDS:
            raise ValueError(f"Unknown compound kind: {kind!r}")
        children = tuple(children)
        for child in children:
            if not isinstance(child, Node):
                raise TypeError(f"Compound children must be expressions, got {child!r}")
        object.__setattr__(self, 'kind', kind)
        object.__setattr__(self, 'children', children)
        object.__setattr__(self, 'position', position)

    def _key(self) -> tuple:
        return (self.kind, self.children)

    def with_position(self, position: Optional[Position]) -> 'Compound':
        return Compound(self.kind, self.children, position)

    def with_children(self, children: Sequence[Node]) -> 'Compound':
        """Return a compound of the same kind and position with new children."""
        return Compound(self.kind, children, self.position)

    def __len__(self) -> int:
        return len(self.children)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.children)

    def __getitem__(self, index):
        return self.children[index]

    def __repr__(self) -> str:
        return f"Compound({self.kind!r}, {list(self.children)!r})"


class SingleVar(Node):
    """Placeholder matching exactly one sub-expression (?x)."""

    __slots__ = ('name',)

    def __init__(self, name: str, position: Optional[Position] = None):
        if not name:
            raise ValueError("Placeholder name must be non-empty")
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'position', position)

    def _key(self) -> tuple:
        return (self.name,)

    def with_position(self, position: Optional[Position]) -> 'SingleVar':
        return SingleVar(self.name, position)

    def __repr__(self) -> str:
        return f"SingleVar({self.name!r})"


class RestVar(Node):
    """Placeholder matching the remaining elements of a sequence (. ?xs)."""

    __slots__ = ('name',)

    def __init__(self, name: str, position: Optional[Position] = None):
        if not name:
            raise ValueError("Placeholder name must be non-empty")
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'position', position)

    def _key(self) -> tuple:
        return (self.name,)

    def with_position(self, position: Optional[Position]) -> 'RestVar':
        return RestVar(self.name, position)

    def __repr__(self) -> str:
        return f"RestVar({self.name!r})"


ExprType = Node


# ============================================================
# Predicates
# ============================================================

def is_atom(exp: Any) -> bool:
    """True for leaf values."""
    return isinstance(exp, Atom)


def is_compound(exp: Any) -> bool:
    """True for list/vector/map/set forms."""
    return isinstance(exp, Compound)


def is_placeholder(exp: Any) -> bool:
    """True for ?x and . ?xs placeholders."""
    return isinstance(exp, (SingleVar, RestVar))


def is_symbol(exp: Any, name: Optional[str] = None) -> bool:
    """True if exp is a symbol atom (optionally with the given name)."""
    if not isinstance(exp, Atom) or exp.kind != SYMBOL:
        return False
    return name is None or exp.value == name


def placeholders(exp: Node) -> Iterator[Union[SingleVar, RestVar]]:
    """Yield every placeholder in an expression, left to right."""
    if is_placeholder(exp):
        yield exp
    elif is_compound(exp):
        for child in exp.children:
            yield from placeholders(child)


def strip_positions(exp: Node) -> Node:
    """Return a copy of exp with no position on any node."""
    if is_compound(exp):
        return Compound(exp.kind, [strip_positions(c) for c in exp.children])
    return exp.with_position(None)


# ============================================================
# Traversal
# ============================================================

def walk(exp: Node, path: PathType = ()) -> Iterator[Tuple[PathType, Node]]:
    """
    Depth-first pre-order walk of an expression.

    Yields (path, node) pairs, where path is the tuple of child indices
    leading from exp to node. The root is yielded first with path ().
    Children are visited left to right.
    """
    stack = [(path, exp)]
    while stack:
        node_path, node = stack.pop()
        yield node_path, node
        if is_compound(node):
            for i in range(len(node.children) - 1, -1, -1):
                stack.append((node_path + (i,), node.children[i]))


def get_at(exp: Node, path: PathType) -> Node:
    """Return the sub-expression of exp at path."""
    node = exp
    for index in path:
        if not is_compound(node):
            raise IndexError(f"Path {path} descends into an atom")
        node = node.children[index]
    return node


def replace_at(exp: Node, path: PathType, replacement: Node) -> Node:
    """
    Return a new expression with the node at path replaced.

    exp itself is never modified; untouched siblings are shared.
    """
    if not path:
        return replacement
    if not is_compound(exp):
        raise IndexError(f"Path {path} descends into an atom")
    index = path[0]
    children = list(exp.children)
    children[index] = replace_at(children[index], path[1:], replacement)
    return exp.with_children(children)
