"""
S-expression reader and printer for simplisp.

Reads Clojure-flavoured source text into Expression trees, recording the
1-based line and column where every node starts:

    (+ x 1)         -> Compound("list", [+, x, 1])
    [a b]           -> Compound("vector", [a, b])
    {:k v}          -> Compound("map", [:k, v])
    #{1 2}          -> Compound("set", [1, 2])
    'x              -> (quote x)
    @x              -> (deref x)

Pattern mode (used for rule sources) additionally reads placeholders:

    ?x              -> SingleVar("x")
    . ?xs           -> RestVar("xs")   (must close the enclosing form)
    ?xs...          -> RestVar("xs")

Examples:
    parse_sexpr("(+ x 1)")
    parse_sexpr("(conj [] . ?xs)", patterns=True)
    format_sexpr(parse_sexpr("(conj [] . ?xs)", patterns=True))  # => "(conj [] . ?xs)"
"""

import re
from typing import List, Optional

from .expr import (
    Atom, Compound, SingleVar, RestVar, Node, Position,
    SYMBOL, KEYWORD, STRING, INTEGER, FLOAT, CHAR, BOOLEAN, NIL,
    LIST, VECTOR, MAP, SET,
)


class ReadError(ValueError):
    """Raised when source text is not a well-formed expression."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.line = line
        self.column = column
        if line is not None:
            message = f"{message} at line {line}, column {column}"
        super().__init__(message)


_CLOSERS = {LIST: ')', VECTOR: ']', MAP: '}', SET: '}'}
_OPENERS = {'(': LIST, '[': VECTOR, '{': MAP}
_DELIMITERS = set('()[]{}";')

_INT_RE = re.compile(r'^[+-]?\d+$')
_FLOAT_RE = re.compile(r'^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$')

_NAMED_CHARS = {
    'newline': '\n',
    'space': ' ',
    'tab': '\t',
    'return': '\r',
    'backspace': '\b',
    'formfeed': '\f',
}

_STRING_ESCAPES = {
    'n': '\n',
    't': '\t',
    'r': '\r',
    'b': '\b',
    'f': '\f',
    '"': '"',
    '\\': '\\',
}


class _Reader:
    """Cursor over source text that tracks line and column."""

    def __init__(self, text: str, patterns: bool):
        self.text = text
        self.patterns = patterns
        self.index = 0
        self.line = 1
        self.column = 1

    # ------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------

    def peek(self) -> str:
        if self.index < len(self.text):
            return self.text[self.index]
        return ''

    def advance(self) -> str:
        c = self.text[self.index]
        self.index += 1
        if c == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return c

    def position(self) -> Position:
        return Position(self.line, self.column)

    def error(self, message: str, position: Optional[Position] = None) -> ReadError:
        if position is None:
            position = self.position()
        return ReadError(message, position.line, position.column)

    def skip_whitespace(self) -> None:
        """Skip whitespace, commas and ; comments."""
        while self.index < len(self.text):
            c = self.peek()
            if c.isspace() or c == ',':
                self.advance()
            elif c == ';':
                while self.index < len(self.text) and self.peek() != '\n':
                    self.advance()
            else:
                break

    def at_end(self) -> bool:
        self.skip_whitespace()
        return self.index >= len(self.text)

    # ------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------

    def read(self) -> Node:
        """Read the next form. Caller ensures input is not exhausted."""
        self.skip_whitespace()
        if self.index >= len(self.text):
            raise self.error("Unexpected end of input")

        start = self.position()
        c = self.peek()

        if c in _OPENERS:
            self.advance()
            return self.read_sequence(_OPENERS[c], start)
        if c == '#':
            self.advance()
            if self.peek() == '{':
                self.advance()
                return self.read_sequence(SET, start)
            raise self.error("Unsupported dispatch macro", start)
        if c in ')]}':
            raise self.error(f"Unexpected '{c}'", start)
        if c == '"':
            self.advance()
            return self.read_string(start)
        if c == '\\':
            self.advance()
            return self.read_char(start)
        if c == '\'':
            self.advance()
            return self.read_wrapped('quote', start)
        if c == '@':
            self.advance()
            return self.read_wrapped('deref', start)

        return self.read_token(start)

    def read_wrapped(self, symbol: str, start: Position) -> Node:
        """Read 'x / @x as (quote x) / (deref x)."""
        if self.at_end():
            raise self.error(f"Expected a form after {symbol} prefix", start)
        target = self.read()
        if isinstance(target, RestVar):
            raise self.error("Rest placeholder cannot be quoted", start)
        return Compound(LIST, [Atom(SYMBOL, symbol, start), target], start)

    def read_sequence(self, kind: str, start: Position) -> Compound:
        closer = _CLOSERS[kind]
        children: List[Node] = []

        while True:
            self.skip_whitespace()
            if self.index >= len(self.text):
                raise self.error(f"Unterminated {kind}, expected '{closer}'", start)

            c = self.peek()
            if c == closer:
                self.advance()
                break
            if c in ')]}':
                raise self.error(f"Mismatched '{c}', expected '{closer}'")

            if self.patterns and c == '.' and self._dot_is_separator():
                dot = self.position()
                self.advance()
                rest = self.read_rest_tail(dot)
                children.append(rest)
                self.skip_whitespace()
                if self.peek() != closer:
                    raise self.error(f"Expected '{closer}' after rest placeholder")
                self.advance()
                break

            children.append(self.read())

        if kind == MAP and not any(isinstance(c, RestVar) for c in children) \
                and len(children) % 2 != 0:
            raise self.error("Map literal must contain an even number of forms", start)

        return Compound(kind, children, start)

    def _dot_is_separator(self) -> bool:
        """A lone '.' followed by whitespace introduces a rest placeholder."""
        following = self.text[self.index + 1:self.index + 2]
        return following == '' or following.isspace() or following == ','

    def read_rest_tail(self, dot: Position) -> RestVar:
        self.skip_whitespace()
        start = self.position()
        if self.index >= len(self.text):
            raise self.error("Expected a placeholder after '.'", dot)
        node = self.read()
        if isinstance(node, SingleVar):
            return RestVar(node.name, start)
        if isinstance(node, RestVar):
            return node
        raise self.error("Expected a placeholder after '.'", start)

    def read_string(self, start: Position) -> Atom:
        chars = []
        while True:
            if self.index >= len(self.text):
                raise self.error("Unterminated string", start)
            c = self.advance()
            if c == '"':
                break
            if c == '\\':
                if self.index >= len(self.text):
                    raise self.error("Unterminated string", start)
                escape = self.advance()
                if escape not in _STRING_ESCAPES:
                    raise self.error(f"Unsupported escape '\\{escape}'")
                chars.append(_STRING_ESCAPES[escape])
            else:
                chars.append(c)
        return Atom(STRING, ''.join(chars), start)

    def read_char(self, start: Position) -> Atom:
        if self.index >= len(self.text):
            raise self.error("Expected a character after '\\'", start)
        # First character is taken literally, even if it is a delimiter.
        name = self.advance()
        while self.index < len(self.text):
            c = self.peek()
            if c.isspace() or c == ',' or c in _DELIMITERS:
                break
            name += self.advance()
        if len(name) == 1:
            return Atom(CHAR, name, start)
        if name in _NAMED_CHARS:
            return Atom(CHAR, _NAMED_CHARS[name], start)
        if name.startswith('u') and len(name) == 5:
            try:
                return Atom(CHAR, chr(int(name[1:], 16)), start)
            except ValueError:
                pass
        raise self.error(f"Unknown character literal '\\{name}'", start)

    def read_token(self, start: Position) -> Node:
        token = ''
        while self.index < len(self.text):
            c = self.peek()
            if c.isspace() or c == ',' or c in _DELIMITERS:
                break
            token += self.advance()
        if not token:
            raise self.error(f"Unexpected '{self.peek()}'", start)
        return self.parse_atom(token, start)

    def parse_atom(self, token: str, start: Position) -> Node:
        if _INT_RE.match(token):
            return Atom(INTEGER, int(token), start)
        if _FLOAT_RE.match(token):
            return Atom(FLOAT, float(token), start)

        if token == 'nil':
            return Atom(NIL, None, start)
        if token == 'true':
            return Atom(BOOLEAN, True, start)
        if token == 'false':
            return Atom(BOOLEAN, False, start)

        if token.startswith(':'):
            if len(token) == 1:
                raise self.error("Keyword must have a name", start)
            return Atom(KEYWORD, token[1:], start)

        if self.patterns and token.startswith('?') and len(token) > 1:
            name = token[1:]
            if name.endswith('...'):
                name = name[:-3]
                if not name:
                    raise self.error("Rest placeholder must have a name", start)
                return RestVar(name, start)
            return SingleVar(name, start)

        return Atom(SYMBOL, token, start)


def read_forms(text: str, patterns: bool = False) -> List[Node]:
    """
    Read every top-level form in text.

    Args:
        text: Source text
        patterns: If True, read ?x and . ?xs as placeholders

    Returns:
        List of expressions, each carrying its source position

    Raises:
        ReadError: If the text is not well-formed
    """
    reader = _Reader(text, patterns)
    forms = []
    while not reader.at_end():
        form = reader.read()
        if isinstance(form, RestVar):
            raise reader.error("Rest placeholder outside of a form", form.position)
        forms.append(form)
    return forms


def parse_sexpr(text: str, patterns: bool = False) -> Node:
    """
    Parse exactly one S-expression.

    Examples:
        "(+ x 1)" -> (+ x 1)
        "(dd (^ x 2) x)" -> (dd (^ x 2) x)

    Raises:
        ReadError: If text is empty, malformed, or holds more than one form
    """
    reader = _Reader(text, patterns)
    if reader.at_end():
        raise reader.error("Expected an expression, found end of input")
    form = reader.read()
    if isinstance(form, RestVar):
        raise reader.error("Rest placeholder outside of a form", form.position)
    if not reader.at_end():
        raise reader.error("Expected a single expression")
    return form


def parse_pattern(text: str) -> Node:
    """Parse a pattern or replacement template (placeholders enabled)."""
    return parse_sexpr(text, patterns=True)


# ============================================================
# Printer
# ============================================================

_CHAR_NAMES = {v: k for k, v in _NAMED_CHARS.items()}
_STRING_UNESCAPES = {v: '\\' + k for k, v in _STRING_ESCAPES.items()}

_OPEN_DELIMS = {LIST: '(', VECTOR: '[', MAP: '{', SET: '#{'}


def _format_atom(atom: Atom) -> str:
    kind, value = atom.kind, atom.value
    if kind == NIL:
        return 'nil'
    if kind == BOOLEAN:
        return 'true' if value else 'false'
    if kind == KEYWORD:
        return ':' + value
    if kind == STRING:
        return '"' + ''.join(_STRING_UNESCAPES.get(c, c) for c in value) + '"'
    if kind == CHAR:
        return '\\' + _CHAR_NAMES.get(value, value)
    return str(value)


def format_sexpr(expr: Node) -> str:
    """
    Format an expression as an S-expression string.

    Examples:
        (+ x 1)            -> "(+ x 1)"
        SingleVar("x")     -> "?x"
        (vector . ?xs)     -> "(vector . ?xs)"
    """
    if isinstance(expr, Compound):
        parts = []
        last = len(expr.children) - 1
        for i, child in enumerate(expr.children):
            if isinstance(child, RestVar) and i == last:
                parts.append(f". ?{child.name}")
            else:
                parts.append(format_sexpr(child))
        return _OPEN_DELIMS[expr.kind] + " ".join(parts) + _CLOSERS[expr.kind]
    if isinstance(expr, SingleVar):
        return f"?{expr.name}"
    if isinstance(expr, RestVar):
        return f"?{expr.name}..."
    if isinstance(expr, Atom):
        return _format_atom(expr)
    return str(expr)


# ============================================================
# Expression Builder
# ============================================================

class _ExprBuilder:
    """
    Expression builder for simplisp.

    Provides convenient ways to construct expressions without going
    through the reader.

    Examples:
        from simplisp import E

        # Parse s-expression string
        expr = E("(+ x (* 2 y))")

        # Build programmatically
        expr = E.list(E.sym("+"), E.sym("x"), E.list(E.sym("*"), E.num(2), E.sym("y")))

        # Shorthand: strings become symbols, ints/floats become numbers
        expr = E.op("+", "x", E.op("*", 2, "y"))

        # Patterns
        pat = E.op("conj", E.vector(), E.rest("xs"))
    """

    def __call__(self, s: str, patterns: bool = False) -> Node:
        """Parse an s-expression string."""
        return parse_sexpr(s, patterns=patterns)

    def pattern(self, s: str) -> Node:
        """Parse an s-expression string with placeholders enabled."""
        return parse_pattern(s)

    def coerce(self, value) -> Node:
        """Turn a Python value into an expression (nodes pass through)."""
        if isinstance(value, Node):
            return value
        if value is None:
            return Atom(NIL, None)
        if isinstance(value, bool):
            return Atom(BOOLEAN, value)
        if isinstance(value, int):
            return Atom(INTEGER, value)
        if isinstance(value, float):
            return Atom(FLOAT, value)
        if isinstance(value, str):
            return Atom(SYMBOL, value)
        raise TypeError(f"Cannot build an expression from {value!r}")

    def sym(self, name: str) -> Atom:
        return Atom(SYMBOL, name)

    def kw(self, name: str) -> Atom:
        return Atom(KEYWORD, name)

    def string(self, value: str) -> Atom:
        return Atom(STRING, value)

    def num(self, value) -> Atom:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"Not a number: {value!r}")
        return Atom(INTEGER if isinstance(value, int) else FLOAT, value)

    def char(self, value: str) -> Atom:
        return Atom(CHAR, value)

    def var(self, name: str) -> SingleVar:
        """Single-slot placeholder (?name)."""
        return SingleVar(name)

    def rest(self, name: str) -> RestVar:
        """Rest-slot placeholder (. ?name)."""
        return RestVar(name)

    def list(self, *items) -> Compound:
        return Compound(LIST, [self.coerce(i) for i in items])

    def vector(self, *items) -> Compound:
        return Compound(VECTOR, [self.coerce(i) for i in items])

    def map(self, *items) -> Compound:
        return Compound(MAP, [self.coerce(i) for i in items])

    def set(self, *items) -> Compound:
        return Compound(SET, [self.coerce(i) for i in items])

    def op(self, name: str, *args) -> Compound:
        """
        Build a list form with the given operator symbol and arguments.

        Examples:
            E.op("+", "x", 1) -> (+ x 1)
            E.op("inc", E.op("count", "xs")) -> (inc (count xs))
        """
        return self.list(name, *args)

    def __repr__(self) -> str:
        return "E (expression builder)"


# Singleton instance
E = _ExprBuilder()

