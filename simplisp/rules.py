"""
Rule Store and rule loaders for simplisp.

A RuleStore is an ordered, immutable sequence of rewrite rules. Order is
significant: the engine tries rules in store order and the first match
wins. Rules are grouped by domain (arithmetic, collections, ...) for
organisation only; groups are concatenated in load order.

Rules can be loaded from Python definitions, a line-based DSL, or JSON.

DSL Format (.rules files):
    # Comment            ; also a comment
    [collections]
    @conj-vec "Use vector": (conj [] . ?xs) => (vector . ?xs)
    (into [] ?coll) => (vec ?coll)
    :include control.rules

JSON Format:
    {
        "name": "my-rules",
        "groups": [
            {"name": "arithmetic",
             "rules": [
                 {"name": "plus-one", "description": "...",
                  "pattern": "(+ ?x 1)", "replacement": "(inc ?x)"},
                 or just ["(+ ?x 1)", "(inc ?x)"]
             ]}
        ],
        "rules": [...]      # ungrouped rules, loaded after the groups
    }

Every rule is validated when it is loaded; see MalformedRuleError.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

from .expr import Node, RestVar, is_compound, placeholders
from .reader import ReadError, parse_pattern, format_sexpr

logger = logging.getLogger(__name__)

RuleSource = Union[str, Node]
RuleDefinition = Tuple[RuleSource, RuleSource]


class MalformedRuleError(ValueError):
    """Raised while loading a rule that cannot be used."""

    def __init__(self, rule_name: str, reason: str):
        self.rule_name = rule_name
        self.reason = reason
        super().__init__(f"Malformed rule {rule_name}: {reason}")


class RuleMetadata:
    """Metadata for a rule: name, optional description and group."""

    __slots__ = ('name', 'description', 'group')

    def __init__(self, name: Optional[str] = None, description: Optional[str] = None,
                 group: Optional[str] = None):
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "description", description)
        object.__setattr__(self, "group", group)

    def __setattr__(self, name, value):
        raise AttributeError("RuleMetadata is immutable")

    def __eq__(self, other):
        if isinstance(other, RuleMetadata):
            return (self.name, self.description, self.group) == \
                   (other.name, other.description, other.group)
        return False

    def __hash__(self):
        return hash((self.name, self.description, self.group))

    def __repr__(self) -> str:
        if not self.name:
            return "<anonymous>"
        base = f"@{self.name}"
        if self.description:
            base += f" \"{self.description}\""
        return base


class Rule:
    """A (pattern, replacement) pair plus its metadata."""

    __slots__ = ('pattern', 'replacement', 'metadata')

    def __init__(self, pattern: Node, replacement: Node,
                 metadata: Optional[RuleMetadata] = None):
        object.__setattr__(self, "pattern", pattern)
        object.__setattr__(self, "replacement", replacement)
        object.__setattr__(self, "metadata", metadata or RuleMetadata())

    def __setattr__(self, name, value):
        raise AttributeError("Rule is immutable")

    @property
    def name(self) -> Optional[str]:
        return self.metadata.name

    @property
    def group(self) -> Optional[str]:
        return self.metadata.group

    @property
    def description(self) -> Optional[str]:
        return self.metadata.description

    def __eq__(self, other):
        if isinstance(other, Rule):
            return (self.pattern, self.replacement, self.metadata) == \
                   (other.pattern, other.replacement, other.metadata)
        return False

    def __hash__(self):
        return hash((self.pattern, self.replacement, self.metadata))

    def to_dsl(self) -> str:
        """Format the rule as a single DSL line (without its group header)."""
        name_part = ""
        if self.name:
            name_part = f"@{self.name}"
            if self.description:
                name_part += f" \"{self.description}\""
            name_part += ": "
        return f"{name_part}{format_sexpr(self.pattern)} => {format_sexpr(self.replacement)}"

    def to_dict(self) -> Dict:
        result = {
            "pattern": format_sexpr(self.pattern),
            "replacement": format_sexpr(self.replacement),
        }
        if self.name:
            result["name"] = self.name
        if self.description:
            result["description"] = self.description
        if self.group:
            result["group"] = self.group
        return result

    def __repr__(self) -> str:
        return f"Rule({self.to_dsl()})"


# ============================================================
# Validation
# ============================================================

def _check_rest_positions(rule_name: str, expr: Node, side: str) -> None:
    """Rest placeholders may only be the last child of a form."""
    if isinstance(expr, RestVar):
        raise MalformedRuleError(
            rule_name, f"{side} cannot be a bare rest placeholder ?{expr.name}")
    if is_compound(expr):
        last = len(expr.children) - 1
        for i, child in enumerate(expr.children):
            if isinstance(child, RestVar):
                if i != last:
                    raise MalformedRuleError(
                        rule_name,
                        f"rest placeholder ?{child.name} must be last in {format_sexpr(expr)}")
            else:
                _check_rest_positions(rule_name, child, side)


def _placeholder_kinds(rule_name: str, expr: Node, side: str) -> Dict[str, type]:
    """Map each placeholder name to SingleVar or RestVar, rejecting mixed use."""
    kinds: Dict[str, type] = {}
    for ph in placeholders(expr):
        seen = kinds.setdefault(ph.name, type(ph))
        if seen is not type(ph):
            raise MalformedRuleError(
                rule_name, f"?{ph.name} is used both as a single and a rest placeholder in {side}")
    return kinds


def validate_rule(rule: Rule, rule_name: Optional[str] = None) -> Rule:
    """
    Check a rule's invariants.

    - pattern and replacement are expressions
    - rest placeholders only appear as the last child of a pattern form,
      and never as the whole pattern or replacement
    - every placeholder in the replacement is bound by the pattern,
      with the same kind (single or rest)

    Raises:
        MalformedRuleError: naming the offending rule
    """
    rule_name = rule_name or rule.name or "<anonymous>"
    if not isinstance(rule.pattern, Node) or not isinstance(rule.replacement, Node):
        raise MalformedRuleError(rule_name, "pattern and replacement must be expressions")

    _check_rest_positions(rule_name, rule.pattern, "pattern")
    # Replacements may splice a rest binding anywhere inside a form
    if isinstance(rule.replacement, RestVar):
        raise MalformedRuleError(
            rule_name, f"replacement cannot be a bare rest placeholder ?{rule.replacement.name}")

    bound = _placeholder_kinds(rule_name, rule.pattern, "pattern")
    used = _placeholder_kinds(rule_name, rule.replacement, "replacement")

    for name, kind in used.items():
        if name not in bound:
            raise MalformedRuleError(
                rule_name, f"replacement references unbound placeholder ?{name}")
        if bound[name] is not kind:
            raise MalformedRuleError(
                rule_name, f"?{name} is a {_kind_label(bound[name])} placeholder in the "
                           f"pattern but a {_kind_label(kind)} placeholder in the replacement")
    return rule


def _kind_label(kind: type) -> str:
    return "rest" if kind is RestVar else "single"


def _read_side(rule_name: str, source: RuleSource, side: str) -> Node:
    if isinstance(source, Node):
        return source
    if not isinstance(source, str):
        raise MalformedRuleError(rule_name, f"{side} must be text or an expression, got {source!r}")
    try:
        return parse_pattern(source)
    except ReadError as e:
        raise MalformedRuleError(rule_name, f"{side} {source!r} does not parse: {e}") from e


def build_rule(pattern: RuleSource, replacement: RuleSource,
               name: Optional[str] = None, group: Optional[str] = None,
               description: Optional[str] = None) -> Rule:
    """
    Build and validate one rule from source text or expressions.

    Example:
        build_rule("(+ ?x 1)", "(inc ?x)", name="plus-one")
    """
    rule_name = name or "<anonymous>"
    rule = Rule(
        _read_side(rule_name, pattern, "pattern"),
        _read_side(rule_name, replacement, "replacement"),
        RuleMetadata(name=name, description=description, group=group),
    )
    return validate_rule(rule, rule_name)


def _anonymous_name(group: Optional[str], index: int, prefix: Optional[str] = None) -> str:
    name = f"{group}[{index}]" if group else f"rule[{index}]"
    return f"{prefix}/{name}" if prefix else name


# ============================================================
# DSL
# ============================================================

_NAMED_RULE_RE = re.compile(r'@([\w\-?!*+<>=./\[\]]+)(?:\s+"([^"]*)")?:\s*(.+)$')


def parse_rule_line(line: str, default_name: str,
                    group: Optional[str] = None) -> Optional[Rule]:
    """
    Parse a single rule line.

    Formats:
        @name: pattern => replacement
        @name "description": pattern => replacement
        pattern => replacement

    Returns: Rule, or None for blank lines and comments

    Raises:
        MalformedRuleError: if the line is not a valid rule
    """
    line = line.strip()

    # Skip empty lines and comments; #{ opens a set literal
    if not line or line.startswith(';') or (line.startswith('#') and not line.startswith('#{')):
        return None

    name = None
    description = None
    if line.startswith('@'):
        match_obj = _NAMED_RULE_RE.match(line)
        if not match_obj:
            raise MalformedRuleError(default_name, f"cannot parse rule header in {line!r}")
        name, description, line = match_obj.group(1), match_obj.group(2), match_obj.group(3)

    rule_name = name or default_name
    if '=>' not in line:
        raise MalformedRuleError(rule_name, f"expected 'pattern => replacement', got {line!r}")

    pattern_str, replacement_str = (part.strip() for part in line.split('=>', 1))
    rule = Rule(
        _read_side(rule_name, pattern_str, "pattern"),
        _read_side(rule_name, replacement_str, "replacement"),
        RuleMetadata(name=rule_name, description=description, group=group),
    )
    return validate_rule(rule, rule_name)


def load_rules_from_dsl(
    text: str,
    base_path: Optional[Path] = None,
    name_prefix: Optional[str] = None,
    _included_files: Optional[Set[Path]] = None
) -> List[Rule]:
    """
    Load rules from DSL text.

    Supports:
    - Named groups: [groupname]
    - File includes: :include path/to/file.rules

    Included rules that have no group of their own take the group that is
    current at the :include line. Anonymous rules of an included file are
    named after it (`base/rule[0]` for base.rules), so they stay distinct
    from the including file's own anonymous rules.

    Args:
        text: DSL text containing rules
        base_path: Base path for resolving relative :include paths
        name_prefix: Prefix for the names of anonymous rules
        _included_files: Internal tracking for circular include detection

    Returns:
        List of validated rules, in file order
    """
    rules: List[Rule] = []
    current_group = None
    counts: Dict[Optional[str], int] = {}

    # Track included files to prevent circular includes
    if _included_files is None:
        _included_files = set()

    for lineno, line in enumerate(text.split('\n'), 1):
        line_stripped = line.strip()

        # Group declaration: [groupname]. A rule line never starts with '['.
        if line_stripped.startswith('[') and line_stripped.endswith(']') \
                and '=>' not in line_stripped:
            current_group = line_stripped[1:-1].strip() or None
            continue

        if line_stripped.startswith(':include'):
            include_path_str = line_stripped[len(':include'):].strip()
            if not include_path_str:
                raise MalformedRuleError(f"line {lineno}", ":include needs a path")
            include_path = (base_path / include_path_str) if base_path else Path(include_path_str)

            abs_path = include_path.resolve()
            if abs_path in _included_files:
                raise ValueError(f"Circular include detected: {include_path}")
            if not include_path.exists():
                raise FileNotFoundError(f"Include file not found: {include_path}")

            _included_files.add(abs_path)
            logger.debug("Including rules from %s", include_path)
            included = load_rules_from_file(include_path, name_prefix=include_path.stem,
                                            _included_files=_included_files)
            for rule in included:
                if current_group and not rule.group:
                    rule = Rule(rule.pattern, rule.replacement,
                                RuleMetadata(rule.name, rule.description, current_group))
                rules.append(rule)
            continue

        index = counts.get(current_group, 0)
        rule = parse_rule_line(line, _anonymous_name(current_group, index, name_prefix),
                               current_group)
        if rule is not None:
            counts[current_group] = index + 1
            rules.append(rule)

    return rules


def load_rules_from_file(
    path: Union[str, Path],
    name_prefix: Optional[str] = None,
    _included_files: Optional[Set[Path]] = None
) -> List[Rule]:
    """
    Load rules from a .rules or .json file.

    DSL files may :include other files, resolved relative to the
    containing file.
    """
    path = Path(path)
    text = path.read_text()

    if path.suffix == '.json':
        rules = load_rules_from_json(text, name_prefix=name_prefix)
    else:
        if _included_files is None:
            _included_files = {path.resolve()}
        rules = load_rules_from_dsl(
            text,
            base_path=path.parent,
            name_prefix=name_prefix,
            _included_files=_included_files
        )
    logger.debug("Loaded %d rules from %s", len(rules), path)
    return rules


def _rule_from_json(entry, default_name: str, group: Optional[str]) -> Rule:
    if isinstance(entry, dict):
        name = entry.get('name') or default_name
        if 'pattern' not in entry or 'replacement' not in entry:
            raise MalformedRuleError(name, "JSON rule needs 'pattern' and 'replacement'")
        return build_rule(entry['pattern'], entry['replacement'], name=name,
                          group=entry.get('group', group),
                          description=entry.get('description'))
    if isinstance(entry, (list, tuple)) and len(entry) == 2:
        return build_rule(entry[0], entry[1], name=default_name, group=group)
    raise MalformedRuleError(default_name, f"expected an object or [pattern, replacement], got {entry!r}")


def _json_list(value, owner: str, key: str) -> list:
    if not isinstance(value, list):
        raise MalformedRuleError(owner, f"'{key}' must be a list, got {value!r}")
    return value


def load_rules_from_json(text: str, name_prefix: Optional[str] = None) -> List[Rule]:
    """
    Load rules from JSON text (see module docstring for the format).

    Raises:
        MalformedRuleError: If the document does not have the expected shape
            or a rule cannot be used
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise MalformedRuleError(
            "<json>", f"expected an object with 'groups' and/or 'rules', got {type(data).__name__}")
    rules: List[Rule] = []

    for group_entry in _json_list(data.get('groups', []), "<json>", "groups"):
        if not isinstance(group_entry, dict):
            raise MalformedRuleError("<json>", f"expected a group object, got {group_entry!r}")
        group = group_entry.get('name')
        entries = _json_list(group_entry.get('rules', []), group or "<json>", "rules")
        for i, entry in enumerate(entries):
            rules.append(_rule_from_json(entry, _anonymous_name(group, i, name_prefix), group))

    for i, entry in enumerate(_json_list(data.get('rules', []), "<json>", "rules")):
        rules.append(_rule_from_json(entry, _anonymous_name(None, i, name_prefix), None))

    return rules


# ============================================================
# Rule Store
# ============================================================

class RuleStore:
    """
    An ordered, immutable collection of rules.

    Example:
        store = RuleStore.load([
            ("(+ ?x 1)", "(inc ?x)"),
            ("(conj [] . ?xs)", "(vector . ?xs)"),
        ])

        store = RuleStore.from_groups([
            ("arithmetic", ARITHMETIC_RULES),
            ("collections", COLLECTION_RULES),
        ])

        for rule in store.all():
            print(rule.to_dsl())
    """

    __slots__ = ('_rules', '_rule_names')

    def __init__(self, rules: Iterable[Rule] = ()):
        rules = tuple(rules)
        rule_names: Dict[str, int] = {}
        for idx, rule in enumerate(rules):
            if not isinstance(rule, Rule):
                raise TypeError(f"RuleStore holds Rule objects, got {rule!r}")
            if rule.name:
                # First definition of a name wins, matching rule order
                rule_names.setdefault(rule.name, idx)
        object.__setattr__(self, "_rules", rules)
        object.__setattr__(self, "_rule_names", rule_names)

    def __setattr__(self, name, value):
        raise AttributeError("RuleStore is immutable")

    # Class method constructors
    @classmethod
    def load(cls, definitions: Iterable, group: Optional[str] = None) -> 'RuleStore':
        """
        Build a store from (pattern, replacement) pairs.

        Each side may be source text or an expression. Ready-made Rule
        objects are accepted too and are re-validated.

        Raises:
            MalformedRuleError: naming the first rule that cannot be used
        """
        rules = []
        for i, definition in enumerate(definitions):
            default_name = _anonymous_name(group, i)
            if isinstance(definition, Rule):
                rules.append(validate_rule(definition, definition.name or default_name))
                continue
            if not isinstance(definition, (tuple, list)) or len(definition) != 2:
                raise MalformedRuleError(
                    default_name, f"expected a (pattern, replacement) pair, got {definition!r}")
            pattern, replacement = definition
            rules.append(build_rule(pattern, replacement, name=default_name, group=group))
        if group:
            logger.debug("Loaded %d rules in group %s", len(rules), group)
        return cls(rules)

    @classmethod
    def from_groups(cls, groups: Union[Dict[str, Sequence], Iterable[Tuple[str, Sequence]]]) -> 'RuleStore':
        """Load several named groups, concatenated in the order given."""
        items = groups.items() if isinstance(groups, dict) else groups
        rules: List[Rule] = []
        for group, definitions in items:
            rules.extend(cls.load(definitions, group=group).all())
        return cls(rules)

    @classmethod
    def from_dsl(cls, text: str) -> 'RuleStore':
        """Create a store from DSL text."""
        return cls(load_rules_from_dsl(text))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'RuleStore':
        """Create a store from a .rules or .json file."""
        return cls(load_rules_from_file(path))

    @classmethod
    def from_json(cls, text: str) -> 'RuleStore':
        """Create a store from JSON text."""
        return cls(load_rules_from_json(text))

    def all(self) -> Tuple[Rule, ...]:
        """Return every rule, in load order."""
        return self._rules

    # ============================================================
    # Group Management
    # ============================================================

    def groups(self) -> List[str]:
        """Return group names in first-seen order."""
        seen: List[str] = []
        for rule in self._rules:
            if rule.group and rule.group not in seen:
                seen.append(rule.group)
        return seen

    def only(self, groups: Iterable[str]) -> 'RuleStore':
        """Return a store with only the rules in the given groups."""
        wanted = set(groups)
        return RuleStore(r for r in self._rules if r.group in wanted)

    def without(self, groups: Iterable[str]) -> 'RuleStore':
        """Return a store without the rules in the given groups."""
        unwanted = set(groups)
        return RuleStore(r for r in self._rules if r.group not in unwanted)

    # ============================================================
    # Export
    # ============================================================

    def list_rules(self) -> List[str]:
        """List all rules in DSL format."""
        return [rule.to_dsl() for rule in self._rules]

    def to_dsl(self, name: Optional[str] = None) -> str:
        """
        Export rules to DSL format string, organized by groups.

        The result loads back with RuleStore.from_dsl().
        """
        lines = []
        if name:
            lines.append(f"# {name}")
            lines.append("")

        current_group = None
        for rule in self._rules:
            if rule.group != current_group:
                if rule.group:
                    if lines and lines[-1] != "":
                        lines.append("")
                    lines.append(f"[{rule.group}]")
                current_group = rule.group
            lines.append(rule.to_dsl())

        return "\n".join(lines)

    def to_dict(self) -> Dict:
        """Export rules to a JSON-compatible dictionary."""
        return {"rules": [rule.to_dict() for rule in self._rules]}

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Export rules to JSON text compatible with load_rules_from_json()."""
        return json.dumps(self.to_dict(), indent=indent)

    # ============================================================
    # Container protocol
    # ============================================================

    def __add__(self, other: 'RuleStore') -> 'RuleStore':
        """Concatenate two stores: rules of self first, then other."""
        if not isinstance(other, RuleStore):
            return NotImplemented
        return RuleStore(self._rules + other._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __contains__(self, name: str) -> bool:
        """Check if a named rule exists: 'plus-one' in store."""
        return name in self._rule_names

    def __getitem__(self, name: str) -> Rule:
        """Get rule by name: store['plus-one']."""
        if name not in self._rule_names:
            raise KeyError(f"No rule named '{name}'")
        return self._rules[self._rule_names[name]]

    def __eq__(self, other):
        if isinstance(other, RuleStore):
            return self._rules == other._rules
        return False

    def __hash__(self):
        return hash(self._rules)

    def __repr__(self) -> str:
        return f"RuleStore({len(self._rules)} rules)"
