"""
Built-in rule groups for simplisp.

Each group is a plain list of (pattern, replacement) pairs. The default
store concatenates the groups in DEFAULT_GROUP_ORDER; within a group the
first matching rule wins, so more specific rules come first.

Usage:
    store = default_rule_store()
    store = default_rule_store(groups=["arithmetic", "control-structures"])
    store = default_rule_store() + RuleStore.from_file("project.rules")
"""

from typing import Dict, Iterable, List, Optional, Tuple

from .rules import RuleStore

RuleTable = List[Tuple[str, str]]


ARITHMETIC_RULES: RuleTable = [
    ("(+ ?x 1)", "(inc ?x)"),
    ("(+ 1 ?x)", "(inc ?x)"),
    ("(- ?x 1)", "(dec ?x)"),
    ("(* ?x (* . ?xs))", "(* ?x . ?xs)"),
    ("(+ ?x (+ . ?xs))", "(+ ?x . ?xs)"),
    ("(= 0 ?x)", "(zero? ?x)"),
    ("(= ?x 0)", "(zero? ?x)"),
    ("(== 0 ?x)", "(zero? ?x)"),
    ("(== ?x 0)", "(zero? ?x)"),
    ("(< 0 ?x)", "(pos? ?x)"),
    ("(> ?x 0)", "(pos? ?x)"),
    ("(< ?x 0)", "(neg? ?x)"),
    ("(> 0 ?x)", "(neg? ?x)"),
]

COLLECTION_RULES: RuleTable = [
    ("(conj [] . ?xs)", "(vector . ?xs)"),
    ("(into [] ?coll)", "(vec ?coll)"),
    ("(into #{} ?coll)", "(set ?coll)"),
    ("(assoc ?coll ?key0 (assoc (?coll ?key0) ?key1 ?val))",
     "(assoc-in ?coll [?key0 ?key1] ?val)"),
    ("(assoc ?coll ?key0 (assoc (get ?coll ?key0) ?key1 ?val))",
     "(assoc-in ?coll [?key0 ?key1] ?val)"),
    ("(update-in ?coll [?key] ?f . ?args)", "(update ?coll ?key ?f . ?args)"),
    ("(assoc ?coll ?key (?f (get ?coll ?key) . ?args))", "(update ?coll ?key ?f . ?args)"),
    ("(not (empty? ?coll))", "(seq ?coll)"),
    ("(take ?n (repeatedly ?f))", "(repeatedly ?n ?f)"),
    ("(dorun (map ?f ?coll))", "(run! ?f ?coll)"),
    ("(vec (map ?f ?coll))", "(mapv ?f ?coll)"),
    ("(vec (filter ?pred ?coll))", "(filterv ?pred ?coll)"),
    ("(first (first ?coll))", "(ffirst ?coll)"),
    ("(first (next ?coll))", "(fnext ?coll)"),
    ("(next (next ?coll))", "(nnext ?coll)"),
    ("(next (first ?coll))", "(nfirst ?coll)"),
    ("(apply concat (map ?f ?coll))", "(mapcat ?f ?coll)"),
    ("(apply concat (apply map ?f ?colls))", "(apply mapcat ?f ?colls)"),
    ("(filter (complement ?pred) ?coll)", "(remove ?pred ?coll)"),
    ("(filter (fn [?x] (not (?pred ?x))) ?coll)", "(remove ?pred ?coll)"),
    ("(not (some ?pred ?coll))", "(not-any? ?pred ?coll)"),
]

CONTROL_STRUCTURE_RULES: RuleTable = [
    ("(if ?x (do . ?y) nil)", "(when ?x . ?y)"),
    ("(if ?x ?y nil)", "(when ?x ?y)"),
    ("(if ?x nil ?y)", "(when-not ?x ?y)"),
    ("(if ?x (do . ?y))", "(when ?x . ?y)"),
    ("(if (not ?x) ?y ?z)", "(if-not ?x ?y ?z)"),
    ("(if (not ?x) ?y)", "(if-not ?x ?y)"),
    ("(when (not ?x) . ?y)", "(when-not ?x . ?y)"),
    ("(when ?x (do . ?y))", "(when ?x . ?y)"),
    ("(when-not ?x (do . ?y))", "(when-not ?x . ?y)"),
    ("(if ?x true false)", "(boolean ?x)"),
    ("(if ?x false true)", "(not ?x)"),
    ("(do ?x)", "?x"),
    ("(let ?bindings (do . ?body))", "(let ?bindings . ?body)"),
    ("(fn ?args (do . ?body))", "(fn ?args . ?body)"),
    ("(loop ?bindings (do . ?body))", "(loop ?bindings . ?body)"),
    ("(if-let ?binding ?expr nil)", "(when-let ?binding ?expr)"),
    ("(when ?x (when ?y . ?body))", "(when (and ?x ?y) . ?body)"),
]

EQUALITY_RULES: RuleTable = [
    ("(not (= . ?args))", "(not= . ?args)"),
    ("(= ?x nil)", "(nil? ?x)"),
    ("(= nil ?x)", "(nil? ?x)"),
    ("(= ?x true)", "(true? ?x)"),
    ("(= true ?x)", "(true? ?x)"),
    ("(= ?x false)", "(false? ?x)"),
    ("(= false ?x)", "(false? ?x)"),
    ("(not (nil? ?x))", "(some? ?x)"),
]

MISC_RULES: RuleTable = [
    ("(fn [?x] (?f ?x))", "?f"),
    ("(fn* [?x] (?f ?x))", "?f"),
    ("(apply str (reverse ?coll))", "(clojure.string/reverse ?coll)"),
    ("(apply str (interpose ?sep ?coll))", "(clojure.string/join ?sep ?coll)"),
    ("(apply str ?coll)", "(clojure.string/join ?coll)"),
    ("(.toString ?x)", "(str ?x)"),
    ("(str (str . ?xs))", "(str . ?xs)"),
    ("(-> ?x (?f . ?args))", "(?f ?x . ?args)"),
    ("(->> ?x (?f . ?args))", "(?f ?args... ?x)"),
    ("(-> ?x ?f)", "(?f ?x)"),
    ("(->> ?x ?f)", "(?f ?x)"),
    ("(mapcat identity ?coll)", "(apply concat ?coll)"),
    ("(keep identity ?coll)", "(remove nil? ?coll)"),
]

# Built-in groups by name; the registry a caller selects from.
BUILTIN_RULE_GROUPS: Dict[str, RuleTable] = {
    "arithmetic": ARITHMETIC_RULES,
    "collections": COLLECTION_RULES,
    "control-structures": CONTROL_STRUCTURE_RULES,
    "equality": EQUALITY_RULES,
    "misc": MISC_RULES,
}

DEFAULT_GROUP_ORDER: Tuple[str, ...] = (
    "arithmetic",
    "collections",
    "control-structures",
    "equality",
    "misc",
)


def default_rule_store(groups: Optional[Iterable[str]] = None) -> RuleStore:
    """
    Build a store from the built-in groups.

    Args:
        groups: Group names to include, in the order they should be tried.
            Default: every built-in group in DEFAULT_GROUP_ORDER.

    Raises:
        KeyError: If a group name is not a built-in group
    """
    names = list(groups) if groups is not None else list(DEFAULT_GROUP_ORDER)
    for name in names:
        if name not in BUILTIN_RULE_GROUPS:
            available = ", ".join(DEFAULT_GROUP_ORDER)
            raise KeyError(f"Unknown rule group: {name}. Available: {available}")
    return RuleStore.from_groups([(name, BUILTIN_RULE_GROUPS[name]) for name in names])
