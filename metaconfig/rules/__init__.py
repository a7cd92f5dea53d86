"""
Rule tree engine

Leaf predicates, arena tree construction, AND/OR evaluation and
configuration type/name inference.
"""

from .models import ConfigurationType, Rule, RuleInput, RuleKind, RuleOperator
from .predicates import matches_leaf
from .tree import (
    RuleNode,
    RuleTree,
    build_tree,
    check_rule_structure,
    find_kind_repeats,
    normalize_sibling_operators,
    validate_rule_set,
)
from .engine import ConfigurationEntry, RulesEngine, evaluate, evaluate_node
from .inference import UNNAMED_CONFIGURATION, infer_name, infer_type

__all__ = [
    "ConfigurationType",
    "Rule",
    "RuleInput",
    "RuleKind",
    "RuleOperator",
    "matches_leaf",
    "RuleNode",
    "RuleTree",
    "build_tree",
    "check_rule_structure",
    "find_kind_repeats",
    "normalize_sibling_operators",
    "validate_rule_set",
    "ConfigurationEntry",
    "RulesEngine",
    "evaluate",
    "evaluate_node",
    "UNNAMED_CONFIGURATION",
    "infer_name",
    "infer_type",
]
