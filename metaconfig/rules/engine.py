"""Rule tree evaluation and priority-ordered configuration matching."""
import structlog

from ..catalog.models import CatalogItem
from .models import RuleOperator
from .predicates import matches_leaf
from .tree import RuleTree, build_tree, find_kind_repeats

log = structlog.get_logger()


def evaluate_node(item: CatalogItem, tree: RuleTree, index: int) -> bool:
    """
    Evaluate one node and its subtree.

    The node's own predicate must hold. Children are combined with the
    operator of the first child; sibling groups are homogeneous once
    normalized, so the first child speaks for the group.
    """
    node = tree.nodes[index]
    if not matches_leaf(item, node.rule):
        return False

    if not node.children:
        return True

    first_operator = tree.nodes[node.children[0]].operator
    if first_operator == RuleOperator.AND:
        return all(evaluate_node(item, tree, child) for child in node.children)
    return any(evaluate_node(item, tree, child) for child in node.children)


def evaluate(item: CatalogItem, tree: RuleTree) -> bool:
    """
    Evaluate a whole rule tree for an item.

    An empty tree matches every item. Roots are OR'd together whatever
    their stored operator.
    """
    if tree.is_empty():
        return True
    return any(evaluate_node(item, tree, root) for root in tree.roots)


class ConfigurationEntry:
    """A configuration id and priority with its prebuilt rule tree."""

    def __init__(self, configuration_id: int, priority: int, tree: RuleTree):
        self.configuration_id = configuration_id
        self.priority = priority
        self.tree = tree

    @classmethod
    def from_rules(cls, configuration_id: int, priority: int, rules: list) -> "ConfigurationEntry":
        """Build an entry from stored rules, warning about kind repeats."""
        repeats = find_kind_repeats(rules)
        if repeats:
            log.warning(
                "rules.kind_repeated_in_chain",
                configuration_id=configuration_id,
                rule_ids=repeats,
            )
        return cls(configuration_id, priority, build_tree(rules))


class RulesEngine:
    """Evaluates a set of configuration rule trees in priority order."""

    def __init__(self, entries: list[ConfigurationEntry] | None = None):
        """
        Initialize rules engine.

        Args:
            entries: Configuration entries to evaluate (defaults to empty list)
        """
        self.entries = entries or []
        self._sort_entries()

    def _sort_entries(self):
        """Sort entries by priority (higher number = evaluated first)."""
        self.entries.sort(key=lambda e: e.priority, reverse=True)

    def matching(self, item: CatalogItem) -> list[ConfigurationEntry]:
        """
        Evaluate every entry against an item.

        Returns:
            All matching entries, highest priority first.
        """
        matched = []
        for entry in self.entries:
            if evaluate(item, entry.tree):
                matched.append(entry)
                log.debug(
                    "configuration.matched",
                    configuration_id=entry.configuration_id,
                    item_id=item.id,
                )
        return matched
