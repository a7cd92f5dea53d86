"""
Rule tree construction from flat parent-pointer rule lists.

The tree is an arena: ``RuleTree.nodes`` holds every reachable node and
children are referenced by index, so dangling parents are detected in a
single pass over the input.
"""
from collections import defaultdict
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..errors import ValidationError
from .models import RuleInput, RuleKind, RuleOperator

log = structlog.get_logger()


class RuleNode(BaseModel):
    """One arena slot: the rule plus indices of its children."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    rule: Any
    children: list[int] = Field(default_factory=list)

    @property
    def operator(self) -> str:
        return self.rule.operator


class RuleTree(BaseModel):
    """Arena of rule nodes with the indices of the root nodes."""
    nodes: list[RuleNode] = Field(default_factory=list)
    roots: list[int] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.roots


def build_tree(rules: list) -> RuleTree:
    """
    Build a rule tree from a flat list of Rule or RuleInput records.

    Nodes whose parent is not part of the input are dropped together with
    their descendants. Children and roots are ordered by ``position``.
    Each rule is attached at most once, so duplicate ids cannot loop.
    """
    ordered = sorted(rules, key=lambda r: r.position)
    by_parent: dict[str | None, list] = defaultdict(list)
    known_ids = {r.node_id for r in ordered}

    for rule in ordered:
        parent = rule.parent_node_id
        if parent is not None and parent not in known_ids:
            log.debug("rule.dangling_parent", rule=rule.node_id, parent=parent)
            continue
        by_parent[parent].append(rule)

    tree = RuleTree()
    attached: set[int] = set()

    def attach(rule) -> int:
        attached.add(id(rule))
        index = len(tree.nodes)
        tree.nodes.append(RuleNode(rule=rule))
        for child in by_parent.get(rule.node_id, []):
            if id(child) in attached:
                log.debug("rule.duplicate_id", rule=child.node_id)
                continue
            tree.nodes[index].children.append(attach(child))
        return index

    for root in by_parent.get(None, []):
        tree.roots.append(attach(root))

    return tree


def _ancestor_chain(rule, by_id: dict) -> list:
    """
    Ancestors of ``rule`` from parent to the topmost known ancestor.

    The walk stops at a parent id missing from ``by_id``; raises on cycles.
    """
    chain = []
    seen = {rule.node_id}
    parent_id = rule.parent_node_id
    while parent_id is not None and parent_id in by_id:
        if parent_id in seen:
            raise ValidationError(
                f"Rule {rule.node_id} is part of a parent cycle",
                {"ref": rule.node_id},
            )
        seen.add(parent_id)
        parent = by_id[parent_id]
        chain.append(parent)
        parent_id = parent.parent_node_id
    return chain


def check_rule_structure(rules: list[RuleInput]) -> dict[str, RuleInput]:
    """
    Reject rule sets that cannot form a tree: duplicate refs or parent cycles.

    Unknown parents are allowed here; ``build_tree`` drops those rules.

    Returns:
        Rules keyed by ref
    """
    by_id: dict[str, RuleInput] = {}
    for rule in rules:
        if rule.ref in by_id:
            raise ValidationError(f"Duplicate rule ref {rule.ref}", {"ref": rule.ref})
        by_id[rule.ref] = rule

    for rule in rules:
        _ancestor_chain(rule, by_id)
    return by_id


def find_kind_repeats(rules: list) -> list[str]:
    """Ids of rules whose kind already appears among their ancestors."""
    by_id = {r.node_id: r for r in rules}
    repeats = []
    for rule in rules:
        chain = []
        parent_id = rule.parent_node_id
        seen = {rule.node_id}
        while parent_id is not None and parent_id in by_id and parent_id not in seen:
            seen.add(parent_id)
            chain.append(by_id[parent_id])
            parent_id = by_id[parent_id].parent_node_id
        if any(a.kind == rule.kind for a in chain):
            repeats.append(rule.node_id)
    return repeats


def validate_rule_set(rules: list[RuleInput]) -> None:
    """
    Validate an authored rule set before it is persisted.

    Raises:
        ValidationError: on duplicate refs, unknown parents, parent cycles,
            a kind repeated along an ancestor chain, or misplaced product rules.
    """
    by_id = check_rule_structure(rules)

    for rule in rules:
        if rule.parent_ref is not None and rule.parent_ref not in by_id:
            raise ValidationError(
                f"Rule {rule.ref} references unknown parent {rule.parent_ref}",
                {"ref": rule.ref, "parent_ref": rule.parent_ref},
            )

    for rule in rules:
        chain = _ancestor_chain(rule, by_id)
        if any(ancestor.kind == rule.kind for ancestor in chain):
            raise ValidationError(
                f"Rule {rule.ref} repeats kind '{rule.kind}' from its ancestors",
                {"ref": rule.ref, "kind": rule.kind},
            )

    product_rules = [r for r in rules if r.kind == RuleKind.PRODUCT]
    if len(product_rules) > 1:
        raise ValidationError("Only one product rule is allowed per configuration")
    if product_rules and product_rules[0].parent_ref is not None:
        raise ValidationError(
            "Product rules must be root rules",
            {"ref": product_rules[0].ref},
        )
    if product_rules and not product_rules[0].match_ref:
        raise ValidationError(
            "Product rules require a product id reference",
            {"ref": product_rules[0].ref},
        )


def normalize_sibling_operators(rules: list[RuleInput]) -> list[RuleInput]:
    """
    Coerce each sibling group to a single operator.

    Roots are always OR. Under any parent, if one sibling is OR, every
    sibling becomes OR; otherwise the group stays AND. Levels are recomputed
    from the parent chain. Returns new RuleInput objects.

    Note the cross-sibling effect: setting one child to OR flips all of its
    siblings to OR as well.
    """
    groups: dict[str | None, list[RuleInput]] = defaultdict(list)
    for rule in rules:
        groups[rule.parent_ref].append(rule)

    group_operator: dict[str | None, str] = {}
    for parent_ref, siblings in groups.items():
        if parent_ref is None or any(s.operator == RuleOperator.OR for s in siblings):
            group_operator[parent_ref] = RuleOperator.OR.value
        else:
            group_operator[parent_ref] = RuleOperator.AND.value

    by_id = {r.ref: r for r in rules}

    def level_of(rule: RuleInput) -> int:
        # Depth of the known ancestor chain; a cycle ends the walk
        level = 0
        seen = {rule.ref}
        parent = by_id.get(rule.parent_ref) if rule.parent_ref else None
        while parent is not None and parent.ref not in seen:
            seen.add(parent.ref)
            level += 1
            parent = by_id.get(parent.parent_ref) if parent.parent_ref else None
        return level

    normalized = []
    for rule in rules:
        operator = group_operator[rule.parent_ref]
        if operator != rule.operator:
            log.debug("rule.operator_coerced", ref=rule.ref, operator=operator)
        normalized.append(
            rule.model_copy(update={"operator": operator, "level": level_of(rule)})
        )
    return normalized
