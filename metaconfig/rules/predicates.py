"""Leaf predicates: does one catalog item satisfy one rule node."""
import orjson
import structlog

from ..catalog.models import CatalogItem
from .models import RuleKind

log = structlog.get_logger()


def _decode_ref_list(match_ref: str) -> list[str] | None:
    """Return the ref as a list of ids if it is a JSON array, else None."""
    try:
        decoded = orjson.loads(match_ref)
    except orjson.JSONDecodeError:
        return None
    if isinstance(decoded, list):
        return [str(v) for v in decoded]
    return None


def matches_leaf(item: CatalogItem, rule) -> bool:
    """
    Check if an item matches a single rule, ignoring the rule's children.

    ``rule`` is any object exposing ``kind``, ``match_value`` and ``match_ref``
    (a persisted Rule or an unsaved RuleInput).

    Malformed ``match_ref`` JSON never raises; it falls back to comparing the
    raw string.
    """
    kind = rule.kind
    match_value = rule.match_value or None
    match_ref = rule.match_ref or None

    if not match_value and not match_ref:
        return False

    if kind == RuleKind.VENDOR:
        return item.vendor is not None and item.vendor == match_value

    if kind == RuleKind.CATEGORY:
        if item.category is None:
            return False
        if match_ref:
            return item.category.id == match_ref
        return item.category.name == match_value

    if kind == RuleKind.COLLECTION:
        if match_ref:
            ids = _decode_ref_list(match_ref)
            if ids is not None:
                return any(c.id in ids for c in item.collections)
            return any(c.id == match_ref for c in item.collections)
        return any(c.title == match_value for c in item.collections)

    if kind == RuleKind.PRODUCT:
        if not match_ref:
            return False
        ids = _decode_ref_list(match_ref)
        if ids is not None:
            return item.id in ids
        return item.id == match_ref

    log.debug("rule.unknown_kind", kind=kind)
    return False
