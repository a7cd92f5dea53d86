"""Derive a configuration's type and default name from its rules."""
from .models import ConfigurationType

UNNAMED_CONFIGURATION = "Unnamed Configuration"


def infer_type(rules: list) -> str:
    """Single shared kind gives that kind's type; anything else is combined."""
    if not rules:
        return ConfigurationType.COMBINED.value

    kinds = {str(getattr(r.kind, "value", r.kind)) for r in rules}
    if len(kinds) == 1:
        return ConfigurationType(kinds.pop()).value
    return ConfigurationType.COMBINED.value


def infer_name(rules: list) -> str:
    if not rules:
        return UNNAMED_CONFIGURATION

    roots = [r for r in rules if r.parent_node_id is None]
    if not roots:
        return UNNAMED_CONFIGURATION

    if len(roots) == 1:
        root = roots[0]
        kind = str(getattr(root.kind, "value", root.kind))
        return f"{kind.capitalize()}: {root.match_value}"

    return f"{infer_type(rules).capitalize()} Configuration"
