"""Resolution of structured-object references to external ids."""
from typing import Any

import orjson
import structlog

from ..catalog.base import CatalogSource
from ..catalog.models import METAOBJECT_ID_PREFIX, ObjectFieldInput
from ..config import get_settings
from ..configurations.models import (
    FieldSpec,
    ObjectReferenceFieldSpec,
    ObjectReferenceListFieldSpec,
)
from ..errors import ExternalCallError, ResolutionDepthError, ResolutionError

log = structlog.get_logger()
settings = get_settings()

OBJECT_REFERENCE = "metaobject_reference"
OBJECT_REFERENCE_LIST = "list.metaobject_reference"


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == {} or value == []


def _is_object_id(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(METAOBJECT_ID_PREFIX)


async def _resolve_nested(
    catalog: CatalogSource, key: str, nested_definition_id: str | None, value: Any, depth: int
) -> str:
    if _is_object_id(value):
        return value
    if not isinstance(value, dict):
        raise ResolutionError(
            f"Field {key} must hold an object id or a field map",
            {"field": key},
        )
    if not nested_definition_id:
        raise ResolutionError(
            f"Cannot find referenced definition for field {key}",
            {"field": key},
        )
    return await resolve_reference(catalog, nested_definition_id, value, None, depth=depth + 1)


async def resolve_reference(
    catalog: CatalogSource,
    definition_id: str,
    field_values: dict[str, Any],
    existing_id: str | None = None,
    depth: int = 0,
) -> str:
    """
    Create or update a structured object and return its external id.

    Nested reference fields holding field maps are resolved first,
    recursively. On create, a required field without a value fails the
    whole resolution.

    Raises:
        ResolutionDepthError: nesting deeper than MAX_RESOLUTION_DEPTH
        ResolutionError: missing required field or unresolvable nested field
        CatalogAPIError: the catalog rejected a call
    """
    if depth > settings.MAX_RESOLUTION_DEPTH:
        raise ResolutionDepthError(
            f"Structured object nesting exceeds {settings.MAX_RESOLUTION_DEPTH} levels",
            {"definition_id": definition_id, "depth": depth},
        )

    definition = await catalog.fetch_structured_object_definition(definition_id)
    fields: list[ObjectFieldInput] = []

    for field_def in definition.fields:
        value = field_values.get(field_def.key)

        if _is_empty(value):
            if field_def.required and existing_id is None:
                raise ResolutionError(
                    f"Required field {field_def.key} is missing",
                    {"definition_id": definition_id, "field": field_def.key},
                )
            continue

        if field_def.type == OBJECT_REFERENCE:
            resolved = await _resolve_nested(
                catalog, field_def.key, field_def.nested_definition_id, value, depth
            )
            fields.append(ObjectFieldInput(key=field_def.key, value=resolved))
        elif field_def.type == OBJECT_REFERENCE_LIST:
            entries = value if isinstance(value, list) else [value]
            resolved_ids = [
                await _resolve_nested(
                    catalog, field_def.key, field_def.nested_definition_id, entry, depth
                )
                for entry in entries
                if not _is_empty(entry)
            ]
            fields.append(
                ObjectFieldInput(key=field_def.key, value=orjson.dumps(resolved_ids).decode())
            )
        elif isinstance(value, (list, dict)):
            fields.append(ObjectFieldInput(key=field_def.key, value=orjson.dumps(value).decode()))
        else:
            fields.append(ObjectFieldInput(key=field_def.key, value=str(value)))

    object_id = await catalog.resolve_structured_object(definition, fields, existing_id)
    log.info(
        "structured_object.resolved",
        definition_id=definition_id,
        object_id=object_id,
        updated=existing_id is not None,
        depth=depth,
    )
    return object_id


async def _prepare_single(catalog: CatalogSource, spec: ObjectReferenceFieldSpec) -> ObjectReferenceFieldSpec:
    if not isinstance(spec.value, dict) or not spec.value:
        return spec
    if not spec.definition_id:
        log.warning("metadata.missing_definition", field=spec.qualified_key)
        return spec
    object_id = await resolve_reference(catalog, spec.definition_id, spec.value, spec.object_id)
    return spec.model_copy(update={"value": object_id, "object_id": object_id})


async def _prepare_list(
    catalog: CatalogSource, spec: ObjectReferenceListFieldSpec
) -> ObjectReferenceListFieldSpec:
    if not any(isinstance(entry, dict) for entry in spec.value):
        return spec
    if not spec.definition_id:
        log.warning("metadata.missing_definition", field=spec.qualified_key)
        return spec
    resolved = []
    for entry in spec.value:
        if isinstance(entry, dict):
            if entry:
                resolved.append(await resolve_reference(catalog, spec.definition_id, entry))
        else:
            resolved.append(entry)
    return spec.model_copy(update={"value": resolved})


async def prepare_field_specs(
    catalog: CatalogSource, specs: list[FieldSpec], strict: bool = False
) -> list[FieldSpec]:
    """
    Resolve every structured-object field map in a list of field specs.

    Args:
        catalog: Catalog that owns the structured objects
        specs: Field specs, possibly holding unresolved field maps
        strict: Propagate resolution failures instead of dropping the field

    Returns:
        Field specs whose structured-object values are ids
    """
    prepared: list[FieldSpec] = []
    for spec in specs:
        try:
            if isinstance(spec, ObjectReferenceFieldSpec):
                spec = await _prepare_single(catalog, spec)
            elif isinstance(spec, ObjectReferenceListFieldSpec):
                spec = await _prepare_list(catalog, spec)
        except ExternalCallError as e:
            if strict:
                raise
            log.warning(
                "metadata.field_resolution_failed",
                field=spec.qualified_key,
                error=e.message,
            )
            continue
        prepared.append(spec)
    return prepared
