"""Writing metadata field specs to catalog items."""
import time

import orjson
import structlog

from ..catalog.base import CatalogSource
from ..catalog.models import FILE_ID_PREFIX, METAOBJECT_ID_PREFIX, CatalogItem, MetafieldInput
from ..configurations.models import (
    ApplyError,
    ApplyResult,
    FieldSpec,
    FileReferenceFieldSpec,
    FileReferenceListFieldSpec,
    ObjectReferenceFieldSpec,
    ObjectReferenceListFieldSpec,
)
from ..errors import MetadataWriteError
from ..metrics.collector import (
    APPLY_LATENCY_MS,
    FIELDS_SKIPPED_TOTAL,
    ITEMS_APPLIED_TOTAL,
    ITEMS_FAILED_TOTAL,
    collector,
)
from ..metrics.prometheus import get_metrics

log = structlog.get_logger()

UNCATEGORIZED = "Uncategorized"


def _skip(spec: FieldSpec, reason: str, **context) -> None:
    collector.increment(FIELDS_SKIPPED_TOTAL, labels={"reason": reason})
    log.warning("metadata.field_skipped", field=spec.qualified_key, reason=reason, **context)


def _reference_ids(spec: FieldSpec, values: list, prefix: str) -> list[str] | None:
    """Validate reference values; None means the field must be skipped."""
    if any(isinstance(v, dict) for v in values):
        _skip(spec, "unresolved_reference")
        return None
    invalid = [v for v in values if not (isinstance(v, str) and v.startswith(prefix))]
    if invalid:
        _skip(spec, "invalid_reference", value=str(invalid[0]))
        return None
    return values


def to_metafield_input(spec: FieldSpec) -> MetafieldInput | None:
    """
    Turn a field spec into the value written to an item.

    Returns:
        The metafield to write, or None when the field is skipped (empty
        value, unresolved structured object, malformed reference id).
    """
    value = spec.value
    if value is None or value == "" or value == [] or value == {}:
        log.info("metadata.field_empty", field=spec.qualified_key)
        return None

    if isinstance(spec, ObjectReferenceFieldSpec):
        ids = _reference_ids(spec, [value], METAOBJECT_ID_PREFIX)
        serialized = ids[0] if ids else None
    elif isinstance(spec, FileReferenceFieldSpec):
        ids = _reference_ids(spec, [value], FILE_ID_PREFIX)
        serialized = ids[0] if ids else None
    elif isinstance(spec, ObjectReferenceListFieldSpec):
        ids = _reference_ids(spec, list(value), METAOBJECT_ID_PREFIX)
        serialized = orjson.dumps(ids).decode() if ids else None
    elif isinstance(spec, FileReferenceListFieldSpec):
        ids = _reference_ids(spec, list(value), FILE_ID_PREFIX)
        serialized = orjson.dumps(ids).decode() if ids else None
    elif isinstance(value, bool):
        serialized = "true" if value else "false"
    else:
        serialized = str(value)

    if serialized is None:
        return None
    return MetafieldInput(
        namespace=spec.namespace, key=spec.key, type=spec.write_type, value=serialized
    )


async def apply_metadata(
    catalog: CatalogSource, item_id: str, field_specs: list[FieldSpec]
) -> list[MetafieldInput]:
    """
    Write field specs to one item in a single catalog call.

    Returns:
        The fields that were written

    Raises:
        MetadataWriteError: the catalog reported field-level errors
        CatalogAPIError: the catalog call itself failed
    """
    fields = [f for f in (to_metafield_input(spec) for spec in field_specs) if f is not None]
    if not fields:
        log.info("metadata.nothing_to_write", item_id=item_id)
        return []

    errors = await catalog.write_item_fields(item_id, fields)
    if errors:
        raise MetadataWriteError(item_id, errors)

    log.info("metadata.applied", item_id=item_id, fields=[f"{f.namespace}.{f.key}" for f in fields])
    return fields


async def bulk_apply(
    catalog: CatalogSource, items: list[CatalogItem], field_specs: list[FieldSpec]
) -> ApplyResult:
    """
    Apply field specs to every item, one at a time.

    A failing item is recorded in ``errors`` and the batch continues.
    """
    result = ApplyResult(total=len(items))
    start_time = time.time()

    for item in items:
        try:
            await apply_metadata(catalog, item.id, field_specs)
            result.successful += 1
            collector.increment(ITEMS_APPLIED_TOTAL)
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            result.failed += 1
            result.errors.append(ApplyError(item_id=item.id, item_title=item.title or None, message=message))
            collector.increment(ITEMS_FAILED_TOTAL)
            log.warning("metadata.item_failed", item_id=item.id, error=message)

    collector.record_latency(APPLY_LATENCY_MS, start_time)
    metrics = get_metrics()
    if metrics:
        metrics.record_bulk_apply(result.successful, result.failed, time.time() - start_time)
    log.info(
        "metadata.bulk_applied",
        total=result.total,
        successful=result.successful,
        failed=result.failed,
    )
    return result


async def apply_to_vendor(
    catalog: CatalogSource,
    vendor: str,
    field_specs: list[FieldSpec],
    categories: list[str] | None = None,
) -> ApplyResult:
    """
    Apply field specs to a vendor's items, optionally only in some categories.

    Items without a category count as ``Uncategorized``.
    """
    items = await catalog.fetch_items_by_vendor(vendor)
    if categories:
        wanted = set(categories)
        items = [
            item for item in items
            if ((item.category and item.category.name) or UNCATEGORIZED) in wanted
        ]

    log.info("metadata.vendor_apply", vendor=vendor, items=len(items), categories=categories)
    return await bulk_apply(catalog, items, field_specs)
