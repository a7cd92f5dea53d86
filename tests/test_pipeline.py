"""Tests for catalog matching, metadata application and reference resolution."""
import orjson
import pytest
from unittest.mock import patch
from metaconfig.catalog.memory import InMemoryCatalogSource
from metaconfig.catalog.models import (
    CatalogItem,
    CategoryRef,
    ObjectFieldDefinition,
    StructuredObjectDefinition,
)
from metaconfig.configurations.models import field_specs_adapter
from metaconfig.configurations.persistence import InMemoryConfigurationStore
from metaconfig.errors import (
    ConfigurationNotFoundError,
    MetadataWriteError,
    ResolutionDepthError,
    ResolutionError,
)
from metaconfig.metrics.collector import ITEMS_APPLIED_TOTAL, ITEMS_FAILED_TOTAL, collector
from metaconfig.pipeline.apply import apply_metadata, apply_to_vendor, bulk_apply, to_metafield_input
from metaconfig.pipeline.matcher import find_matching, find_matching_for_saved
from metaconfig.pipeline.resolver import prepare_field_specs, resolve_reference
from metaconfig.rules import RuleInput, build_tree


def specs(*raw):
    return field_specs_adapter.validate_python(list(raw))


WARRANTY = {"namespace": "custom", "key": "warranty", "value": "2 years", "value_type": "scalar"}


def catalog_of(*items, definitions=None):
    return InMemoryCatalogSource(items=list(items), definitions=definitions)


def product(n, vendor=None, category=None, title=None):
    return CatalogItem(
        id=f"gid://shopify/Product/{n}",
        title=title or f"Item {n}",
        vendor=vendor,
        category=CategoryRef(name=category) if category else None,
    )


@pytest.mark.asyncio
async def test_acme_warranty_scenario():
    """Vendor rule matches one item; applying writes only to that item."""
    catalog = catalog_of(product(1, vendor="Acme"), product(2, vendor="Other"))
    tree = build_tree([RuleInput(ref="1", kind="vendor", match_value="Acme", operator="OR", level=0)])

    matched = await find_matching(catalog, tree)
    assert [i.id for i in matched] == ["gid://shopify/Product/1"]

    result = await bulk_apply(catalog, matched, specs(WARRANTY))
    assert result.total == 1 and result.successful == 1
    assert catalog.item_fields("gid://shopify/Product/1") == {"custom.warranty": "2 years"}
    assert catalog.item_fields("gid://shopify/Product/2") == {}


@pytest.mark.asyncio
async def test_find_matching_scans_every_page_in_order():
    catalog = catalog_of(*[product(n, vendor="Acme") for n in range(1, 6)])

    with patch("metaconfig.pipeline.matcher.settings") as mock_settings:
        mock_settings.CATALOG_PAGE_SIZE = 2
        matched = await find_matching(catalog, build_tree([]))

    assert catalog.pages_fetched == 3
    assert [i.id for i in matched] == [f"gid://shopify/Product/{n}" for n in range(1, 6)]


@pytest.mark.asyncio
async def test_find_matching_for_saved_uses_stored_rules():
    store = InMemoryConfigurationStore()
    catalog = catalog_of(
        product(1, vendor="Acme", category="Apparel"),
        product(2, vendor="Acme", category="Lighting"),
        product(3, vendor="Other", category="Apparel"),
    )
    configuration = await store.create(
        tenant="acme.myshopify.com", name=None, type="combined", metadata_fields=specs(WARRANTY)
    )
    await store.replace_rules(configuration.id, [
        RuleInput(ref="v", kind="vendor", match_value="Acme"),
        RuleInput(ref="c", parent_ref="v", kind="category", match_value="Apparel", operator="AND", level=1),
    ])

    matched = await find_matching_for_saved(catalog, store, configuration.id)

    assert [i.id for i in matched] == ["gid://shopify/Product/1"]


@pytest.mark.asyncio
async def test_find_matching_for_saved_unknown_configuration():
    store = InMemoryConfigurationStore()

    with pytest.raises(ConfigurationNotFoundError):
        await find_matching_for_saved(catalog_of(product(1)), store, 404)


@pytest.mark.asyncio
async def test_apply_is_idempotent():
    catalog = catalog_of(product(1))
    fields = specs(WARRANTY, {"namespace": "custom", "key": "eco", "value": True, "value_type": "scalar",
                              "type": "boolean"})

    await apply_metadata(catalog, "gid://shopify/Product/1", fields)
    first = catalog.item_fields("gid://shopify/Product/1")
    await apply_metadata(catalog, "gid://shopify/Product/1", fields)

    assert catalog.item_fields("gid://shopify/Product/1") == first
    assert first == {"custom.warranty": "2 years", "custom.eco": "true"}


@pytest.mark.asyncio
async def test_apply_without_surviving_fields_makes_no_call():
    catalog = catalog_of(product(1))
    written = await apply_metadata(
        catalog,
        "gid://shopify/Product/1",
        specs(
            {"namespace": "custom", "key": "empty", "value": "", "value_type": "scalar"},
            {"namespace": "custom", "key": "doc", "value": "not-an-id", "value_type": "file_reference"},
        ),
    )
    assert written == []
    assert catalog.write_calls == 0


@pytest.mark.asyncio
async def test_reference_fields_are_validated_and_lists_json_encoded():
    unresolved = specs({"namespace": "custom", "key": "spec", "value": {"name": "x"},
                        "value_type": "metaobject_reference"})[0]
    bad_object = specs({"namespace": "custom", "key": "spec", "value": "gid://shopify/File/1",
                        "value_type": "metaobject_reference"})[0]
    files = specs({"namespace": "custom", "key": "docs",
                   "value": ["gid://shopify/MediaImage/1", "gid://shopify/GenericFile/2"],
                   "value_type": "list.file_reference"})[0]

    assert to_metafield_input(unresolved) is None
    assert to_metafield_input(bad_object) is None

    written = to_metafield_input(files)
    assert written.type == "list.file_reference"
    assert orjson.loads(written.value) == ["gid://shopify/MediaImage/1", "gid://shopify/GenericFile/2"]


@pytest.mark.asyncio
async def test_field_errors_raise_metadata_write_error():
    catalog = catalog_of(product(1))
    catalog.rejected_items.add("gid://shopify/Product/1")

    with pytest.raises(MetadataWriteError) as exc:
        await apply_metadata(catalog, "gid://shopify/Product/1", specs(WARRANTY))
    assert exc.value.item_id == "gid://shopify/Product/1"
    assert exc.value.status_code == 502


@pytest.mark.asyncio
async def test_bulk_apply_isolates_item_failures():
    collector.reset()
    items = [product(1), product(2), product(3)]
    catalog = catalog_of(*items)
    catalog.rejected_items.add("gid://shopify/Product/2")

    result = await bulk_apply(catalog, items, specs(WARRANTY))

    assert (result.total, result.successful, result.failed) == (3, 2, 1)
    assert [e.item_id for e in result.errors] == ["gid://shopify/Product/2"]
    assert result.errors[0].item_title == "Item 2"
    assert catalog.item_fields("gid://shopify/Product/3") == {"custom.warranty": "2 years"}
    assert collector.counter(ITEMS_APPLIED_TOTAL) == 2
    assert collector.counter(ITEMS_FAILED_TOTAL) == 1


@pytest.mark.asyncio
async def test_apply_to_vendor_filters_categories():
    catalog = catalog_of(
        product(1, vendor="Acme", category="Apparel"),
        product(2, vendor="Acme"),
        product(3, vendor="Acme", category="Lighting"),
        product(4, vendor="Other", category="Apparel"),
    )

    result = await apply_to_vendor(catalog, "Acme", specs(WARRANTY), ["Apparel", "Uncategorized"])

    assert result.total == 2
    assert catalog.item_fields("gid://shopify/Product/1")
    assert catalog.item_fields("gid://shopify/Product/2")
    assert not catalog.item_fields("gid://shopify/Product/3")
    assert not catalog.item_fields("gid://shopify/Product/4")


@pytest.mark.asyncio
async def test_apply_to_vendor_without_categories_takes_all_vendor_items():
    catalog = catalog_of(product(1, vendor="Acme", category="Apparel"), product(2, vendor="Acme"))
    result = await apply_to_vendor(catalog, "Acme", specs(WARRANTY))
    assert result.successful == 2


PROVIDER = StructuredObjectDefinition(
    id="gid://shopify/MetaobjectDefinition/1",
    type="provider",
    fields=[ObjectFieldDefinition(key="name", required=True)],
)

WARRANTY_DOC = StructuredObjectDefinition(
    id="gid://shopify/MetaobjectDefinition/2",
    type="warranty",
    fields=[
        ObjectFieldDefinition(key="years", type="number_integer", required=True),
        ObjectFieldDefinition(key="regions", type="list.single_line_text_field"),
        ObjectFieldDefinition(
            key="provider",
            type="metaobject_reference",
            nested_definition_id="gid://shopify/MetaobjectDefinition/1",
        ),
    ],
)


@pytest.mark.asyncio
async def test_resolve_reference_creates_nested_objects():
    catalog = catalog_of(definitions=[PROVIDER, WARRANTY_DOC])

    object_id = await resolve_reference(
        catalog,
        WARRANTY_DOC.id,
        {"years": 2, "regions": ["EU", "US"], "provider": {"name": "Acme Care"}},
    )

    assert object_id.startswith("gid://shopify/Metaobject/")
    created = catalog.get_object(object_id)
    assert created.fields["years"] == "2"
    assert orjson.loads(created.fields["regions"]) == ["EU", "US"]
    provider = catalog.get_object(created.fields["provider"])
    assert provider.fields == {"name": "Acme Care"}


@pytest.mark.asyncio
async def test_resolve_reference_passes_existing_ids_through():
    catalog = catalog_of(definitions=[PROVIDER, WARRANTY_DOC])
    object_id = await resolve_reference(
        catalog, WARRANTY_DOC.id, {"years": 1, "provider": "gid://shopify/Metaobject/77"}
    )
    assert catalog.get_object(object_id).fields["provider"] == "gid://shopify/Metaobject/77"


@pytest.mark.asyncio
async def test_required_field_enforced_on_create_only():
    catalog = catalog_of(definitions=[PROVIDER, WARRANTY_DOC])

    with pytest.raises(ResolutionError):
        await resolve_reference(catalog, WARRANTY_DOC.id, {"regions": ["EU"]})

    object_id = await resolve_reference(catalog, WARRANTY_DOC.id, {"years": 3})
    same_id = await resolve_reference(catalog, WARRANTY_DOC.id, {"regions": ["EU"]}, object_id)
    assert same_id == object_id
    assert catalog.get_object(object_id).fields["years"] == "3"


@pytest.mark.asyncio
async def test_resolution_depth_guard():
    node = StructuredObjectDefinition(
        id="gid://shopify/MetaobjectDefinition/9",
        type="node",
        fields=[
            ObjectFieldDefinition(key="label"),
            ObjectFieldDefinition(
                key="child",
                type="metaobject_reference",
                nested_definition_id="gid://shopify/MetaobjectDefinition/9",
            ),
        ],
    )
    catalog = catalog_of(definitions=[node])
    value = {"label": "a", "child": {"label": "b", "child": {"label": "c"}}}

    with patch("metaconfig.pipeline.resolver.settings") as mock_settings:
        mock_settings.MAX_RESOLUTION_DEPTH = 1
        with pytest.raises(ResolutionDepthError):
            await resolve_reference(catalog, node.id, value)


@pytest.mark.asyncio
async def test_prepare_field_specs_strict_and_lenient():
    catalog = catalog_of(definitions=[PROVIDER, WARRANTY_DOC])
    fields = specs(
        WARRANTY,
        {"namespace": "custom", "key": "terms", "value": {"regions": ["EU"]},
         "value_type": "metaobject_reference", "definition_id": WARRANTY_DOC.id},
    )

    with pytest.raises(ResolutionError):
        await prepare_field_specs(catalog, fields, strict=True)

    prepared = await prepare_field_specs(catalog, fields)
    assert [f.qualified_key for f in prepared] == ["custom.warranty"]


@pytest.mark.asyncio
async def test_prepare_field_specs_resolves_lists_and_records_object_id():
    catalog = catalog_of(definitions=[PROVIDER, WARRANTY_DOC])
    fields = specs(
        {"namespace": "custom", "key": "terms", "value": {"years": 2},
         "value_type": "metaobject_reference", "definition_id": WARRANTY_DOC.id},
        {"namespace": "custom", "key": "providers",
         "value": [{"name": "A"}, "gid://shopify/Metaobject/5"],
         "value_type": "list.metaobject_reference", "definition_id": PROVIDER.id},
    )

    single, many = await prepare_field_specs(catalog, fields, strict=True)

    assert single.value.startswith("gid://shopify/Metaobject/")
    assert single.object_id == single.value
    assert len(many.value) == 2
    assert many.value[1] == "gid://shopify/Metaobject/5"
    assert to_metafield_input(many) is not None
