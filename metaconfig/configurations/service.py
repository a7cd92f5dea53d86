"""Configuration administration: CRUD, preview and apply."""
import structlog

from ..catalog.base import CatalogSource
from ..catalog.registry import CatalogRegistry, catalogs
from ..config import get_settings
from ..errors import ConfigurationNotFoundError, ValidationError
from ..pipeline.apply import apply_to_vendor, bulk_apply
from ..pipeline.matcher import find_matching, find_matching_for_saved
from ..pipeline.resolver import prepare_field_specs
from ..rules.inference import infer_name, infer_type
from ..rules.models import Rule, RuleInput
from ..rules.tree import (
    build_tree,
    check_rule_structure,
    normalize_sibling_operators,
    validate_rule_set,
)
from .models import (
    ApplyResult,
    Configuration,
    ConfigurationCreate,
    ConfigurationUpdate,
    ConfigurationWithRules,
    FieldSpec,
    PreviewResult,
    PriorityUpdate,
)
from .persistence import ConfigurationStore, configuration_store

log = structlog.get_logger()
settings = get_settings()

COPY_SUFFIX = " (Copy)"


def _as_inputs(rules: list[Rule]) -> list[RuleInput]:
    """Stored rules back to authoring form, keyed by their stored ids."""
    return [
        RuleInput(
            ref=str(rule.id),
            parent_ref=str(rule.parent_id) if rule.parent_id is not None else None,
            kind=rule.kind,
            match_value=rule.match_value,
            match_ref=rule.match_ref,
            operator=rule.operator,
            level=rule.level,
            position=rule.position,
        )
        for rule in rules
    ]


def _preview(items: list) -> PreviewResult:
    ordered = sorted(items, key=lambda item: item.title.lower())
    return PreviewResult(count=len(items), items=ordered[: settings.PREVIEW_LIMIT])


class ConfigurationService:
    """
    Admin operations on a tenant's configurations.

    Every operation is scoped to the tenant passed in; ids owned by another
    tenant are reported as not found.
    """

    def __init__(
        self,
        store: ConfigurationStore | None = None,
        catalog_registry: CatalogRegistry | None = None,
    ):
        self.store = store or configuration_store
        self.catalogs = catalog_registry or catalogs

    def catalog(self, tenant: str) -> CatalogSource:
        return self.catalogs.get(tenant)

    async def _get_owned(self, tenant: str, configuration_id: int) -> Configuration:
        configuration = await self.store.get(configuration_id)
        if configuration is None or configuration.tenant != tenant:
            raise ConfigurationNotFoundError(configuration_id)
        return configuration

    async def _prepare_rules(self, rules: list[RuleInput]) -> list[RuleInput]:
        validate_rule_set(rules)
        return normalize_sibling_operators(rules)

    async def list_configurations(self, tenant: str) -> list[ConfigurationWithRules]:
        """All configurations of a tenant, highest priority first, with rule counts."""
        configurations = await self.store.list_by_tenant(tenant)
        listed = []
        for configuration in configurations:
            rule_count = await self.store.count_rules(configuration.id)
            listed.append(
                ConfigurationWithRules(**configuration.model_dump(), rule_count=rule_count)
            )
        return listed

    async def get_configuration(self, tenant: str, configuration_id: int) -> ConfigurationWithRules:
        configuration = await self._get_owned(tenant, configuration_id)
        rules = await self.store.list_rules(configuration_id)
        return ConfigurationWithRules(
            **configuration.model_dump(), rules=rules, rule_count=len(rules)
        )

    async def create_configuration(
        self, tenant: str, data: ConfigurationCreate
    ) -> ConfigurationWithRules:
        """
        Validate, resolve and store a new configuration with its rules.

        Structured-object field maps are resolved before anything is stored,
        so a resolution failure leaves no partial configuration behind.

        Raises:
            ValidationError: no field specs, or an invalid rule set
            ExternalCallError: a structured object could not be resolved
        """
        if not data.metadata_fields:
            raise ValidationError("At least one metadata field is required")

        rules = await self._prepare_rules(data.rules)
        fields = await prepare_field_specs(self.catalog(tenant), data.metadata_fields, strict=True)

        configuration = await self.store.create(
            tenant=tenant,
            name=data.name or infer_name(rules),
            type=infer_type(rules),
            metadata_fields=fields,
            priority=data.priority,
        )
        await self.store.replace_rules(configuration.id, rules)
        log.info(
            "configuration.created",
            configuration_id=configuration.id,
            tenant=tenant,
            type=configuration.type,
            rules=len(rules),
        )
        return await self.get_configuration(tenant, configuration.id)

    async def update_configuration(
        self, tenant: str, configuration_id: int, data: ConfigurationUpdate
    ) -> ConfigurationWithRules:
        """
        Replace a configuration's fields, rules and storefront settings.

        The rule set is replaced wholesale and the type re-derived from it.
        """
        await self._get_owned(tenant, configuration_id)
        if not data.metadata_fields:
            raise ValidationError("At least one metadata field is required")

        rules = await self._prepare_rules(data.rules)
        fields = await prepare_field_specs(self.catalog(tenant), data.metadata_fields, strict=True)

        await self.store.update(
            configuration_id,
            name=data.name or infer_name(rules),
            type=infer_type(rules),
            metadata_fields=fields,
            show_on_storefront=data.show_on_storefront,
            storefront_position=data.storefront_position,
        )
        await self.store.replace_rules(configuration_id, rules)
        log.info("configuration.updated", configuration_id=configuration_id, rules=len(rules))
        return await self.get_configuration(tenant, configuration_id)

    async def delete_configuration(self, tenant: str, configuration_id: int) -> None:
        await self._get_owned(tenant, configuration_id)
        await self.store.delete(configuration_id)
        log.info("configuration.deleted", configuration_id=configuration_id, tenant=tenant)

    async def duplicate_configuration(
        self, tenant: str, configuration_id: int
    ) -> ConfigurationWithRules:
        """Copy a configuration and its rule tree under a new id."""
        source = await self._get_owned(tenant, configuration_id)
        rules = _as_inputs(await self.store.list_rules(configuration_id))
        name = f"{source.name or infer_name(rules)}{COPY_SUFFIX}"

        copy = await self.store.create(
            tenant=tenant,
            name=name,
            type=source.type,
            metadata_fields=source.metadata_fields,
            priority=source.priority,
            show_on_storefront=source.show_on_storefront,
            storefront_position=source.storefront_position,
        )
        await self.store.replace_rules(copy.id, rules)
        log.info("configuration.duplicated", source_id=configuration_id, configuration_id=copy.id)
        return await self.get_configuration(tenant, copy.id)

    async def preview_matches(self, tenant: str, rules: list[RuleInput]) -> PreviewResult:
        """
        Match unsaved rules against the catalog without storing anything.

        Drafts are not fully validated, but duplicate refs and parent cycles
        are rejected since they cannot form a tree.
        """
        check_rule_structure(rules)
        tree = build_tree(normalize_sibling_operators(rules))
        return _preview(await find_matching(self.catalog(tenant), tree))

    async def matches_for_saved(self, tenant: str, configuration_id: int) -> PreviewResult:
        await self._get_owned(tenant, configuration_id)
        catalog = self.catalog(tenant)
        return _preview(await find_matching_for_saved(catalog, self.store, configuration_id))

    async def apply_configuration(self, tenant: str, configuration_id: int) -> ApplyResult:
        """Write a saved configuration's fields to every item its rules match."""
        configuration = await self._get_owned(tenant, configuration_id)
        catalog = self.catalog(tenant)

        items = await find_matching_for_saved(catalog, self.store, configuration_id)
        fields = await prepare_field_specs(catalog, configuration.metadata_fields)

        result = await bulk_apply(catalog, items, fields)
        log.info(
            "configuration.applied",
            configuration_id=configuration_id,
            total=result.total,
            successful=result.successful,
            failed=result.failed,
        )
        return result

    async def update_priorities(self, tenant: str, updates: list[PriorityUpdate]) -> int:
        return await self.store.update_priorities(tenant, updates)

    async def apply_to_vendor(
        self,
        tenant: str,
        vendor: str,
        metadata_fields: list[FieldSpec],
        categories: list[str] | None = None,
    ) -> ApplyResult:
        catalog = self.catalog(tenant)
        fields = await prepare_field_specs(catalog, metadata_fields)
        return await apply_to_vendor(catalog, vendor, fields, categories)

    async def list_vendors(self, tenant: str) -> list[str]:
        """Distinct vendor names across the tenant's catalog, sorted."""
        vendors = set()
        async for item in self.catalog(tenant).iter_items(page_size=settings.CATALOG_PAGE_SIZE):
            if item.vendor:
                vendors.add(item.vendor)
        return sorted(vendors)


# Global service instance
configuration_service = ConfigurationService()


def get_configuration_service() -> ConfigurationService:
    return configuration_service
