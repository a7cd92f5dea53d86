"""Configuration persistence: store interface and in-memory implementation.

The in-memory store backs development and tests. ``SqlConfigurationStore``
in ``sql.py`` implements the same interface on a relational database.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import structlog

from ..config import get_settings
from ..rules.models import Rule, RuleInput
from .models import Configuration, FieldSpec, PriorityUpdate, StorefrontPosition

log = structlog.get_logger()
settings = get_settings()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _insertion_order(rules: list[RuleInput]) -> list[RuleInput]:
    """
    Parents before children so parent ids exist when a child is inserted.

    Rules whose parent is not part of the set are left out.
    """
    pending = sorted(rules, key=lambda r: (r.level, r.position))
    placed: set[str] = set()
    ordered: list[RuleInput] = []
    progress = True
    while pending and progress:
        progress = False
        remaining = []
        for rule in pending:
            if rule.parent_ref is None or rule.parent_ref in placed:
                ordered.append(rule)
                placed.add(rule.ref)
                progress = True
            else:
                remaining.append(rule)
        pending = remaining

    for rule in pending:
        log.warning("rule.dropped_dangling_parent", ref=rule.ref, parent_ref=rule.parent_ref)
    return ordered


class ConfigurationStore(ABC):
    """Abstract interface for configuration and rule persistence."""

    @abstractmethod
    async def create(
        self,
        tenant: str,
        name: str | None,
        type: str,
        metadata_fields: list[FieldSpec],
        priority: int = 0,
        show_on_storefront: bool = False,
        storefront_position: str = StorefrontPosition.AFTER_PRICE.value,
    ) -> Configuration:
        """Insert a configuration and return it with its assigned id."""

    @abstractmethod
    async def get(self, configuration_id: int) -> Configuration | None:
        """Get a configuration by id, None if unknown."""

    @abstractmethod
    async def update(
        self,
        configuration_id: int,
        name: str | None,
        type: str,
        metadata_fields: list[FieldSpec],
        show_on_storefront: bool,
        storefront_position: str,
    ) -> Configuration | None:
        """Replace a configuration's mutable columns."""

    @abstractmethod
    async def delete(self, configuration_id: int) -> bool:
        """
        Delete a configuration and its rules.

        Returns:
            True if deleted, False if not found
        """

    @abstractmethod
    async def list_by_tenant(self, tenant: str) -> list[Configuration]:
        """All configurations of a tenant, highest priority first."""

    @abstractmethod
    async def list_rules(self, configuration_id: int) -> list[Rule]:
        """Rules of a configuration ordered by level then position."""

    @abstractmethod
    async def replace_rules(self, configuration_id: int, rules: list[RuleInput]) -> list[Rule]:
        """Delete every rule of a configuration and insert ``rules``."""

    @abstractmethod
    async def update_priorities(self, tenant: str, updates: list[PriorityUpdate]) -> int:
        """
        Set priorities of several configurations of one tenant.

        Returns:
            Number of configurations updated
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the store is reachable."""

    async def count_rules(self, configuration_id: int) -> int:
        return len(await self.list_rules(configuration_id))


class InMemoryConfigurationStore(ConfigurationStore):
    """In-memory configuration store."""

    def __init__(self):
        self._configurations: dict[int, Configuration] = {}
        self._rules: dict[int, list[Rule]] = {}
        self._next_configuration_id = 1
        self._next_rule_id = 1
        log.info("configurations.persistence.initialized", backend="memory")

    async def create(
        self,
        tenant: str,
        name: str | None,
        type: str,
        metadata_fields: list[FieldSpec],
        priority: int = 0,
        show_on_storefront: bool = False,
        storefront_position: str = StorefrontPosition.AFTER_PRICE.value,
    ) -> Configuration:
        now = _now()
        configuration = Configuration(
            id=self._next_configuration_id,
            tenant=tenant,
            name=name,
            type=type,
            metadata_fields=metadata_fields,
            priority=priority,
            show_on_storefront=show_on_storefront,
            storefront_position=storefront_position,
            created_at=now,
            updated_at=now,
        )
        self._next_configuration_id += 1
        self._configurations[configuration.id] = configuration
        self._rules[configuration.id] = []
        log.info("configuration.saved", configuration_id=configuration.id, tenant=tenant)
        return configuration.model_copy(deep=True)

    async def get(self, configuration_id: int) -> Configuration | None:
        configuration = self._configurations.get(configuration_id)
        return configuration.model_copy(deep=True) if configuration else None

    async def update(
        self,
        configuration_id: int,
        name: str | None,
        type: str,
        metadata_fields: list[FieldSpec],
        show_on_storefront: bool,
        storefront_position: str,
    ) -> Configuration | None:
        existing = self._configurations.get(configuration_id)
        if existing is None:
            return None
        updated = existing.model_copy(
            update={
                "name": name,
                "type": type,
                "metadata_fields": metadata_fields,
                "show_on_storefront": show_on_storefront,
                "storefront_position": storefront_position,
                "updated_at": _now(),
            }
        )
        self._configurations[configuration_id] = updated
        log.info("configuration.saved", configuration_id=configuration_id)
        return updated.model_copy(deep=True)

    async def delete(self, configuration_id: int) -> bool:
        if configuration_id in self._configurations:
            del self._configurations[configuration_id]
            self._rules.pop(configuration_id, None)
            log.info("configuration.deleted", configuration_id=configuration_id)
            return True
        return False

    async def list_by_tenant(self, tenant: str) -> list[Configuration]:
        configurations = [c for c in self._configurations.values() if c.tenant == tenant]
        configurations.sort(key=lambda c: (-c.priority, c.id))
        return [c.model_copy(deep=True) for c in configurations]

    async def list_rules(self, configuration_id: int) -> list[Rule]:
        rules = sorted(self._rules.get(configuration_id, []), key=lambda r: (r.level, r.position))
        return [r.model_copy() for r in rules]

    async def replace_rules(self, configuration_id: int, rules: list[RuleInput]) -> list[Rule]:
        self._rules[configuration_id] = []
        id_map: dict[str, int] = {}
        created = []
        for rule_input in _insertion_order(rules):
            rule = Rule(
                id=self._next_rule_id,
                configuration_id=configuration_id,
                parent_id=id_map.get(rule_input.parent_ref) if rule_input.parent_ref else None,
                kind=rule_input.kind,
                match_value=rule_input.match_value,
                match_ref=rule_input.match_ref,
                operator=rule_input.operator,
                level=rule_input.level,
                position=rule_input.position,
                created_at=_now(),
            )
            self._next_rule_id += 1
            id_map[rule_input.ref] = rule.id
            created.append(rule)
        self._rules[configuration_id] = created
        log.info("rules.replaced", configuration_id=configuration_id, count=len(created))
        return await self.list_rules(configuration_id)

    async def update_priorities(self, tenant: str, updates: list[PriorityUpdate]) -> int:
        count = 0
        for update in updates:
            existing = self._configurations.get(update.id)
            if existing is None or existing.tenant != tenant:
                continue
            self._configurations[update.id] = existing.model_copy(
                update={"priority": update.priority, "updated_at": _now()}
            )
            count += 1
        log.info("configurations.priorities_updated", tenant=tenant, count=count)
        return count

    async def health_check(self) -> bool:
        """In-memory store is always healthy."""
        return True


def create_default_store() -> ConfigurationStore:
    """
    Create the store selected by STORE_BACKEND.

    Returns:
        ConfigurationStore instance
    """
    if settings.STORE_BACKEND == "sql":
        from .sql import SqlConfigurationStore

        log.info("store.selected", type="sql")
        return SqlConfigurationStore(settings.DATABASE_URL)
    log.info("store.selected", type="memory")
    return InMemoryConfigurationStore()


# Global store instance
configuration_store = create_default_store()
