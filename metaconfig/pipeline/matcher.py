"""Matching catalog items against a configuration's rule tree."""
import time

import structlog

from ..catalog.base import CatalogSource
from ..catalog.models import CatalogItem
from ..config import get_settings
from ..configurations.persistence import ConfigurationStore
from ..errors import ConfigurationNotFoundError
from ..metrics.collector import MATCH_LATENCY_MS, collector
from ..rules.engine import ConfigurationEntry, evaluate
from ..rules.tree import RuleTree

log = structlog.get_logger()
settings = get_settings()


async def find_matching(catalog: CatalogSource, tree: RuleTree) -> list[CatalogItem]:
    """
    Scan the whole catalog and keep the items the tree matches.

    Items are returned in catalog order.
    """
    start_time = time.time()
    scanned = 0
    matched = []
    async for item in catalog.iter_items(page_size=settings.CATALOG_PAGE_SIZE):
        scanned += 1
        if evaluate(item, tree):
            matched.append(item)

    collector.record_latency(MATCH_LATENCY_MS, start_time)
    log.info("catalog.matched", scanned=scanned, matched=len(matched))
    return matched


async def find_matching_for_saved(
    catalog: CatalogSource, store: ConfigurationStore, configuration_id: int
) -> list[CatalogItem]:
    """
    Load a saved configuration's rules and match the catalog against them.

    Raises:
        ConfigurationNotFoundError: unknown configuration id
    """
    configuration = await store.get(configuration_id)
    if configuration is None:
        raise ConfigurationNotFoundError(configuration_id)

    rules = await store.list_rules(configuration_id)
    entry = ConfigurationEntry.from_rules(configuration_id, configuration.priority, rules)
    return await find_matching(catalog, entry.tree)
