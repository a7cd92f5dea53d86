"""
Priority resolution for catalog item events.

When an item is created or updated, every configuration of the tenant is
evaluated in descending priority order and every match is applied, in that
order. A lower-priority configuration applied later overwrites fields with
the same ``namespace.key`` written by a higher-priority one.
"""
import structlog

from ..catalog.base import CatalogSource
from ..configurations.persistence import ConfigurationStore
from ..event_models import ConfigurationFailure, EventOutcome, ItemEvent
from ..metrics.collector import (
    CONFIGURATIONS_FAILED_TOTAL,
    CONFIGURATIONS_MATCHED_TOTAL,
    EVENTS_HANDLED_TOTAL,
    collector,
)
from ..metrics.prometheus import get_metrics
from ..rules.engine import ConfigurationEntry, RulesEngine
from .apply import apply_metadata
from .resolver import prepare_field_specs

log = structlog.get_logger()


async def _load_engine(store: ConfigurationStore, tenant: str) -> tuple[RulesEngine, dict]:
    configurations = await store.list_by_tenant(tenant)
    entries = []
    for configuration in configurations:
        rules = await store.list_rules(configuration.id)
        entries.append(ConfigurationEntry.from_rules(configuration.id, configuration.priority, rules))
    return RulesEngine(entries), {c.id: c for c in configurations}


async def handle_item_event(
    store: ConfigurationStore, catalog: CatalogSource, event: ItemEvent
) -> EventOutcome:
    """
    Apply every matching configuration of the tenant to the event's item.

    Never raises: a failing configuration is recorded and the next one is
    still applied; anything else is logged and reported in ``error``.
    """
    outcome = EventOutcome(event_id=event.id, item_id=event.item.id)
    bound = log.bind(event_id=event.id, item_id=event.item.id, tenant=event.tenant)

    try:
        engine, configurations = await _load_engine(store, event.tenant)
        matched = engine.matching(event.item)
        outcome.matched = [entry.configuration_id for entry in matched]
        collector.increment(CONFIGURATIONS_MATCHED_TOTAL, value=len(matched))
        bound.info("event.configurations_matched", matched=outcome.matched)

        for entry in matched:
            configuration = configurations[entry.configuration_id]
            try:
                specs = await prepare_field_specs(catalog, configuration.metadata_fields)
                await apply_metadata(catalog, event.item.id, specs)
                outcome.applied.append(configuration.id)
            except Exception as e:
                message = getattr(e, "message", None) or str(e)
                outcome.failures.append(
                    ConfigurationFailure(configuration_id=configuration.id, message=message)
                )
                collector.increment(CONFIGURATIONS_FAILED_TOTAL)
                bound.warning(
                    "event.configuration_failed",
                    configuration_id=configuration.id,
                    error=message,
                )
    except Exception as e:
        outcome.error = str(e)
        bound.error("event.handler_failed", error=str(e), exc_info=True)

    collector.increment(EVENTS_HANDLED_TOTAL, labels={"event_type": event.event_type})
    metrics = get_metrics()
    if metrics:
        metrics.record_item_event(event.event_type, len(outcome.applied), len(outcome.failures))
    bound.info(
        "event.handled",
        event_type=event.event_type,
        applied=outcome.applied,
        failed=[f.configuration_id for f in outcome.failures],
    )
    return outcome
