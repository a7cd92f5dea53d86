"""Catalog item event intake."""
from fastapi import APIRouter, BackgroundTasks, Depends, Header
import orjson
import structlog
from .schemas import EventAccepted
from ..auth.api_key import verify_api_key
from ..auth.webhook import verify_webhook
from ..configurations.service import ConfigurationService, get_configuration_service
from ..errors import ValidationError
from ..event_models import ItemEvent
from ..pipeline.priority import handle_item_event

router = APIRouter(prefix="/v1", tags=["events"])
log = structlog.get_logger()


def _schedule(event: ItemEvent, background: BackgroundTasks, service: ConfigurationService):
    catalog = service.catalog(event.tenant)
    background.add_task(handle_item_event, service.store, catalog, event)
    log.info(
        "event.accepted",
        event_id=event.id,
        event_type=event.event_type,
        tenant=event.tenant,
        item_id=event.item.id,
    )


@router.post("/events", response_model=EventAccepted, status_code=202, dependencies=[Depends(verify_api_key)])
async def publish_event(
    event: ItemEvent,
    background: BackgroundTasks,
    service: ConfigurationService = Depends(get_configuration_service),
):
    """Accept an item event and apply matching configurations in the background."""
    _schedule(event, background, service)
    return EventAccepted(id=event.id, status="accepted")


@router.post("/webhooks/products", response_model=EventAccepted, status_code=202)
async def product_webhook(
    background: BackgroundTasks,
    body: bytes = Depends(verify_webhook),
    topic: str = Header(..., alias="X-Shopify-Topic"),
    shop: str = Header(..., alias="X-Shopify-Shop-Domain"),
    service: ConfigurationService = Depends(get_configuration_service),
):
    """
    Shopify products/create and products/update webhooks.

    Other topics are acknowledged and ignored so the sender does not retry.
    """
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise ValidationError("Webhook body is not valid JSON", {"detail": str(e)})

    try:
        event = ItemEvent.from_shopify_webhook(topic, shop.strip().lower(), payload)
    except ValueError as e:
        log.info("webhook.ignored", topic=topic, shop=shop, reason=str(e))
        return EventAccepted(status="ignored")

    _schedule(event, background, service)
    return EventAccepted(id=event.id, status="accepted")
