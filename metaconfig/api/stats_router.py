"""Pipeline statistics endpoint."""
from fastapi import APIRouter, Depends
from ..auth.api_key import verify_api_key
from ..metrics.collector import collector

router = APIRouter(prefix="/v1", tags=["stats"], dependencies=[Depends(verify_api_key)])


@router.get("/stats")
async def get_stats():
    """
    Get in-process pipeline counters and latency histograms.

    Example response:
    ```json
    {
      "uptime_seconds": 123.45,
      "counters": {
        "items_applied_total": 120,
        "items_failed_total": 2,
        "events_handled_total{event_type=updated}": 40
      },
      "histograms": {
        "apply_latency_ms": {
          "count": 3,
          "sum": 950.0,
          "avg": 316.67,
          "min": 12.0,
          "max": 800.0
        }
      }
    }
    ```
    """
    return collector.get_metrics()
