from fastapi import APIRouter, Depends

from bikeshare.api.auth import require_admin
import bikeshare.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/metrics")
def get_metrics(_=Depends(require_admin)):
    """Per-action counters and latency percentiles for this process."""
    return metrics.get_metrics_snapshot()
