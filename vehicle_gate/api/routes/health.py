# =======================================================================================
# vehicle_gate/api/routes/health.py - Health Endpoint
# =======================================================================================
from fastapi import APIRouter, Depends
from ...config import config
from ...models.schemas import HealthResponse
from ...workers.antenna_worker import AntennaWorker
from ..dependencies import get_antenna_worker

router = APIRouter()

@router.get("/healthcheck", response_model=HealthResponse)
async def healthcheck(worker: AntennaWorker = Depends(get_antenna_worker)):
    """API liveness plus antenna link status."""
    connected = worker.connected
    return HealthResponse(
        content=f"API running - instance: {config.INSTANCE_NAME}",
        status="ok" if connected else "degraded",
        connected=connected,
        gateState=worker.gate_state.value,
        reconnectAttempts=worker.reconnect_attempts,
        cache=worker.validator.cache_stats(),
        metrics=worker.metrics.snapshot(),
    )
