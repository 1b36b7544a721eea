# =======================================================================================
# vehicle_gate/api/dependencies.py - FastAPI Dependencies
# =======================================================================================
from fastapi import HTTPException, Request
from ..workers.antenna_worker import AntennaWorker

def get_antenna_worker(request: Request) -> AntennaWorker:
    """Dependency to get the antenna worker attached to the app."""
    worker = getattr(request.app.state, "antenna_worker", None)
    if worker is None:
        raise HTTPException(status_code=503, detail="Antenna worker not initialized")
    return worker
