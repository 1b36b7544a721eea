# =======================================================================================
# vehicle_gate/api/routes/gate.py - Manual Gate Control Endpoints
# =======================================================================================
from typing import Optional
from fastapi import APIRouter, Depends, Path, Response
from ...models.schemas import GateCommandResponse, GateStateResponse
from ...workers.antenna_worker import AntennaWorker
from ..dependencies import get_antenna_worker

router = APIRouter()

NOT_CONNECTED = "Antenna is not connected"

def _command_response(response: Response, success: bool, ok: str, rejected: str) -> GateCommandResponse:
    if not success:
        response.status_code = 409
    return GateCommandResponse(success=success, message=ok if success else rejected)

def _open(response: Response, worker: AntennaWorker, auto_close: Optional[float] = None) -> GateCommandResponse:
    if not worker.connected:
        return _command_response(response, False, "", NOT_CONNECTED)
    success = worker.gate.open_gate(auto_close=auto_close)
    return _command_response(
        response, success, "Gate opened", f"Gate can't be opened, it is {worker.gate_state.value}"
    )

@router.get("/gate/state", response_model=GateStateResponse)
async def gate_state(worker: AntennaWorker = Depends(get_antenna_worker)):
    """Current gate state."""
    return GateStateResponse(state=worker.gate_state.value)

@router.post("/gate/open", response_model=GateCommandResponse)
async def open_gate(response: Response, worker: AntennaWorker = Depends(get_antenna_worker)):
    """Open the gate manually with the configured auto-close delay."""
    return _open(response, worker)

@router.post("/gate/open/{auto_close_time}", response_model=GateCommandResponse)
async def open_gate_for(
    response: Response,
    auto_close_time: int = Path(..., ge=0, description="Auto-close delay in milliseconds"),
    worker: AntennaWorker = Depends(get_antenna_worker),
):
    """Open the gate manually and close it after the given delay."""
    return _open(response, worker, auto_close_time / 1000.0)

@router.post("/gate/close", response_model=GateCommandResponse)
async def close_gate(response: Response, worker: AntennaWorker = Depends(get_antenna_worker)):
    """Close the gate manually."""
    if not worker.connected:
        return _command_response(response, False, "", NOT_CONNECTED)
    success = worker.gate.close_gate()
    return _command_response(
        response, success, "Gate closed", f"Gate can't be closed, it is {worker.gate_state.value}"
    )

@router.post("/gate/restart", response_model=GateCommandResponse)
async def restart_connection(response: Response, worker: AntennaWorker = Depends(get_antenna_worker)):
    """Drop the antenna connection and let the supervisor reconnect."""
    success = worker.restart()
    return _command_response(response, success, "Connection restarting", NOT_CONNECTED)
