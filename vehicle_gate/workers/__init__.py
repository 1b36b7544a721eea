# =======================================================================================
# vehicle_gate/workers/__init__.py - Workers Package
# =======================================================================================
from .antenna_worker import AntennaWorker, SessionState, build_antenna_worker

__all__ = ["AntennaWorker", "SessionState", "build_antenna_worker"]
