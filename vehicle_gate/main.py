# =======================================================================================
# vehicle_gate/main.py - FastAPI Application Entry Point
# =======================================================================================
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.routes.cache import router as cache_router
from .api.routes.gate import router as gate_router
from .api.routes.health import router as health_router
from .config import config
from .logger import setup_logging
from .workers.antenna_worker import AntennaWorker, build_antenna_worker

logger = logging.getLogger(__name__)


def create_app(worker: Optional[AntennaWorker] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        antenna_worker = app.state.antenna_worker
        antenna_worker.start()
        logger.info("[%s] Vehicle gate agent started", config.INSTANCE_NAME)
        try:
            yield
        finally:
            await antenna_worker.stop()
            await antenna_worker.validator.authorizer.close()
            logger.info("[%s] Vehicle gate agent stopped", config.INSTANCE_NAME)

    app = FastAPI(
        title="Vehicle Gate Agent API",
        version=__version__,
        description="RFID antenna supervisor and manual gate control",
        debug=config.API_DEBUG,
        docs_url="/swagger",
        openapi_url="/apispec_1.json",
        lifespan=lifespan,
    )
    app.state.antenna_worker = worker or build_antenna_worker(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(gate_router, prefix="/api", tags=["gate"])
    app.include_router(cache_router, prefix="/api", tags=["cache"])

    return app


def run() -> None:
    """Console entry point."""
    setup_logging(config)
    uvicorn.run(create_app(), host=config.API_HOST, port=config.API_PORT, log_config=None)


if __name__ == "__main__":
    run()
