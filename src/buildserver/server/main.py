from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from ..errors import InputError
from ..service import BuildService
from ..settings import Settings
from ..trigger import DeployRequest, to_job

logger = logging.getLogger(__name__)

ACKNOWLEDGEMENT = "build process initiated, check logs for details"

# -------------------- Schemas --------------------

class DeployResponse(BaseModel):
    message: str
    sim_name: str
    version: str
    queue_position: int

class HealthResponse(BaseModel):
    ok: bool
    running: Optional[str]
    queued: int

# -------------------- App --------------------

def create_app(settings: Optional[Settings] = None, service: Optional[BuildService] = None) -> FastAPI:
    settings = settings or (service.settings if service else Settings.from_env())
    service = service or BuildService(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        service.start()
        logger.info("build server ready, verbose mode: %s", settings.verbose)
        try:
            yield
        finally:
            service.stop(timeout=0)

    app = FastAPI(title="Build Server", lifespan=lifespan)
    app.state.service = service

    # -------------------- Endpoints --------------------

    @app.get("/deploy-html-simulation", response_model=DeployResponse)
    async def deploy_html_simulation(request: Request):
        try:
            deploy = DeployRequest.from_query(request.query_params)
            job = to_job(deploy, settings)
        except InputError as e:
            logger.error("rejected deploy request: %s", e.message)
            raise HTTPException(status_code=403 if e.unauthorized else 400, detail=e.message)

        try:
            service.submit(job)
        except RuntimeError as e:
            logger.error("rejected deploy request for %s: %s", job.label, e)
            raise HTTPException(status_code=503, detail=str(e))
        return DeployResponse(
            message=ACKNOWLEDGEMENT,
            sim_name=job.sim_name,
            version=str(job.version),
            queue_position=service.queue.depth,
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        running = service.queue.running
        return HealthResponse(
            ok=True,
            running=running.job.label if running else None,
            queued=service.queue.depth,
        )

    return app
