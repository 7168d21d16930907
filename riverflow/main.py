# riverflow/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from riverflow.core.config import Settings, settings as default_settings
from riverflow.services.runtime import LiveRuntime

from riverflow.api.routes.ingest import router as ingest_router
from riverflow.api.routes.live_ws import router as live_ws_router
from riverflow.api.routes.nodes import router as nodes_router
from riverflow.api.routes.readings import router as readings_router
from riverflow.api.routes.service import router as service_router

log = logging.getLogger("web")


def create_app(cfg: Optional[Settings] = None, runtime: Optional[LiveRuntime] = None) -> FastAPI:
    """
    cfg      - settings with the YAML already loaded (module-level settings otherwise)
    runtime  - prebuilt LiveRuntime (tests pass one with fakes and a fake clock)
    """
    cfg = cfg or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if runtime is None and cfg is default_settings:
            cfg.load_yaml_config()      # `uvicorn riverflow.main:app` without run.py
        rt = runtime or LiveRuntime(cfg)
        app.state.runtime = rt
        await rt.start()
        log.info("riverflow ready")
        try:
            yield
        finally:
            await rt.stop()

    app = FastAPI(title="Riverflow", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        return JSONResponse(
            {"error": f"Invalid {where}: {first.get('msg', 'bad request')}", "errors": jsonable_encoder(errors)},
            status_code=400,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Routers
    # ─────────────────────────────────────────────────────────────────────────
    app.include_router(ingest_router, tags=["live"])
    app.include_router(ingest_router, prefix="/api/esp32", tags=["live"])   # old sensor firmware
    app.include_router(live_ws_router, tags=["live"])
    app.include_router(nodes_router, tags=["nodes"])
    app.include_router(readings_router, tags=["readings"])
    app.include_router(service_router, tags=["service"])

    @app.get("/.well-known/appspecific/com.chrome.devtools.json")
    def _chrome_devtools_probe():
        # keep the DevTools probe out of the logs
        return Response(status_code=204)

    return app


app = create_app()
