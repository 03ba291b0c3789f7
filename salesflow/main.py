"""Application entrypoint for the webhook API."""

from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from salesflow.api.router import get_api_router
from salesflow.core.container import ServiceContainer, bind_container, build_container
from salesflow.core.startup import bootstrap


def create_app(container: ServiceContainer | None = None, run_bootstrap: bool = True) -> FastAPI:
    """Create the FastAPI application around an explicit service container."""
    container = container or build_container()
    cfg = container.config

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if run_bootstrap:
            bootstrap(container)
        yield

    app = FastAPI(title=cfg.APP_NAME, version=cfg.APP_VERSION, lifespan=lifespan)
    app.state.container = container
    # Eager Celery runs the task inside this process.
    bind_container(container)
    app.include_router(get_api_router())

    @app.get("/")
    def root() -> dict:
        return {"service": cfg.APP_NAME, "version": cfg.APP_VERSION, "env": cfg.ENV}

    return app


# Expose ASGI app for `uvicorn salesflow.main:app`.
app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=app.state.container.config.API_HOST, port=app.state.container.config.API_PORT)
