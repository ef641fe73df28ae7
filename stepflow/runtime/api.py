"""FastAPI surface for request-triggered steps."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .registry import StepRegistry
from .scheduler import CronScheduler
from .steps import Step

logger = logging.getLogger(__name__)


def _route_for(registry: StepRegistry, step: Step):
    async def endpoint(request: Request) -> JSONResponse:
        body = None
        raw = await request.body()
        if raw:
            try:
                body = json.loads(raw)
            except json.JSONDecodeError as exc:
                return JSONResponse(
                    status_code=400,
                    content={
                        "error": "validation_error",
                        "details": {"formErrors": [f"Invalid JSON body: {exc.msg}"], "fieldErrors": {}},
                    },
                )
        response = await registry.invoke_api(
            step.name,
            body,
            path_params=request.path_params,
            query_params=dict(request.query_params),
            headers=dict(request.headers),
        )
        return JSONResponse(status_code=response.status, content=response.body)

    endpoint.__name__ = step.name
    return endpoint


def create_app(registry: StepRegistry, scheduler: Optional[CronScheduler] = None) -> FastAPI:
    """Create a FastAPI app serving every api step of ``registry``.

    When ``scheduler`` is given it runs for the lifetime of the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await registry.bus.connect()
        await registry.bind()
        task = asyncio.create_task(scheduler.run()) if scheduler else None
        try:
            yield
        finally:
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            await registry.bus.drain()
            await registry.bus.close()

    app = FastAPI(title="stepflow", lifespan=lifespan)
    app.state.registry = registry

    for step in registry.api_steps():
        config = step.config
        app.add_api_route(
            config.path,
            _route_for(registry, step),
            methods=[config.method],
            summary=config.description,
            name=config.name,
            responses={status: {"model": model} for status, model in config.response_schema.items()},
        )

    @app.get("/steps")
    async def list_steps() -> list:
        return registry.describe()

    return app
