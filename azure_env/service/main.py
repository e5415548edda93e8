"""FastAPI application posting JSON requests to the gateway handler."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import Response

from azure_env import __version__
from azure_env.config import Settings, get_settings
from azure_env.env import EnvResolver
from azure_env.errors import GatewayParseError
from azure_env.gateway import GatewayResult, parse_json
from azure_env.messaging import MessageRouter
from azure_env.observability.logging import RequestContextMiddleware, configure_logging
from azure_env.observability.metrics import setup_metrics
from azure_env.plugin import AzureEnvPlugin, install
from azure_env.secrets import SecretStore

from .deps import get_plugin


def _json_response(payload: Any, status_code: int = status.HTTP_200_OK) -> Response:
    return Response(
        content=json.dumps(payload, default=str),
        status_code=status_code,
        media_type="application/json",
    )


def create_app(settings: Settings | None = None, *, store: SecretStore | None = None) -> FastAPI:
    """Build the service; the router and plugin are created eagerly."""

    settings = settings or get_settings()
    configure_logging(settings.service_name)

    router = MessageRouter()
    env = EnvResolver(router)
    plugin = install(router, settings, store=store)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await env.resolve()
        yield
        await plugin.aclose()

    app = FastAPI(title="Azure Env Gateway", version=__version__, lifespan=lifespan)
    app.state.router = router
    app.state.env = env
    app.state.plugin = plugin
    app.add_middleware(RequestContextMiddleware, service_name=settings.service_name)
    setup_metrics(app, service_name=settings.service_name)

    @app.post("/gateway")
    async def gateway(request: Request, plugin: AzureEnvPlugin = Depends(get_plugin)) -> Response:
        data = parse_json(await request.body())
        if isinstance(data, GatewayParseError):
            return _json_response(
                {"error": True, "out": {"name": type(data).__name__, "code": "invalid-json", **data.handler}},
                status.HTTP_400_BAD_REQUEST,
            )
        if not isinstance(data, dict):
            return _json_response(
                {"error": True, "out": {"name": "Error", "code": "invalid-message"}},
                status.HTTP_400_BAD_REQUEST,
            )

        ctx = {
            "headers": dict(request.headers),
            "correlation_id": getattr(request.state, "correlation_id", None),
        }
        result = await plugin.gateway.handler(data, ctx)
        if not isinstance(result, GatewayResult):
            return _json_response(result)

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR if result.error else status.HTTP_200_OK
        return _json_response(result.out, status_code)

    @app.get("/health", status_code=status.HTTP_200_OK)
    async def health() -> dict[str, Any]:
        return {"status": "ok", "keyvault": getattr(plugin.store, "available", False)}

    return app


app = create_app()
