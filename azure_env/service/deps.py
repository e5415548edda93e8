"""Dependency wiring for the gateway service."""

from __future__ import annotations

from fastapi import Request

from azure_env.plugin import AzureEnvPlugin


def get_plugin(request: Request) -> AzureEnvPlugin:
    """Return the plugin created for this application."""

    return request.app.state.plugin
