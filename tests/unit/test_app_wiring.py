"""Smoke tests for the application factory and lifespan wiring."""

from __future__ import annotations

from typing import Iterable, Tuple

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.vidingest.main import create_app
from src.vidingest.pipeline.pipeline_context import ServiceContext
from src.vidingest.trigger.trigger_service import TriggerService


def _collect_route_signatures(app: FastAPI) -> set[Tuple[str, str]]:
    signatures: set[Tuple[str, str]] = set()
    for route in app.routes:
        methods: Iterable[str] = getattr(route, "methods", []) or []
        for method in methods:
            signatures.add((route.path, method.upper()))
    return signatures


def test_create_app_exposes_expected_routes(app_config) -> None:
    app = create_app(app_config)

    assert app.state.config is app_config
    signatures = _collect_route_signatures(app)
    assert ("/api/events/blob-created", "POST") in signatures
    assert ("/healthz", "GET") in signatures


def test_lifespan_attaches_and_closes_service_context(app_config) -> None:
    app = create_app(app_config)

    with TestClient(app):
        context = app.state.service_context
        assert isinstance(context, ServiceContext)
        assert isinstance(app.state.trigger_service, TriggerService)
        assert app.state.trigger_service.context is context
        assert context.config is app_config

    assert context.http is not None and context.http.is_closed
