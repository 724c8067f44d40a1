"""
Tests for the FastAPI application factory and middleware stack.
"""

from __future__ import annotations

import json

from fastapi import FastAPI
from fastapi.testclient import TestClient

from enginebridge.api.app import create_app
from enginebridge.api.middleware.errors import (
    ERROR_CODE_TO_STATUS,
    problem_response,
    status_for_error_code,
)
from enginebridge.api.settings import BridgeAPISettings
from enginebridge.runtime import build_runtime
from tests._support.engines import ScriptedEngine


class TestCreateApp:
    def test_returns_fastapi_instance(self, settings):
        app = create_app(settings=settings)
        assert isinstance(app, FastAPI)
        app.state.runtime.close()

    def test_custom_title(self, tmp_path):
        s = BridgeAPISettings(_env_file=None, data_dir=tmp_path, api_title="Custom")
        app = create_app(settings=s)
        assert app.title == "Custom"
        assert app.state.settings is s
        app.state.runtime.close()

    def test_docs_can_be_disabled(self, tmp_path):
        s = BridgeAPISettings(_env_file=None, data_dir=tmp_path, docs_enabled=False)
        app = create_app(settings=s)
        assert app.docs_url is None
        assert app.openapi_url is None
        app.state.runtime.close()

    def test_banner_lists_routes_without_docs(self, tmp_path):
        s = BridgeAPISettings(_env_file=None, data_dir=tmp_path, docs_enabled=False)
        app = create_app(settings=s)
        with TestClient(app) as client:
            endpoints = client.get("/").json()["data"]["endpoints"]
        assert "GET /jobs/{job_id}/log" in endpoints
        assert "POST /datasets/open" in endpoints

    def test_routes_registered(self, settings):
        app = create_app(settings=settings)
        paths = set(app.openapi()["paths"])
        assert {
            "/",
            "/health",
            "/servers",
            "/programs/submit",
            "/programs/submit/async",
            "/datasets/open",
            "/jobs/{job_id}/log",
            "/jobs/{job_id}/artifacts/{artifact_id}",
        } <= paths
        app.state.runtime.close()

    def test_middleware_present(self, settings):
        app = create_app(settings=settings)
        names = [m.cls.__name__ for m in app.user_middleware]
        assert "PermissiveCORSMiddleware" in names
        assert "TimingMiddleware" in names
        app.state.runtime.close()

    def test_prebuilt_runtime_closed_on_shutdown(self, settings):
        engine = ScriptedEngine()
        runtime = build_runtime(settings, engine=engine)
        app = create_app(settings=settings, runtime=runtime)
        with TestClient(app) as client:
            assert client.get("/health").json()["data"]["engine"] == "scripted"
        assert engine.closed
        assert runtime.worker.cancelled


class TestErrorMapping:
    def test_known_codes(self):
        assert status_for_error_code("VALIDATION_FAILED") == 400
        assert status_for_error_code("NOT_FOUND") == 404
        assert status_for_error_code("EXTRACTION_FAILED") == 502
        assert status_for_error_code("INTERNAL") == 500

    def test_unknown_defaults_to_500(self):
        assert status_for_error_code("SOMETHING_ELSE") == 500

    def test_all_are_error_statuses(self):
        for code, status in ERROR_CODE_TO_STATUS.items():
            assert 400 <= status <= 599, code

    def test_problem_response_shape(self):
        resp = problem_response(status=404, detail="missing", instance="/x")
        body = json.loads(resp.body)
        assert body == {
            "type": "about:blank",
            "title": "Not Found",
            "status": 404,
            "detail": "missing",
            "instance": "/x",
            "errors": [],
        }
        assert resp.headers["access-control-allow-origin"] == "*"


class TestCors:
    def test_preflight_any_path(self, client):
        resp = client.options("/does/not/exist")
        assert resp.status_code == 204
        assert resp.headers["access-control-allow-origin"] == "*"
        assert resp.headers["access-control-allow-methods"] == "GET,POST,OPTIONS"
        assert resp.headers["access-control-allow-headers"] == "Content-Type"

    def test_header_on_success(self, client):
        assert client.get("/health").headers["access-control-allow-origin"] == "*"

    def test_header_on_errors(self, client):
        resp = client.get("/jobs/unknown")
        assert resp.status_code == 404
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_timing_header(self, client):
        assert "x-process-time-ms" in client.get("/health").headers


class TestUnhandled:
    def test_engine_crash_in_metadata_is_500(self, settings):
        from enginebridge.engines.catalog import SampleCatalog

        class BrokenCatalog(SampleCatalog):
            def list_servers(self):
                raise RuntimeError("catalog offline")

        runtime = build_runtime(settings, engine=ScriptedEngine(), metadata=BrokenCatalog())
        app = create_app(settings=settings, runtime=runtime)
        with TestClient(app) as client:
            resp = client.get("/servers")
        assert resp.status_code == 500
        body = resp.json()
        assert body["detail"] == "catalog offline"
        assert body["title"] == "Internal Server Error"
        assert resp.headers["access-control-allow-origin"] == "*"
