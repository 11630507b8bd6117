from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import AppConfig, app_config
from .dropbox import DropboxTokenProvider
from .engine import AutomationEngine
from .errors import AutomationFailure
from .models import ExecutionRecord, NodeDetails, NodeView, RunRequest, RunResult, SourceAsset
from .nodes import register_builtin_nodes
from .nodes.base import BlueprintRegistry, NodeKind
from .nodes.media_fetcher import MediaFetcher
from .nodes.webhook import WebhookInvoker
from .retry import RetryScheduler
from .runner import ExecutionRunner
from .store import SQLiteStore
from .sync import SourceSync


def build_engine(
    http: httpx.AsyncClient,
    config: AppConfig = app_config,
    store: SQLiteStore | None = None,
    retries: RetryScheduler | None = None,
) -> AutomationEngine:
    n8n = config.n8n_settings()
    dropbox = config.dropbox_settings()
    media = config.media_settings()
    retry = config.retry_settings()

    registry = BlueprintRegistry()
    register_builtin_nodes(registry)
    store = store or SQLiteStore(str(config.store_settings()["db_path"]))
    retries = retries or RetryScheduler()

    webhook = WebhookInvoker(
        http,
        str(n8n["base_url"]),
        basic_auth_active=bool(n8n["basic_auth_active"]),
        basic_auth_user=str(n8n["basic_auth_user"]),
        basic_auth_password=str(n8n["basic_auth_password"]),
    )
    tokens = DropboxTokenProvider(
        http,
        app_key=str(dropbox["app_key"]),
        app_secret=str(dropbox["app_secret"]),
        refresh_token=str(dropbox["refresh_token"]),
        token_url=str(dropbox["token_url"]),
        api_url=str(dropbox["api_url"]),
        ttl_seconds=float(dropbox["token_ttl_seconds"]),
    )
    extensions = media["video_extensions"]
    sync = SourceSync(
        tokens,
        store,
        str(media["root"]),
        attempts=int(dropbox["attempts"]),
        attempt_delay=float(dropbox["attempt_delay_seconds"]),
        video_extensions=extensions if isinstance(extensions, list) else [],
    )
    fetcher = MediaFetcher(sync, retries, float(retry["source_unavailable_delay_seconds"]))

    runner = ExecutionRunner(
        registry,
        store,
        {NodeKind.WEBHOOK: webhook, NodeKind.SOURCE_SYNC: fetcher},
    )
    engine = AutomationEngine(registry, store, runner, endpoint_resolver=webhook.resolve_url)
    retries.bind(engine.retry)
    return engine


def create_app(engine: AutomationEngine | None = None, config: AppConfig = app_config) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        http: httpx.AsyncClient | None = None
        retries: RetryScheduler | None = None
        if engine is None:
            config.configure_logging()
            retries = RetryScheduler()
            timeout = float(config.http_settings()["timeout_seconds"])
            http = httpx.AsyncClient(timeout=timeout)
            app.state.engine = build_engine(http, config, retries=retries)
        else:
            app.state.engine = engine
        app.state.engine.validate()
        app.state.engine.ensure_records()
        try:
            yield
        finally:
            if retries is not None:
                retries.cancel_all()
            if http is not None:
                await http.aclose()

    app = FastAPI(title="SmartOps Automations", version="0.3.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://127.0.0.1:5173", "http://localhost:5173"],
        allow_origin_regex=r"^https?://(127\.0\.0\.1|localhost):\d+$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def current_engine(request: Request) -> AutomationEngine:
        return request.app.state.engine

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/automations", response_model=list[NodeView])
    def list_automations(request: Request) -> list[NodeView]:
        return current_engine(request).list_nodes()

    @app.get("/automations/{code}", response_model=NodeDetails)
    def get_automation(code: str, request: Request) -> NodeDetails:
        try:
            return current_engine(request).get_node(code)
        except AutomationFailure as exc:
            raise HTTPException(status_code=exc.http_status, detail=exc.to_detail()) from exc

    @app.post("/automations/run/{code}", response_model=RunResult)
    async def run_automation(code: str, request: Request, run: RunRequest | None = None) -> RunResult:
        run = run or RunRequest()
        try:
            return await current_engine(request).run(code, payload=run.payload, cascade=run.cascade)
        except AutomationFailure as exc:
            raise HTTPException(status_code=exc.http_status, detail=exc.to_detail()) from exc

    @app.post("/automations/pipeline", response_model=RunResult)
    async def run_pipeline(request: Request) -> RunResult:
        try:
            return await current_engine(request).run_pipeline(source="manual:pipeline")
        except AutomationFailure as exc:
            raise HTTPException(status_code=exc.http_status, detail=exc.to_detail()) from exc

    @app.post("/dropbox/sync", response_model=RunResult)
    async def sync_dropbox(request: Request) -> RunResult:
        try:
            return await current_engine(request).run("MDF", cascade=False, source="manual:dropbox")
        except AutomationFailure as exc:
            raise HTTPException(status_code=exc.http_status, detail=exc.to_detail()) from exc

    @app.get("/executions/{execution_id}", response_model=ExecutionRecord)
    def get_execution(execution_id: int, request: Request) -> ExecutionRecord:
        try:
            return current_engine(request).get_execution(execution_id)
        except AutomationFailure as exc:
            raise HTTPException(status_code=exc.http_status, detail=exc.to_detail()) from exc

    @app.get("/assets", response_model=list[SourceAsset])
    def list_assets(request: Request) -> list[SourceAsset]:
        return current_engine(request).store.list_assets()

    return app


app = create_app()
