"""FastAPI application setup for the Smart Assist front end."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from uuid import uuid4

import httpx
from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from .chatbot import ChatbotClient, ChatbotError, JsonFileKeyValueStore
from .config import Settings
from .documents import DocumentCatalog, filter_documents, format_file_size, paginate
from .fallbacks import compose_fallback_reply
from .formatter import format_bot_response
from .observability import MetricsRecorder
from .proxy import BackendProxy, ProxyError, UploadFile as ProxyUpload
from .validation import SearchDocumentsQuery, UploadDocumentForm, validation_messages

_TEMPLATES_DIR = Path(__file__).resolve().parents[2] / "templates"
SESSION_COOKIE = "smartassist_session"
SESSION_MAX_AGE = 365 * 24 * 60 * 60

logger = logging.getLogger(__name__)


_LOGGING_CONFIGURED = False


def _ensure_logging() -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    app_logger = logging.getLogger("smartassist")
    uvicorn_logger = logging.getLogger("uvicorn.error")

    handlers = list(uvicorn_logger.handlers)
    if handlers:
        app_logger.handlers = []
        for handler in handlers:
            app_logger.addHandler(handler)
    else:
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        app_logger.addHandler(handler)

    if app_logger.level == logging.NOTSET or app_logger.level > logging.INFO:
        app_logger.setLevel(logging.INFO)
    app_logger.propagate = False
    _LOGGING_CONFIGURED = True


class ApplicationState:
    """Container for runtime dependencies used by the FastAPI app."""

    def __init__(
        self,
        *,
        settings: Settings,
        chatbot_client: ChatbotClient,
        proxy: BackendProxy,
        catalog: DocumentCatalog,
        metrics: MetricsRecorder | None,
    ) -> None:
        self.settings = settings
        self.chatbot_client = chatbot_client
        self.proxy = proxy
        self.catalog = catalog
        self.metrics = metrics


def _search_params(q: str | None, type: str | None, page: int | None, page_size: int | None) -> tuple[SearchDocumentsQuery, list[str]]:
    raw: dict[str, Any] = {"query": q or None, "type": type or "all"}
    if page is not None:
        raw["page"] = page
    if page_size is not None:
        raw["page_size"] = page_size
    try:
        return SearchDocumentsQuery(**raw), []
    except ValidationError as exc:
        return SearchDocumentsQuery(), validation_messages(exc)


def create_app(
    *,
    settings: Settings | None = None,
    chatbot_client: ChatbotClient | None = None,
    proxy: BackendProxy | None = None,
    catalog: DocumentCatalog | None = None,
    metrics: MetricsRecorder | None = None,
    http_client: httpx.Client | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    _ensure_logging()

    settings = settings or Settings.from_env()
    metrics = metrics or settings.build_metrics_recorder()
    http_client = http_client or httpx.Client()
    chatbot_client = chatbot_client or ChatbotClient(
        settings,
        store=JsonFileKeyValueStore(settings.user_store_path()),
        http_client=http_client,
    )
    proxy = proxy or BackendProxy(settings, http_client=http_client, metrics=metrics)
    catalog = catalog or DocumentCatalog(settings.catalog_path())
    logger.info(
        "app.start chatbot_url=%s upload_url=%s data_dir=%s",
        settings.chatbot_api_url,
        settings.upload_backend_url,
        settings.data_dir,
    )

    app = FastAPI(title="Smart Assist")
    app.state.services = ApplicationState(
        settings=settings,
        chatbot_client=chatbot_client,
        proxy=proxy,
        catalog=catalog,
        metrics=metrics,
    )

    templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))
    templates.env.globals["settings"] = settings
    templates.env.filters["filesize"] = format_file_size

    @app.on_event("shutdown")
    async def _close_http_client() -> None:
        http_client.close()

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - last resort
        logger.exception("app.request.failed path=%s error=%s", request.url.path, exc)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    def get_state(request: Request) -> ApplicationState:
        return request.app.state.services

    def get_settings_dependency(request: Request) -> Settings:
        return get_state(request).settings

    def get_chatbot_client(request: Request) -> ChatbotClient:
        return get_state(request).chatbot_client

    def get_proxy(request: Request) -> BackendProxy:
        return get_state(request).proxy

    def get_catalog(request: Request) -> DocumentCatalog:
        return get_state(request).catalog

    def get_metrics(request: Request) -> MetricsRecorder | None:
        return get_state(request).metrics

    def _render_admin(request: Request, *, errors: list[str] | None = None, form: dict | None = None, status_code: int = 200) -> HTMLResponse:
        context = {
            "page": "admin",
            "documents": get_catalog(request).list_documents(),
            "errors": errors or [],
            "form": form or {},
            "uploaded": request.query_params.get("uploaded"),
        }
        return templates.TemplateResponse(request, "admin.html", context, status_code=status_code)

    @app.get("/", response_class=HTMLResponse)
    async def chat_page(request: Request) -> HTMLResponse:
        return templates.TemplateResponse(request, "chat.html", {"page": "chat"})

    @app.get("/documents", response_class=HTMLResponse)
    async def documents_page(
        request: Request,
        q: str | None = Query(None),
        type: str | None = Query(None),
        page: int | None = Query(None),
        catalog: DocumentCatalog = Depends(get_catalog),
    ) -> HTMLResponse:
        params, errors = _search_params(q, type, page, None)
        documents = catalog.list_documents()
        matches = filter_documents(documents, params.query, params.type)
        result = paginate(matches, params.page, params.page_size)
        logger.info("documents.page query=%s type=%s matches=%s", params.query, params.type, result.total)
        context = {
            "page": "documents",
            "params": params,
            "errors": errors,
            "result": result,
            "library_total": len(documents),
        }
        return templates.TemplateResponse(request, "documents.html", context, status_code=400 if errors else 200)

    @app.get("/admin", response_class=HTMLResponse)
    async def admin_page(request: Request) -> HTMLResponse:
        return _render_admin(request)

    @app.post("/admin/documents", response_class=HTMLResponse)
    async def admin_upload(
        request: Request,
        document_name: str = Form(""),
        description: str | None = Form(None),
        file: UploadFile | None = File(None),
        proxy: BackendProxy = Depends(get_proxy),
        catalog: DocumentCatalog = Depends(get_catalog),
    ) -> Response:
        form_values = {"document_name": document_name, "description": description or ""}
        content = await file.read() if file is not None else b""
        try:
            form = UploadDocumentForm(
                document_name=document_name,
                description=description,
                file_name=(file.filename if file is not None else "") or "",
                content_type=file.content_type if file is not None else None,
                size=len(content),
            )
        except ValidationError as exc:
            messages = validation_messages(exc)
            logger.warning("admin.upload.invalid errors=%s", messages)
            return _render_admin(request, errors=messages, form=form_values, status_code=400)

        try:
            result = proxy.forward_upload(
                [ProxyUpload(filename=form.file_name, content=content, content_type=form.content_type)],
                [form.description],
            )
        except ProxyError as exc:
            return _render_admin(request, errors=[exc.message], form=form_values, status_code=exc.status_code)
        if result.status_code != 200:
            return _render_admin(request, errors=[result.payload["error"]], form=form_values, status_code=result.status_code)

        document = catalog.add(
            name=form.document_name,
            original_file_name=form.file_name,
            size=form.size,
            description=form.description,
        )
        logger.info("admin.upload.completed id=%s file=%s", document.id, form.file_name)
        url = request.url_for("admin_page").include_query_params(uploaded=document.name)
        return RedirectResponse(url=str(url), status_code=303)

    @app.post("/api/chat", response_class=JSONResponse)
    async def chat(
        request: Request,
        client: ChatbotClient = Depends(get_chatbot_client),
        settings_inst: Settings = Depends(get_settings_dependency),
    ) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        query = str(payload.get("query", "")).strip() if isinstance(payload, dict) else ""
        if not query:
            return JSONResponse({"error": "Query is required."}, status_code=400)

        session = request.cookies.get(SESSION_COOKIE)
        issue_cookie = not session
        if not session:
            session = uuid4().hex
        try:
            reply = client.send_query(query, session=session)
        except ChatbotError as exc:
            logger.warning("chat.fallback error=%s", exc)
            message = compose_fallback_reply(
                str(exc),
                query,
                phone=settings_inst.contact_phone,
                email=settings_inst.contact_email,
            )
            body: dict[str, Any] = {
                "message": message,
                "html": format_bot_response(message),
                "related_documents": [],
                "doc_urls": None,
                "lead_flag": False,
                "error": True,
            }
        else:
            body = {
                "message": reply.response,
                "html": format_bot_response(reply.response),
                "related_documents": [document.to_dict() for document in reply.related_documents],
                "doc_urls": reply.doc_urls,
                "lead_flag": reply.lead_flag,
                "error": False,
            }
        response = JSONResponse(body)
        if issue_cookie:
            response.set_cookie(SESSION_COOKIE, session, max_age=SESSION_MAX_AGE, httponly=True, samesite="lax")
        return response

    @app.get("/api/chat/status", response_class=JSONResponse)
    async def chat_status(client: ChatbotClient = Depends(get_chatbot_client)) -> JSONResponse:
        return JSONResponse({"connected": client.test_connection()})

    @app.post("/api/format", response_class=JSONResponse)
    async def format_text(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        text = payload.get("text", "") if isinstance(payload, dict) else ""
        return JSONResponse({"html": format_bot_response(text)})

    @app.post("/api/chatbot", response_class=JSONResponse)
    async def chatbot_proxy(request: Request, proxy: BackendProxy = Depends(get_proxy)) -> JSONResponse:
        try:
            payload = await request.json()
            result = proxy.forward_chat(payload)
        except ProxyError as exc:
            logger.error("proxy.chatbot.error error=%s", exc.message)
            return JSONResponse({"error": exc.message}, status_code=exc.status_code)
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        return JSONResponse(result.payload, status_code=result.status_code)

    @app.post("/api/lead", response_class=JSONResponse)
    async def lead_proxy(request: Request, proxy: BackendProxy = Depends(get_proxy)) -> JSONResponse:
        try:
            payload = await request.json()
            result = proxy.forward_lead(payload)
        except ProxyError as exc:
            logger.error("proxy.lead.error error=%s", exc.message)
            return JSONResponse({"error": exc.message}, status_code=exc.status_code)
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        return JSONResponse(result.payload, status_code=result.status_code)

    @app.post("/api/upload", response_class=JSONResponse)
    async def upload_proxy(
        files: list[UploadFile] | None = File(None),
        descriptions: list[str] | None = Form(None),
        proxy: BackendProxy = Depends(get_proxy),
    ) -> JSONResponse:
        uploads = [
            ProxyUpload(filename=upload.filename or "document", content=await upload.read(), content_type=upload.content_type)
            for upload in files or []
        ]
        try:
            result = proxy.forward_upload(uploads, descriptions or [])
        except ProxyError as exc:
            logger.error("proxy.upload.error error=%s", exc.message)
            return JSONResponse({"error": exc.message}, status_code=exc.status_code)
        return JSONResponse(result.payload, status_code=result.status_code)

    @app.get("/api/document")
    async def document_proxy(path: str | None = Query(None), proxy: BackendProxy = Depends(get_proxy)) -> Response:
        try:
            document = proxy.fetch_document(path)
        except ProxyError as exc:
            if exc.status_code >= 500:
                logger.error("proxy.document.error path=%s error=%s", path, exc.message)
                return JSONResponse({"error": "Failed to fetch document"}, status_code=exc.status_code)
            return JSONResponse({"error": exc.message}, status_code=exc.status_code)
        return Response(content=document.content, media_type=document.content_type, headers=document.headers)

    @app.get("/api/documents", response_class=JSONResponse)
    async def list_documents_api(
        q: str | None = Query(None),
        type: str | None = Query(None),
        page: int | None = Query(None),
        page_size: int | None = Query(None),
        catalog: DocumentCatalog = Depends(get_catalog),
    ) -> JSONResponse:
        params, errors = _search_params(q, type, page, page_size)
        if errors:
            return JSONResponse({"error": "; ".join(errors)}, status_code=400)
        matches = filter_documents(catalog.list_documents(), params.query, params.type)
        result = paginate(matches, params.page, params.page_size)
        return JSONResponse(
            {
                "data": [document.to_dict() for document in result.items],
                "total": result.total,
                "page": result.page,
                "page_size": result.page_size,
                "total_pages": result.total_pages,
            }
        )

    @app.get("/metrics")
    async def metrics_endpoint(metrics: MetricsRecorder | None = Depends(get_metrics)) -> Response:
        if metrics is None or not metrics.prometheus_enabled:
            return JSONResponse({"error": "Metrics export disabled"}, status_code=404)
        try:
            payload = metrics.render_prometheus()
        except RuntimeError as exc:  # pragma: no cover - guarded by prometheus_enabled
            return JSONResponse({"error": str(exc)}, status_code=500)
        return Response(content=payload, media_type=metrics.prometheus_content_type)

    return app


__all__ = ["ApplicationState", "create_app"]
