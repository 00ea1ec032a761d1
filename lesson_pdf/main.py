#!/usr/bin/env python3
"""Lesson PDF backend (FastAPI).

- Input: lesson title + cards whose HTML holds an S.No. | English | Hindi table
- Layout: single- or two-column print HTML
- PDF: headless Chromium via Playwright, one shared browser instance
"""

import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

# Support both `uvicorn lesson_pdf.main:app` (repo root) and
# `uvicorn main:app` (package directory) execution contexts.
if __package__ is None or __package__ == "":
    sys.path.append(str(Path(__file__).resolve().parent.parent))

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from lesson_pdf import pdf_service
from lesson_pdf.errors import EmptyExtractionError, RenderFailure
from lesson_pdf.layout_renderer import LayoutConfig, build_layout, load_layout_config
from lesson_pdf.models import CardInput
from lesson_pdf.render_manager import RenderResourceManager
from lesson_pdf.settings import Settings, load_settings

SETTINGS = load_settings()

logging.basicConfig(
    level=getattr(logging, SETTINGS.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s - %(message)s",
)

logger = logging.getLogger("lesson_pdf")


def default_layout(settings: Settings) -> LayoutConfig:
    """Layout config file overlaid with the PDF_* env overrides.

    An unknown override value is logged and skipped; the others still apply.
    """
    layout = load_layout_config()
    overrides = {
        "strategy": ("PDF_LAYOUT", settings.pdf_layout),
        "margins": ("PDF_MARGINS", settings.pdf_margins),
        "font_tier": ("PDF_FONT_TIER", settings.pdf_font_tier),
    }
    for field_name, (env_name, value) in overrides.items():
        if value is None:
            continue
        try:
            layout = build_layout(base=layout, **{field_name: value})
        except ValueError as e:
            logger.warning("Ignoring %s=%r: %s", env_name, value, e)
    if settings.pdf_web_fonts is not None:
        layout = replace(layout, web_fonts=settings.pdf_web_fonts)
    return layout


DEFAULT_LAYOUT = default_layout(SETTINGS)


def create_render_manager(settings: Settings) -> RenderResourceManager:
    return RenderResourceManager(
        chromium_args=settings.chromium_args,
        max_concurrency=settings.render_max_concurrency,
        timeout_ms=settings.render_timeout_ms,
        wait_until=settings.render_wait_until,
    )


pdf_service.init_fonts()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.render_manager = create_render_manager(SETTINGS)
    try:
        yield
    finally:
        await app.state.render_manager.close()


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_body_bytes`` with 413.

    The declared Content-Length is checked first; the streamed body is then
    counted as it arrives, so chunked uploads without a length are bounded
    too. The buffered body is replayed to the application.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        raw_length = Headers(scope=scope).get("content-length")
        if raw_length is not None:
            try:
                length = int(raw_length)
            except ValueError:
                await JSONResponse(status_code=400, content={"error": "Invalid Content-Length"})(scope, receive, send)
                return
            if length > self.max_body_bytes:
                await self._too_large(scope, receive, send)
                return

        chunks: list[bytes] = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.max_body_bytes:
                await self._too_large(scope, receive, send)
                return
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        body = b"".join(chunks)
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.app(scope, replay, send)

    async def _too_large(self, scope: Scope, receive: Receive, send: Send) -> None:
        logger.warning("Rejected request body over %d bytes on %s", self.max_body_bytes, scope.get("path"))
        await JSONResponse(status_code=413, content={"error": "Payload too large"})(scope, receive, send)


app = FastAPI(title="Lesson PDF Backend", lifespan=lifespan)

app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=SETTINGS.max_body_bytes)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------------------
class IncomingCard(BaseModel):
    # Unknown fields are accepted and ignored.
    model_config = ConfigDict(extra="allow")
    title: str = Field(..., min_length=1, description="Section title")
    description: str = Field(..., min_length=1, description="HTML fragment holding the glossary table")


class IncomingPayload(BaseModel):
    model_config = ConfigDict(extra="allow")
    title: str = Field(..., min_length=1, description="Lesson title")
    cards: list[IncomingCard] = Field(..., min_length=1, description="Lesson cards")


# ------------------------------------------------------------------------------
# Error handling
# ------------------------------------------------------------------------------
def _invalid_payload(issues: list[Any]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid payload", "issues": jsonable_encoder(issues)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _invalid_payload(list(exc.errors()))


@app.exception_handler(EmptyExtractionError)
async def empty_extraction_handler(request: Request, exc: EmptyExtractionError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RenderFailure)
async def render_failure_handler(request: Request, exc: RenderFailure) -> JSONResponse:
    # Details were logged by the render manager; the client only sees the opaque message.
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


def get_render_manager(request: Request) -> RenderResourceManager:
    return request.app.state.render_manager


# ------------------------------------------------------------------------------
# API endpoints: Health Check
# ------------------------------------------------------------------------------
@app.get("/health")
def health(request: Request):
    manager = getattr(request.app.state, "render_manager", None)
    return {
        "ok": True,
        "renderer": manager.status() if manager is not None else None,
        "default_layout": {
            "strategy": DEFAULT_LAYOUT.strategy.value,
            "margins": DEFAULT_LAYOUT.margin_preset,
            "font_tier": DEFAULT_LAYOUT.font_tier,
            "page_size": DEFAULT_LAYOUT.page_size,
        },
        **pdf_service.font_status(),
    }


# ------------------------------------------------------------------------------
# API endpoints: Lesson PDF
# ------------------------------------------------------------------------------
@app.post("/pdf")
async def generate_pdf(
    payload: IncomingPayload,
    layout: Optional[str] = Query(None, description="single | two"),
    margins: Optional[str] = Query(None, description="compact | standard"),
    font_tier: Optional[str] = Query(None, description="small | normal | large"),
    manager: RenderResourceManager = Depends(get_render_manager),
):
    """Validate -> extract -> lay out -> render -> stream the PDF."""
    try:
        layout_config = build_layout(strategy=layout, margins=margins, font_tier=font_tier, base=DEFAULT_LAYOUT)
    except ValueError as e:
        return _invalid_payload([{"loc": ["query"], "msg": str(e), "type": "value_error"}])

    cards = [CardInput(title=card.title, html=card.description) for card in payload.cards]
    result = await pdf_service.generate_lesson_pdf(payload.title, cards, layout_config, manager)

    return Response(
        content=result.pdf_bytes,
        media_type=result.content_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )
