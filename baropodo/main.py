from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from . import config as cfg
from .analysis import MODES, STAGES, PosturographyWorkflow, StageInput
from .config import Settings, bootstrap_api_key, get_default_settings
from .exports import render_report_pdf
from .llm_client import AsyncOpenAICompatClient
from .logging_utils import setup_logging

logger = logging.getLogger(__name__)

MISSING_PDFS = "Missing PDF(s). 3 stages required."
MISSING_KEY = "API key not configured"
TIMED_OUT = "Analysis timed out"

app = FastAPI(title="Posturography Analyzer API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cfg.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class BootstrapRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(default="", alias="apiKey")
    model: str = ""
    language: str = ""
    vector_store_id: str = Field(default="", alias="vectorStoreId")
    rotate: bool = False


class ExportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    augmented_report_text: str = Field(default="", alias="augmentedReportText")
    extraction_report_json: dict[str, Any] | None = Field(default=None, alias="extractionReportJson")
    title: str = "Posturography Report"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=status_code)


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _mock_mode() -> bool:
    return cfg._truthy(os.getenv("BARO_MOCK_LLM"))


def _get_mock_transport():
    """Canned oracle for local demos and smoke runs when BARO_MOCK_LLM is set."""
    if not _mock_mode():
        return None
    try:
        from baropodo.tests.fixtures.mock_llm import create_mock_transport
    except ImportError:
        # Tests not shipped (production install).
        return None
    return create_mock_transport()


def _request_settings(
    api_key: str | None = None,
    model: str | None = None,
    language: str | None = None,
    vector_store_id: str | None = None,
) -> Settings:
    settings = get_default_settings(
        {"apiKey": api_key, "model": model, "language": language, "vectorStoreId": vector_store_id}
    )
    if not settings.api_key and _get_mock_transport() is not None:
        settings = dataclasses.replace(settings, api_key="mock")
    return settings


def _make_llm_client(settings: Settings) -> AsyncOpenAICompatClient:
    transport = getattr(app.state, "llm_transport", None) or _get_mock_transport()
    return AsyncOpenAICompatClient(
        base_url=cfg.OPENAI_BASE_URL,
        api_key=settings.api_key or "",
        timeout_s=cfg.LLM_TIMEOUT_S,
        transport=transport,
        verbose=settings.verbose_openai,
    )


async def _stage_inputs(files: dict[str, UploadFile | None]) -> list[StageInput] | None:
    uploads = [files.get(stage.form_field) for stage in STAGES]
    if any(u is None or not u.filename for u in uploads):
        return None
    contents = await asyncio.gather(*(u.read() for u in uploads))
    if any(not c for c in contents):
        return None
    return [
        StageInput(stage=stage, filename=upload.filename, pdf_bytes=data)
        for stage, upload, data in zip(STAGES, uploads, contents)
    ]


@app.on_event("startup")
async def _startup() -> None:
    level = getattr(logging, os.getenv("BARO_LOG_LEVEL", "INFO").upper(), logging.INFO)
    setup_logging(level=level, use_json=cfg._truthy(os.getenv("BARO_LOG_JSON", "1")))
    app.state.mock_mode = _mock_mode()
    if app.state.mock_mode:
        logger.info("Mock LLM mode enabled")


@app.post("/api/analyze")
async def analyze(
    neutral: UploadFile | None = File(None),
    closed_eyes: UploadFile | None = File(None),
    cotton_rolls: UploadFile | None = File(None),
    mode: str = Form("normal"),
    api_key: str | None = Form(None, alias="apiKey"),
    model: str | None = Form(None),
    language: str | None = Form(None),
    vector_store_id: str | None = Form(None, alias="vectorStoreId"),
):
    stages = await _stage_inputs({"neutral": neutral, "closed_eyes": closed_eyes, "cotton_rolls": cotton_rolls})
    if stages is None:
        return _error(400, MISSING_PDFS)
    if mode not in MODES:
        return _error(400, f"Invalid mode: {mode}")

    settings = _request_settings(api_key, model, language, vector_store_id)
    if not settings.api_key:
        return _error(500, MISSING_KEY)

    llm = _make_llm_client(settings)
    workflow = PosturographyWorkflow(llm=llm, settings=settings)
    try:
        result = await asyncio.wait_for(workflow.run(stages, mode), timeout=cfg.ANALYZE_TIMEOUT_S)
    except asyncio.TimeoutError:
        logger.error("Analysis exceeded %.0fs", cfg.ANALYZE_TIMEOUT_S)
        return _error(500, TIMED_OUT)
    except Exception as e:
        logger.exception("Analysis failed")
        return _error(500, str(e) or "Processing error")
    finally:
        await llm.aclose()

    return {"ok": True, "data": result.to_payload()}


@app.post("/api/analyze-stream")
async def analyze_stream(
    neutral: UploadFile | None = File(None),
    closed_eyes: UploadFile | None = File(None),
    cotton_rolls: UploadFile | None = File(None),
    mode: str = Form("normal"),
    api_key: str | None = Form(None, alias="apiKey"),
    model: str | None = Form(None),
    language: str | None = Form(None),
    vector_store_id: str | None = Form(None, alias="vectorStoreId"),
):
    stages = await _stage_inputs({"neutral": neutral, "closed_eyes": closed_eyes, "cotton_rolls": cotton_rolls})
    settings = _request_settings(api_key, model, language, vector_store_id)

    async def gen():
        yield _sse({"type": "status", "step": "start", "message": "Initializing analysis"})
        if stages is None:
            yield _sse({"type": "error", "message": MISSING_PDFS})
            return
        if mode not in MODES:
            yield _sse({"type": "error", "message": f"Invalid mode: {mode}"})
            return
        if not settings.api_key:
            yield _sse({"type": "error", "message": MISSING_KEY})
            return

        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        llm = _make_llm_client(settings)
        workflow = PosturographyWorkflow(llm=llm, settings=settings)

        async def runner() -> None:
            try:
                result = await asyncio.wait_for(
                    workflow.run(stages, mode, on_event=queue.put), timeout=cfg.ANALYZE_TIMEOUT_S
                )
                await queue.put({"type": "complete", "data": result.to_payload()})
            except asyncio.TimeoutError:
                logger.error("Streaming analysis exceeded %.0fs", cfg.ANALYZE_TIMEOUT_S)
                await queue.put({"type": "error", "message": TIMED_OUT})
            except Exception as e:
                logger.exception("Streaming analysis failed")
                await queue.put({"type": "error", "message": str(e) or "Processing error"})
            finally:
                await llm.aclose()

        task = asyncio.create_task(runner())
        try:
            while True:
                payload = await queue.get()
                yield _sse(payload)
                if payload.get("type") in {"complete", "error"}:
                    break
        finally:
            if not task.done():
                task.cancel()

    return StreamingResponse(
        gen(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.post("/api/bootstrap-key")
async def bootstrap_key(req: BootstrapRequest):
    if not req.api_key.strip():
        return _error(400, "Missing apiKey")
    try:
        result = bootstrap_api_key(
            api_key=req.api_key,
            model=req.model,
            language=req.language,
            vector_store_id=req.vector_store_id,
            rotate=req.rotate,
        )
    except Exception as e:
        logger.exception("Bootstrap failed")
        return _error(500, str(e) or "Unknown error")

    if result.already_configured:
        return {"ok": True, "alreadyConfigured": True}
    logger.info("API key provisioned (…%s)", result.last4)
    return {"ok": True, "saved": True, "last4": result.last4}


@app.get("/api/config")
async def get_config() -> dict[str, Any]:
    return {"ok": True, **get_default_settings().public()}


@app.get("/api/health")
async def health(request: Request, probe: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "status": "healthy",
        "timestamp": _now(),
        "environment": {
            "OPENAI_API_KEY": "Set (hidden)" if os.getenv("OPENAI_API_KEY") else "Not set",
            "MODEL": os.getenv("MODEL") or "Not set",
            "LANGUAGE": os.getenv("LANGUAGE") or "Not set",
            "VECTOR_STORE_ID": os.getenv("VECTOR_STORE_ID") or "Not set",
            "VERBOSE_OPENAI": os.getenv("VERBOSE_OPENAI") or "Not set",
            "OPENAI_BASE_URL": cfg.OPENAI_BASE_URL,
        },
        "headers": {
            "host": request.headers.get("host"),
            "user-agent": request.headers.get("user-agent"),
        },
        "mock_mode": _mock_mode(),
    }
    if not probe:
        return out

    settings = _request_settings()
    if not settings.api_key:
        out["upstream"] = {"reachable": False, "model_count": 0, "error": MISSING_KEY}
        return out
    async with _make_llm_client(settings) as llm:
        try:
            models = await llm.list_models()
            out["upstream"] = {"reachable": True, "model_count": len(models), "error": None}
        except Exception as e:
            out["upstream"] = {"reachable": False, "model_count": 0, "error": str(e)}
    return out


@app.post("/api/health")
async def health_post(request: Request):
    try:
        body = await request.json()
    except Exception:
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
    return {"status": "healthy", "method": "POST", "received": body, "timestamp": _now()}


@app.get("/api/test")
async def api_test() -> dict[str, Any]:
    return {
        "ok": True,
        "message": "API routes are working!",
        "timestamp": _now(),
        "env": {
            "hasOpenAIKey": bool(os.getenv("OPENAI_API_KEY")),
            "model": os.getenv("MODEL") or "not set",
            "language": os.getenv("LANGUAGE") or "not set",
            "vectorStoreId": os.getenv("VECTOR_STORE_ID") or "not set",
        },
    }


@app.post("/api/test")
async def api_test_post() -> dict[str, Any]:
    return {"ok": True, "message": "POST endpoint working!", "timestamp": _now()}


@app.post("/api/export/pdf")
async def export_pdf(req: ExportRequest):
    if not req.augmented_report_text.strip():
        return _error(400, "Missing augmentedReportText")
    pdf = await asyncio.to_thread(
        render_report_pdf, req.augmented_report_text, req.extraction_report_json, title=req.title
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="posturography-report.pdf"'},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
