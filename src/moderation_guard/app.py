"""This module contains the FastAPI application for the Moderation Guard service.

It defines the API endpoints for scanning text, running the pre-submission
analyzer, sanitizing text, and for health checks, version information and
scan statistics. It also handles the application startup logic, including
the initialization of the ModerationGuard instance and its optional
capabilities.
"""
from __future__ import annotations
import os
from typing import Any, Optional
from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel
from prometheus_client import make_asgi_app
from .guard import ModerationGuard, DEFAULT_CONFIG
from .capabilities import load_default_capabilities
from .precheck import PreSubmissionAnalyzer
from .sanitizer import sanitize

PROMETHEUS_ENABLED = os.getenv("PROMETHEUS_ENABLED", "0") == "1"
MAX_TEXT_BYTES = int(os.getenv("MAX_TEXT_BYTES", "100000"))
VERSION = "1.0.0"

app = FastAPI(title="Moderation Guard API")
app.state.max_text_bytes = MAX_TEXT_BYTES

if PROMETHEUS_ENABLED:
    app.mount("/metrics", make_asgi_app())

@app.on_event("startup")
async def startup_event():
    """Initializes the guard and analyzer at application startup."""
    caps = load_default_capabilities()
    app.state.guard = ModerationGuard(DEFAULT_CONFIG.copy(), **caps)
    app.state.analyzer = PreSubmissionAnalyzer(
        profanity_dictionary=caps.get("profanity_dictionary")
    )

def check_size(text: Optional[str]):
    """Rejects texts larger than the configured limit.

    Args:
        text: The submitted text.

    Raises:
        HTTPException: If the text is too large.
    """
    if text and len(text.encode("utf-8")) > app.state.max_text_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Text too large")

@app.get("/health")
def health():
    """Returns the health status of the service."""
    return {"status": "ok"}

@app.get("/version")
def version():
    """Returns the version of the service."""
    return {"version": VERSION}

class ScanRequest(BaseModel):
    """The request model for the /scan endpoint."""
    text: Optional[str] = None
    user_id: Optional[str] = None
    context: Any = None
    verbose: bool = False

class TextRequest(BaseModel):
    """The request model for the /analyze and /sanitize endpoints."""
    text: str

@app.post("/scan")
async def scan_text(req: ScanRequest):
    """Scans text and returns the moderation result."""
    check_size(req.text)
    result = await app.state.guard.scan(req.text, user_id=req.user_id, context=req.context, verbose=req.verbose)
    return result.to_dict()

@app.post("/analyze")
def analyze_text(req: TextRequest):
    """Runs the pre-submission analyzer on a draft."""
    check_size(req.text)
    return app.state.analyzer.analyze(req.text).to_dict()

@app.post("/sanitize")
def sanitize_text(req: TextRequest):
    """Strips markup from text."""
    check_size(req.text)
    return {"text": sanitize(req.text)}

@app.get("/stats")
def stats():
    """Returns a summary of the scans handled by this process."""
    return app.state.guard.metrics.summary()
