# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_aegis

"""FastAPI server for the masking service.

This module provides the HTTP interface, exposing endpoints for masking,
unmasking, and health checks.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from wont_let_you_see.main import Masker
from wont_let_you_see.utils.logger import logger


class TextRequest(BaseModel):
    """Request model for masking or unmasking text."""

    session_id: str
    text: str


class TextResponse(BaseModel):
    """Response model containing the transformed text."""

    text: str


class HealthResponse(BaseModel):
    """Response model for service health check."""

    status: str
    patterns: int


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Builds the Masker on startup and drops it on shutdown."""
    app.state.masker = Masker()
    yield
    app.state.masker = None


app = FastAPI(lifespan=lifespan)


@app.post("/mask", response_model=TextResponse)
def mask(request: TextRequest) -> TextResponse:
    """Masks sensitive identifiers in the request text.

    Raises:
        HTTPException: 500 if masking fails, so nothing unmasked is returned.
    """
    try:
        return TextResponse(text=app.state.masker.mask(request.session_id, request.text))
    except Exception as e:
        logger.exception("Mask request failed")
        raise HTTPException(status_code=500, detail="Masking failed") from e


@app.post("/unmask", response_model=TextResponse)
def unmask(request: TextRequest) -> TextResponse:
    """Restores original values for the tokens in the request text.

    Raises:
        HTTPException: 500 if unmasking fails.
    """
    try:
        return TextResponse(text=app.state.masker.unmask(request.session_id, request.text))
    except Exception as e:
        logger.exception("Unmask request failed")
        raise HTTPException(status_code=500, detail="Unmasking failed") from e


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    """Reports whether a Masker is loaded and how many patterns it has.

    Raises:
        HTTPException: 503 if no Masker is initialized or its patterns do not load.
    """
    masker = getattr(app.state, "masker", None)
    if masker is None:
        raise HTTPException(status_code=503, detail="Unhealthy: masker not initialized")
    try:
        count = len(masker.registry.load())
    except Exception as e:
        raise HTTPException(status_code=503, detail="Unhealthy: patterns failed to load") from e
    return HealthResponse(status="protected", patterns=count)
