"""Application bootstrap for the Participant Atlas API.

This module wires the FastAPI application, attaches middleware, and exposes small lifecycle utilities.

Functions:
    lifespan(app: FastAPI): Configure logging, initialise database state, and build the shared clients.
    health_check(): Lightweight readiness probe used by monitoring and local smoke tests.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import api_router
from app.core.config import get_settings
from app.db.session import init_db
from app.services import OpenAIService, SqlVectorIndex

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()
    openai_service = OpenAIService()
    if not openai_service.is_configured:
        logging.getLogger(__name__).warning("OPENAI_API_KEY not set; embedding and insight calls will fail")
    app.state.openai_service = openai_service
    app.state.vector_index = SqlVectorIndex(openai_service)
    yield


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
