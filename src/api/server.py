"""FastAPI application for the archiver.

Run: uvicorn src.api.server:app
"""

from __future__ import annotations

from fastapi import FastAPI

from src.api.routes import router

app = FastAPI(
    title="Anond Archiver",
    description="Archives anond.hatelabo.jp permalinks and redirects to past articles from this day.",
    version="1.0.0",
)
app.include_router(router)
