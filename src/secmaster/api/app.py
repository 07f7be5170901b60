"""FastAPI application for the securities resolution store (read-only)."""

from fastapi import FastAPI

from secmaster.api.routes.entities import router as entities_router
from secmaster.api.routes.health import router as health_router
from secmaster.api.routes.matches import router as matches_router
from secmaster.api.routes.runs import router as runs_router

app = FastAPI(title="Securities Resolution API", version="0.1.0")

app.include_router(health_router)
app.include_router(matches_router)
app.include_router(entities_router)
app.include_router(runs_router)
