import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from map_backend.api.v1.endpoints import router as api_router_v1
from map_backend.core.config import get_env_settings
from map_backend.db.session import db_manager


logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
)

settings = get_env_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await db_manager.dispose()


app = FastAPI(
    title="Estate Map Backend",
    description="Serves the property maps the bot links to.",
    version="1.0.0",
    lifespan=lifespan,
)

# The map page runs on its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_BASE_URL],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(api_router_v1)


@app.get("/", tags=["Root"])
async def read_root():
    return {"message": "Map Backend is running!"}
