from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from catalog_admin.api.router import api_router
from catalog_admin.core.config import get_settings
from catalog_admin.core.db import init_db
from catalog_admin.core.logging import setup_logging
from catalog_admin.middleware.error_handlers import add_error_handlers
from catalog_admin.middleware.logging import install_request_logging

settings = get_settings()
setup_logging()


@asynccontextmanager
async def lifespan(_: FastAPI):
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    await init_db()
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
add_error_handlers(app)
install_request_logging(app)
app.include_router(api_router)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
