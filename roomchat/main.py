import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from roomchat.core.config import settings
from roomchat.core.database import init_db
from roomchat.api import chat, conversations, inbox, profiles
from roomchat.services.realtime.feed import feed


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )

    init_db()
    settings.storage_dir.mkdir(parents=True, exist_ok=True)

    yield

    open_channels = feed.active_count()
    if open_channels:
        logging.getLogger(__name__).warning(f"Shutting down with {open_channels} open subscriptions")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])
app.include_router(chat.router, prefix="/api/conversations", tags=["chat"])
app.include_router(inbox.router, prefix="/api/inbox", tags=["inbox"])
app.include_router(profiles.router, prefix="/api/profiles", tags=["profiles"])

storage_files = StaticFiles(directory=settings.storage_dir, check_dir=False)
app.mount("/storage", storage_files, name="storage")


@app.get("/api/health")
async def health():
    return {"status": "ok", "app": settings.app_name}
