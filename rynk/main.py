from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import rynk.services.logger  # noqa: F401  configures loguru sinks
from rynk.api.errors import register_error_handlers
from rynk.api.routes import (
    agentic,
    auth,
    chat,
    conversations,
    files,
    finance,
    folders,
    guest,
    humanizer,
    mermaid,
    projects,
    sub_chats,
    tools,
)
from rynk.config import settings
from rynk.services.database import close_pool


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    yield
    # Shutdown
    await close_pool()


app = FastAPI(
    title="Rynk",
    description="AI chat, guest sessions and agentic research",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "X-User-Message-Id",
        "X-Assistant-Message-Id",
        "X-Guest-Credits-Remaining",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
    ],
)

register_error_handlers(app)

# Routes
app.include_router(auth.router)
app.include_router(chat.router)
app.include_router(conversations.router)
app.include_router(folders.router)
app.include_router(projects.router)
app.include_router(sub_chats.router)
app.include_router(guest.router)
app.include_router(agentic.router)
app.include_router(tools.router)
app.include_router(humanizer.router)
app.include_router(mermaid.router)
app.include_router(files.router)
app.include_router(finance.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "rynk"}
