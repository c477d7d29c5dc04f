import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from invoice_chat.api import chat, conversations, invoices
from invoice_chat.api.deps import build_chat_service
from invoice_chat.core import database
from invoice_chat.core.config import settings
from invoice_chat.core.errors import AssistantError
from invoice_chat.services.llm import get_llm_provider
from invoice_chat.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )

    database.init_db()
    app.state.chat_service = build_chat_service(database.engine, get_llm_provider())
    app.state.rate_limiter = RateLimiter(settings.rate_limit_per_minute)

    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])
app.include_router(invoices.router, prefix="/api/invoices", tags=["invoices"])


@app.exception_handler(AssistantError)
async def assistant_error_handler(request: Request, exc: AssistantError):
    logger.debug(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/api/health")
async def health():
    return {"status": "ok", "app": settings.app_name}


def run() -> None:
    import uvicorn

    uvicorn.run("invoice_chat.main:app", host=settings.host, port=settings.port)
