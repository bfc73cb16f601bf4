from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from pwa_bridge.config import missing_settings, settings
from pwa_bridge.dependencies import Bridge, get_bridge
from pwa_bridge.logging_config import get_logger, setup_logging
from pwa_bridge.routers import client, live, panel, telegram_webhook

setup_logging(settings.log_level)
logger = get_logger("main")


def check_configuration() -> None:
    missing = missing_settings(settings)
    if missing:
        logger.error("Missing ENV", extra={"context": {"missing": missing}})
    else:
        logger.info("ENV OK")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    check_configuration()
    yield


app = FastAPI(
    lifespan=lifespan,
    title="PWA Bridge",
    description="Relays the PWA chat widget to staff Telegram forum topics",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(telegram_webhook.router)
app.include_router(client.router)
app.include_router(panel.router)
app.include_router(live.router)


@app.get("/", response_class=PlainTextResponse)
async def index():
    return "PWA Bridge running 🚀"


@app.get("/health")
async def health(bridge: Bridge = Depends(get_bridge)):
    return {"status": "ok", "config_ok": not missing_settings(bridge.settings)}
