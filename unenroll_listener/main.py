import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import Settings, load_settings
from .src.processor import WebhookProcessor, build_processor


def create_app(settings: Optional[Settings] = None,
               processor: Optional[WebhookProcessor] = None) -> FastAPI:
    """Build the webhook app. Served as an ASGI factory:

        uvicorn --factory unenroll_listener.main:create_app

    Settings and the product map are loaded here, not at import time.
    """
    if settings is None:
        settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    if processor is None:
        processor = build_processor(settings)

    app = FastAPI()
    app.state.processor = processor

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    @app.post("/api/shopify-webhook")
    @app.post("/webhooks/shopify")
    async def shopify_webhook(request: Request):
        # Raw bytes only: the HMAC covers the body exactly as sent.
        raw_body = await request.body()
        result = await run_in_threadpool(app.state.processor.handle, raw_body, request.headers)
        return JSONResponse(status_code=result.status_code, content=result.body)

    return app