from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from crm_backend.api.chats import chats_router, limiter
from crm_backend.api.system import system_router
from crm_backend.api.uploads import uploads_router
from crm_backend.exceptions import register_exception_handlers
from crm_backend.middleware.upload_limiter import UploadSizeLimiterMiddleware
from crm_backend.services.attachment_storage import init_attachment_storage
from crm_backend.settings import settings
from crm_backend.stores import init_stores
from crm_backend.websocket.connection_manager import manager
from crm_backend.websocket.router import ws_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_stores(settings.CHAT_DATA_DIR)
    init_attachment_storage(settings.UPLOADS_DIR)
    logger.info("CRM chat backend started")

    yield

    await manager.stop()


app = FastAPI(title="CRM Chat Backend", lifespan=lifespan)
app.state.limiter = limiter

# Register custom exception handlers for structured error responses
register_exception_handlers(app)

# Add upload size limiter middleware (should be before CORS)
app.add_middleware(UploadSizeLimiterMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    chats_router,
    prefix="/chats",
    tags=["chats"],
)

app.include_router(
    system_router,
    tags=["system"],
)

app.include_router(
    uploads_router,
    prefix=settings.UPLOADS_URL_PREFIX,
    tags=["uploads"],
)

app.include_router(ws_router, tags=["websocket"])


@app.get("/", response_class=PlainTextResponse)
def get_status():
    return "CRM chat backend is running"


@app.head("/", status_code=204)
def get_status_head():
    return


def main():
    import uvicorn
    from crm_backend.log import setup_logging

    log_config = setup_logging()

    uvicorn.run(
        "crm_backend.server:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        log_config=log_config,
        reload=settings.DEBUG_MODE != "production",
        workers=1
    )


if __name__ == "__main__":
    main()
