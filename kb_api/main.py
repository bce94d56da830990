import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from kb_api.config import get_settings
from kb_api.controllers.ai_assistant import router as ai_assistant_router
from kb_api.controllers.code_executor import router as code_executor_router
from kb_api.controllers.health import router as health_router
from kb_api.errors import register_exception_handlers
from kb_api.lifespan import cleanup_resources, setup_resources
from kb_api.middleware import HTTPLogMiddleware


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources(get_settings())
    try:
        yield
    finally:
        await cleanup_resources(resources)


app = FastAPI(title="Knowledge Base API", version="1.0.0", lifespan=lifespan)
register_exception_handlers(app)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_origin_regex=settings.cors.origins_regex or None,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.debug.request:
    logging.getLogger("kb_api.http").setLevel(logging.DEBUG)
    app.add_middleware(HTTPLogMiddleware)

app.include_router(health_router)
app.include_router(code_executor_router)
app.include_router(ai_assistant_router)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
