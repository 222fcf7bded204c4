from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import Base, engine
from .observability import RequestTimingLoggingMiddleware, add_exception_handlers
from .routers import health
from .routers import checkin as checkin_router
from .routers import dashboard as dashboard_router
from .routers import events as events_router
from .routers import exports as exports_router
from .routers import members as members_router
from .routers import pe_templates as pe_templates_router

# Ensure schema is present when the module is imported (helps tests using TestClient without lifespan)
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(title="Elithe Racing API", version="0.1.0", lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestTimingLoggingMiddleware)

    add_exception_handlers(application)

    # Routers
    application.include_router(health.router)
    application.include_router(events_router.router)
    application.include_router(checkin_router.router)
    application.include_router(members_router.router)
    application.include_router(pe_templates_router.router)
    application.include_router(dashboard_router.router)
    application.include_router(exports_router.router)

    return application


app = create_app()
