from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from edumanage.api.routes import auth, classes, health, settings as settings_routes
from edumanage.core.config import get_settings
from edumanage.core.exceptions import AppError
from edumanage.core.middleware import RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from edumanage.db.bootstrap import ensure_runtime_schema
from edumanage.services.landing import landing_table_divergence

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_runtime_schema()
    for role, (post_verification, root_route) in landing_table_divergence().items():
        logger.warning(
            "Landing tables disagree for role %s: sign-in lands on %s, root route lands on %s",
            role.value,
            post_verification.value,
            root_route.value,
        )
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(SecurityHeadersMiddleware, settings=settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(auth.router, prefix=f"{settings.api_prefix}/auth", tags=["auth"])
app.include_router(settings_routes.router, prefix=settings.api_prefix, tags=["settings"])
app.include_router(classes.router, prefix=f"{settings.api_prefix}/classes", tags=["classes"])
