from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import routine.models  # noqa: F401
from routine.api.routes import activity, availability, health, registry, routines, schedules, time_slots
from routine.core.config import get_settings
from routine.core.exceptions import AppError
from routine.core.logging import configure_logging
from routine.core.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware
from routine.db.bootstrap import bootstrap_database
from routine.db.session import engine

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(_: FastAPI):
    bootstrap_database(engine, settings)
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "code": exc.code, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(time_slots.router, prefix=f"{settings.api_prefix}/time-slots", tags=["time-slots"])
app.include_router(registry.router, prefix=settings.api_prefix, tags=["registry"])
app.include_router(routines.router, prefix=settings.api_prefix, tags=["routines"])
app.include_router(availability.router, prefix=settings.api_prefix, tags=["availability"])
app.include_router(schedules.router, prefix=settings.api_prefix, tags=["schedules"])
app.include_router(activity.router, prefix=settings.api_prefix, tags=["activity"])
