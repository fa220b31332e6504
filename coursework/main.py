import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from coursework.core.config import settings
from coursework.core.errors import WorkflowError, workflow_error_handler
from coursework.core.logging_middleware import LoggingMiddleware
from coursework.db.init_db import init_db
from coursework.routers.assignments import router as assignments_router
from coursework.routers.auth import router as auth_router
from coursework.routers.notifications import router as notifications_router
from coursework.routers.students import router as students_router
from coursework.routers.submissions import router as submissions_router

logging.basicConfig(level=settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Middleware
app.add_middleware(LoggingMiddleware)

app.add_exception_handler(WorkflowError, workflow_error_handler)


# Health check
@app.get("/health")
def health():
    return {"status": "ok"}


# Include routers
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(students_router, prefix="/students", tags=["students"])
app.include_router(notifications_router, prefix="/notifications", tags=["notifications"])
app.include_router(assignments_router, tags=["assignments"])
app.include_router(submissions_router, tags=["submissions"])
