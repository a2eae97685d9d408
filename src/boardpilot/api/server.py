import os
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boardpilot import __version__
from boardpilot.api.errors import register_error_handlers
from boardpilot.api.routes import chat, health, sessions
from boardpilot.api.routes import workflow as workflow_routes
from boardpilot.application.factory import Workflow, WorkflowFactory

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI startup/shutdown events."""
    owns_workflow = app.state.workflow is None
    if owns_workflow:
        profile = os.getenv("BOARDPILOT_PROFILE", "dev")
        app.state.workflow = WorkflowFactory(
            config_dir=os.getenv("BOARDPILOT_CONFIG_DIR", "configs")
        ).create_workflow(profile=profile)

    await logger.ainfo("fastapi.startup", message="BoardPilot API starting...")
    yield
    await logger.ainfo("fastapi.shutdown", message="BoardPilot API shutting down...")

    if owns_workflow:
        await app.state.workflow.aclose()
        app.state.workflow = None


def create_app(workflow: Optional[Workflow] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Without a ``workflow`` one is built on startup from the profile named by
    BOARDPILOT_PROFILE (default ``dev``).
    """
    app = FastAPI(
        title="BoardPilot API",
        description="Work item specification, planning and bulk creation for Azure DevOps Boards",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.workflow = workflow

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(sessions.router, prefix="/api/v1", tags=["sessions"])
    app.include_router(workflow_routes.router, prefix="/api/v1", tags=["workflow"])
    app.include_router(chat.router, prefix="/api/v1", tags=["chat"])
    app.include_router(health.router, tags=["health"])

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8070)
