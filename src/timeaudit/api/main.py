"""FastAPI application factory."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from timeaudit.api.routes import activities, sync as sync_routes
from timeaudit.scheduler.jobs import SyncLifecycle


def create_app(synchronizer=None, *, start_scheduler: bool = True) -> FastAPI:
    """
    Build and return the FastAPI app.

    Args:
        synchronizer: ActivitySynchronizer to serve. Built from settings on
            startup when omitted.
        start_scheduler: Run the retry scheduler for the app's lifetime.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.synchronizer is None:
            from timeaudit.services import build_synchronizer
            app.state.synchronizer = build_synchronizer()

        lifecycle: Optional[SyncLifecycle] = None
        if start_scheduler:
            lifecycle = SyncLifecycle(app.state.synchronizer)
            lifecycle.start()
        try:
            yield
        finally:
            if lifecycle is not None:
                lifecycle.stop()

    app = FastAPI(
        title="Time Audit API",
        description="Offline-first activity log",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.synchronizer = synchronizer

    app.include_router(activities.router, prefix="/activities", tags=["activities"])
    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
