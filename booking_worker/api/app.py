"""FastAPI application factory for the trigger endpoint."""

from typing import Optional

from fastapi import FastAPI

from booking_worker.dispatch.runner import Dispatcher

from .routes import router


def create_app(dispatcher: Dispatcher, cron_secret: Optional[str] = None) -> FastAPI:
    """Create the trigger application.

    Args:
        dispatcher: Dispatcher whose run_cycle() backs ``POST /run``
        cron_secret: Bearer secret required by ``POST /run``; None disables auth

    Example:
        >>> app = create_app(dispatcher, cron_secret=env_config.cron_secret)
        >>> uvicorn.run(app, host="0.0.0.0", port=8000)
    """
    app = FastAPI(
        title="Booking Worker",
        description="Deferred job and notification delivery trigger",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
    )
    app.state.dispatcher = dispatcher
    app.state.cron_secret = cron_secret or None
    app.include_router(router)
    return app
