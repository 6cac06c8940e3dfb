from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from co2tracker.config import Settings, get_settings
from co2tracker.infrastructure.realtime import (
    ConnectionRegistry,
    RealtimeDispatcher,
    RealtimeEventPublisher,
)
from co2tracker.infrastructure.security import CredentialVerifier
from co2tracker.interfaces.api.routes import register_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close every realtime session when the application shuts down."""

    yield
    await app.state.realtime_dispatcher.close_all()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or get_settings()
    app = FastAPI(lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    verifier = CredentialVerifier(settings)
    dispatcher = RealtimeDispatcher(verifier, ConnectionRegistry())
    publisher = RealtimeEventPublisher(dispatcher)

    app.state.credential_verifier = verifier
    app.state.realtime_dispatcher = dispatcher
    app.state.realtime_publisher = publisher
    # Hooks used by route handlers once a state change has been committed.
    app.state.broadcast_to_user = publisher.broadcast_to_user
    app.state.broadcast_to_all = publisher.broadcast_to_all

    register_routes(app, settings)
    return app


app = create_app()
