"""
FastAPI application entry point for the avatar relay.

Responsibilities:
- create the FastAPI app
- construct shared singletons (StreamRegistry, AvatarStreamOrchestrator,
  ChatSessionStore, LLMService, AudioProcessingService, ConversationAgent)
- map relay errors to ``{"error", "details"}`` JSON bodies
- include the route modules under /api/*
- run the idle-stream reaper for the lifetime of the app
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from openai import OpenAI

from configs.logging_config import configure_logging
from configs.settings import Settings, settings as default_settings
from core.api.http_client import RetryConfig, VendorHttpClient
from core.api.llm_client import LLMService
from core.api.speech_client import AudioToTextService
from core.audio.audio_processing import AudioProcessingService
from exceptions.exceptions import RelayError
from runtime.agents.conversation_agent import ConversationAgent
from runtime.agents.stream_orchestrator import AvatarStreamOrchestrator
from runtime.agents.stream_reaper import StreamReaper
from runtime.store.session_store import ChatSessionStore
from runtime.store.stream_store import StreamRegistry
from . import (
    audio_routes,
    avatar_routes,
    avatar_test_routes,
    chat_routes,
    session_routes,
)


logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def _retry_config(settings: Settings) -> RetryConfig:
    return RetryConfig(
        max_attempts=settings.http_retry_attempts,
        backoff_base=settings.http_retry_backoff,
    )


def _error_body(error: str, details: str) -> dict:
    return {"error": error, "details": details}


def create_app(
    settings: Optional[Settings] = None,
    *,
    did_transport: Optional[httpx.BaseTransport] = None,
    asr_transport: Optional[httpx.BaseTransport] = None,
    llm_client: Optional[OpenAI] = None,
    start_reaper: bool = True,
) -> FastAPI:
    """Build the relay application.

    Parameters
    ----------
    settings:
        Configuration; defaults to the process-wide ``settings``.
    did_transport, asr_transport:
        Optional ``httpx`` transports for the vendor clients (tests pass
        ``httpx.MockTransport``).
    llm_client:
        Optional pre-built ``OpenAI`` client.
    start_reaper:
        Whether the lifespan starts the idle-stream reaper thread.
    """
    settings = settings or default_settings

    # -----------------------------------------------------------------------
    # Shared singletons
    # -----------------------------------------------------------------------

    registry = StreamRegistry()

    auth_header = f"Basic {settings.did_api_key}" if settings.did_configured else None
    if auth_header is None:
        logger.warning("[AVATAR] DID_API_KEY is not set; vendor calls will be rejected")
    did_client = VendorHttpClient(
        settings.did_base_url,
        auth_header=auth_header,
        timeout=settings.did_timeout,
        retry=_retry_config(settings),
        transport=did_transport,
    )
    orchestrator = AvatarStreamOrchestrator(
        did_client,
        registry,
        presenter_id=settings.did_presenter_id,
        driver_id=settings.did_driver_id,
        voice_id=settings.did_voice_id,
    )

    session_store = ChatSessionStore(
        max_messages_per_session=settings.max_messages_per_session
    )
    llm_service = LLMService(settings, client=llm_client)

    asr_client: Optional[VendorHttpClient] = None
    speech_service: Optional[AudioToTextService] = None
    if settings.asr_base_url:
        asr_client = VendorHttpClient(
            settings.asr_base_url,
            auth_header=f"Bearer {settings.asr_api_key}" if settings.asr_api_key else None,
            timeout=settings.asr_timeout,
            retry=_retry_config(settings),
            transport=asr_transport,
        )
        speech_service = AudioToTextService(asr_client)

    audio_service = AudioProcessingService(
        settings.audio_storage_dir,
        max_duration_seconds=settings.max_audio_duration_seconds,
    )
    conversation_agent = ConversationAgent(
        session_store=session_store,
        llm_service=llm_service,
        orchestrator=orchestrator,
    )
    reaper = StreamReaper(
        orchestrator,
        interval_seconds=settings.stream_reaper_interval,
        max_idle_seconds=settings.session_timeout_minutes * 60,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_reaper and settings.stream_reaper_interval > 0:
            reaper.start()
        try:
            yield
        finally:
            reaper.stop()
            did_client.close()
            if asr_client is not None:
                asr_client.close()

    # -----------------------------------------------------------------------
    # FastAPI app + route registration
    # -----------------------------------------------------------------------

    app = FastAPI(title="Avatar Relay", version=VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        if exc.status_code >= 500:
            logger.error("[HTTP] %s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.details)
        else:
            logger.info("[HTTP] %s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.details)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.error, exc.details))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.info("[HTTP] %s %s -> 400: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(
            status_code=400,
            content=_error_body("Invalid request", str(exc.errors())),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("[HTTP] Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", str(exc)),
        )

    # Initialize the router modules with our shared objects, then include them.
    avatar_routes.init_routes(orchestrator)
    avatar_test_routes.init_routes(orchestrator)
    session_routes.init_routes(session_store, orchestrator)
    chat_routes.init_routes(conversation_agent, llm_service, session_store)
    audio_routes.init_routes(audio_service, speech_service, settings)

    app.include_router(avatar_routes.router, prefix="/api/avatar", tags=["avatar"])
    app.include_router(avatar_test_routes.router, prefix="/api/avatartest", tags=["avatar-test"])
    app.include_router(session_routes.router, prefix="/api/session", tags=["session"])
    app.include_router(chat_routes.router, prefix="/api/chat", tags=["chat"])
    app.include_router(chat_routes.llm_router, prefix="/api/llm", tags=["llm"])
    app.include_router(audio_routes.router, prefix="/api/audio", tags=["audio"])
    app.include_router(audio_routes.speech_router, prefix="/api/speech", tags=["speech"])

    @app.get("/api/test/health")
    def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
        }

    app.state.settings = settings
    app.state.registry = registry
    app.state.orchestrator = orchestrator
    app.state.session_store = session_store
    app.state.llm_service = llm_service
    app.state.audio_service = audio_service
    app.state.conversation_agent = conversation_agent
    app.state.reaper = reaper

    return app


configure_logging(default_settings.log_level)

app = create_app()
