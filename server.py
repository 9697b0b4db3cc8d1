"""
API Server for the Agent

Provides HTTP endpoints for:
- Direct messages (POST /message)
- WhatsApp Cloud API webhooks (verification + delivery)
- Slack Events API
- Heartbeat state and health checks

Platform webhooks are acknowledged immediately; the reasoning cycle runs on
the agent's worker pool and the reply goes back through the channel adapter.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from agent import Agent
from channels import ChannelType, InboundMessage
from channels.slack import normalize_slack_event, slack_event_key
from channels.whatsapp import normalize_whatsapp_payload
from config import get_channel_config

logger = logging.getLogger(__name__)

HTTP_CHANNEL_ID = "http"


# =============================================================================
# Request/Response Models
# =============================================================================

class MessageRequest(BaseModel):
    """Direct message over HTTP."""
    content: str
    user_id: str = "http-user"
    thread_id: str = "main"
    async_mode: bool = False  # If true, return immediately and process in background


class MessageResponse(BaseModel):
    """Response to a message."""
    response: str | None = None
    thread_id: str
    queued: bool = False


# =============================================================================
# App Factory
# =============================================================================

def create_app(agent: Agent = None) -> FastAPI:
    """Build the FastAPI app around an agent (a new one from config if omitted)."""
    agent = agent or Agent()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await agent.start()
        logger.debug("Server started")
        yield
        await agent.stop()

    app = FastAPI(
        title="Pincer API",
        description="HTTP interface for the Pincer agent",
        lifespan=lifespan,
    )
    app.state.agent = agent

    whatsapp_config = get_channel_config(agent.config, "whatsapp")
    slack_config = get_channel_config(agent.config, "slack")

    # -------------------------------------------------------------------------
    # Direct messages
    # -------------------------------------------------------------------------

    @app.post("/message", response_model=MessageResponse)
    async def receive_message(req: MessageRequest):
        """
        Receive a message and process it.

        If async_mode=true, queues the message and returns immediately; the
        reply is discarded unless an adapter for the http channel exists.
        """
        try:
            message = InboundMessage(
                channel_id=HTTP_CHANNEL_ID,
                user_id=req.user_id,
                content=req.content,
                source=ChannelType("http"),
                thread_id=req.thread_id,
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

        if req.async_mode:
            agent.submit(message)
            return MessageResponse(thread_id=req.thread_id, queued=True)

        outbound = await agent.process(message)
        return MessageResponse(response=outbound.content, thread_id=req.thread_id)

    # -------------------------------------------------------------------------
    # WhatsApp
    # -------------------------------------------------------------------------

    @app.get("/whatsapp/webhook")
    async def whatsapp_verify(
        mode: str = Query(None, alias="hub.mode"),
        token: str = Query(None, alias="hub.verify_token"),
        challenge: str = Query(None, alias="hub.challenge"),
    ):
        """Meta's subscription handshake: echo the challenge when the token matches."""
        expected = whatsapp_config.get("verify_token")
        if mode == "subscribe" and expected and token == expected:
            logger.info("WhatsApp webhook verified")
            return PlainTextResponse(challenge or "")
        logger.warning("WhatsApp webhook verification failed")
        raise HTTPException(status_code=403, detail="Verification failed")

    @app.post("/whatsapp/webhook")
    async def whatsapp_webhook(request: Request):
        """Receive WhatsApp messages. Always acknowledged with EVENT_RECEIVED."""
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON")

        default_phone_id = whatsapp_config.get("phone_number_id", "")
        try:
            for message_id, message in normalize_whatsapp_payload(payload, default_phone_id):
                agent.submit(message, event_id=message_id)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("Malformed WhatsApp payload: %s", e)

        return PlainTextResponse("EVENT_RECEIVED")

    # -------------------------------------------------------------------------
    # Slack
    # -------------------------------------------------------------------------

    @app.post("/slack/events")
    async def slack_events(request: Request):
        """Slack Events API endpoint (url_verification + event_callback)."""
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON")
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Expected a JSON object")

        if payload.get("type") == "url_verification":
            return {"challenge": payload.get("challenge")}

        if payload.get("type") != "event_callback":
            return {"ok": True}

        workspace_id = payload.get("team_id") or slack_config.get("workspace_id", "")
        event = payload.get("event")
        message = normalize_slack_event(event, workspace_id) if isinstance(event, dict) else None
        if message is None:
            return {"ok": True, "ignored": True}

        queued = agent.submit(message, event_id=slack_event_key(message, payload.get("event_id")))
        return {"ok": True, "duplicate": not queued}

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @app.get("/heartbeat")
    async def heartbeat_state():
        """Last persisted heartbeat state."""
        return agent.heartbeat.store.load()

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "channels": [a.channel_type.kind for a in agent.adapters],
            "tools": [t.name for t in agent.registry.local_tools()],
            "remote_tools": [t.name for t in agent.registry.remote_tools()],
            "scheduled_tasks": agent.scheduler.list_ids(),
        }

    return app
