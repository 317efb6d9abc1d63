from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from fastapi import Request
from sqlalchemy.orm import Session

from app.config import Settings
from app.services.agent_timeout_service import AgentTimeoutSupervisor
from app.services.dispatcher import EventDispatcher
from app.services.echo_registry import EchoRegistry
from app.services.locks import UserLockRegistry
from app.services.message_router import MessageRouter
from app.services.outbound_service import BotSender
from app.services.rate_limit import FixedWindowRateLimiter
from app.services.realtime_service import RealtimeHub
from app.services.whatsapp_service import WhatsAppClient


@dataclass
class Runtime:
    client: WhatsAppClient
    echoes: EchoRegistry
    sender: BotSender
    router: MessageRouter
    dispatcher: EventDispatcher
    supervisor: AgentTimeoutSupervisor
    hub: RealtimeHub
    rate_limiter: FixedWindowRateLimiter


def build_runtime(
    settings: Settings,
    session_factory: Callable[[], Session],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Runtime:
    client = WhatsAppClient(
        settings.bridge_url,
        token=settings.bridge_token,
        timeout=settings.bridge_timeout_seconds,
        transport=transport,
    )
    echoes = EchoRegistry(ttl_seconds=settings.echo_ttl_seconds)
    sender = BotSender(client, echoes)
    router = MessageRouter(session_factory, sender, echoes, UserLockRegistry())
    supervisor = AgentTimeoutSupervisor(
        session_factory,
        sender,
        timeout_minutes=settings.agent_timeout_minutes,
        interval_seconds=settings.supervisor_interval_seconds,
    )
    return Runtime(
        client=client,
        echoes=echoes,
        sender=sender,
        router=router,
        dispatcher=EventDispatcher(router),
        supervisor=supervisor,
        hub=RealtimeHub(),
        rate_limiter=FixedWindowRateLimiter(settings.rate_limit_count, settings.rate_limit_window_seconds),
    )


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime
