"""
Component wiring for the Login Management Engine.

Builds the token cache, partner connector, item store, audit logger,
orchestrator and scheduler from one Settings instance. The API server and
the CLI both start from here.
"""

import logging
from typing import Optional

from ..audit.audit_logger import AuditLogger
from ..auth.token_cache import TokenCache
from ..config import Settings
from ..connectors import BasePartnerConnector, build_connector
from ..store import BaseItemStore, build_store
from ..workflows import Pacer
from .orchestrator import LoginManagementOrchestrator
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class EngineComponents:
    """Container for the wired runtime components."""

    def __init__(
        self,
        settings: Settings,
        token_cache: Optional[TokenCache],
        connector: BasePartnerConnector,
        store: BaseItemStore,
        audit_logger: AuditLogger,
        orchestrator: LoginManagementOrchestrator,
        scheduler: Scheduler,
    ):
        self.settings = settings
        self.token_cache = token_cache
        self.connector = connector
        self.store = store
        self.audit_logger = audit_logger
        self.orchestrator = orchestrator
        self.scheduler = scheduler

    def close(self) -> None:
        """Stop the scheduler and release the store."""
        self.scheduler.stop()
        self.store.close()


def build_components(settings: Settings) -> EngineComponents:
    """
    Wire every runtime component from settings.

    Args:
        settings: Runtime configuration

    Returns:
        EngineComponents ready to process the queue
    """
    token_cache = None
    if not settings.mock_mode:
        token_cache = TokenCache(
            auth_url=settings.auth_url,
            authorization_header=settings.authorization_header,
            scope=settings.token_scope,
            safety_margin_ms=settings.token_safety_margin_seconds * 1000,
            timeout=settings.request_timeout,
        )

    connector = build_connector(
        config={
            "base_url": settings.base_url,
            "partner_uuid": settings.partner_uuid,
            "user_profile_id": settings.user_profile_id,
            "block_history": settings.block_history,
            "request_timeout": settings.request_timeout,
        },
        token_cache=token_cache,
        mock=settings.mock_mode,
    )

    store = build_store(settings)
    audit_logger = AuditLogger(settings.audit_dir)
    orchestrator = LoginManagementOrchestrator(
        store=store,
        connector=connector,
        pacer=Pacer(settings.pacing_delay_seconds),
        audit_logger=audit_logger,
        log_max_length=settings.log_max_length,
    )
    scheduler = Scheduler(orchestrator, settings.schedule_interval_seconds)

    mode = "mock" if settings.mock_mode else "live"
    logger.info(f"Login engine components built ({mode} partner API, {settings.store_backend} store)")

    return EngineComponents(
        settings=settings,
        token_cache=token_cache,
        connector=connector,
        store=store,
        audit_logger=audit_logger,
        orchestrator=orchestrator,
        scheduler=scheduler,
    )
