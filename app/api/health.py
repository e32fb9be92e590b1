"""Health check endpoint."""
import logging
from fastapi import APIRouter, Depends

from app.core.dependencies import get_orchestrator
from app.services.call_session.orchestrator import ConversationOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    """Liveness plus the number of calls in progress."""
    active = len(orchestrator.registry)
    logger.debug(f"[HEALTH] Health check requested - {active} active call(s)")
    return {"status": "healthy", "active_calls": active}
