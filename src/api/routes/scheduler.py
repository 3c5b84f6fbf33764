"""FastAPI route for the intelligent automation scheduler.

``analyze`` recommends schedules for the user's enabled automations;
``execute_pending`` runs the ones that are due now. A cron job is
expected to call ``execute_pending`` every few minutes per user.
"""

import logging

from fastapi import APIRouter, Depends

from src.api.dependencies import get_scheduler
from src.api.middleware.auth import get_current_user_id
from src.api.schemas import Envelope, SchedulerRequest
from src.orchestrator.scheduling.scheduler import IntelligentScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.post("", response_model=Envelope)
async def run_scheduler(
    payload: SchedulerRequest,
    user_id: str = Depends(get_current_user_id),
    scheduler: IntelligentScheduler = Depends(get_scheduler),
) -> Envelope:
    logger.info("Scheduler %s requested by user %s", payload.mode, user_id)
    if payload.mode == "analyze":
        return Envelope(data=await scheduler.analyze(user_id))
    return Envelope(data=await scheduler.execute_pending(user_id))
