"""FastAPI dependency providers.

Services are built per request around the request's database session.
The platform adapter and the LLM client hold no per-user state and are
shared process-wide. Tests replace any of these through
``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from src.config import StoreCommandConfig, get_settings
from src.db.connection import get_db
from src.orchestrator.execution.engine import ExecutionEngine
from src.orchestrator.nl_engine.interpreter import CommandInterpreter
from src.orchestrator.nl_engine.llm_client import AnthropicLLMClient, LLMClient
from src.orchestrator.scheduling.recommender import ScheduleRecommender
from src.orchestrator.scheduling.scheduler import IntelligentScheduler
from src.services.command_service import CommandService
from src.services.platform_adapter import PlatformAdapter
from src.services.platform_service import PlatformService
from src.services.undo_service import UndoService


def get_config() -> StoreCommandConfig:
    return get_settings()


@lru_cache(maxsize=1)
def get_platform_adapter() -> PlatformAdapter:
    """Process-wide adapter; opens a short-lived httpx client per request."""
    return PlatformAdapter(timeout=get_settings().execution.request_timeout_seconds)


@lru_cache(maxsize=1)
def get_llm_client() -> LLMClient:
    settings = get_settings().llm
    return AnthropicLLMClient(model=settings.model, max_tokens=settings.max_tokens)


def get_platform_service(db: Session = Depends(get_db)) -> PlatformService:
    return PlatformService(db)


def get_interpreter(
    llm: LLMClient = Depends(get_llm_client),
    config: StoreCommandConfig = Depends(get_config),
) -> CommandInterpreter:
    return CommandInterpreter(llm, config.llm)


def get_execution_engine(
    adapter: PlatformAdapter = Depends(get_platform_adapter),
    platforms: PlatformService = Depends(get_platform_service),
    config: StoreCommandConfig = Depends(get_config),
) -> ExecutionEngine:
    return ExecutionEngine(adapter, platforms, config.execution)


def get_command_service(
    db: Session = Depends(get_db),
    interpreter: CommandInterpreter = Depends(get_interpreter),
    engine: ExecutionEngine = Depends(get_execution_engine),
) -> CommandService:
    return CommandService(db, interpreter, engine)


def get_undo_service(
    db: Session = Depends(get_db),
    adapter: PlatformAdapter = Depends(get_platform_adapter),
    platforms: PlatformService = Depends(get_platform_service),
    config: StoreCommandConfig = Depends(get_config),
) -> UndoService:
    return UndoService(db, adapter, platforms, config.execution)


def get_scheduler(
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client),
    commands: CommandService = Depends(get_command_service),
    config: StoreCommandConfig = Depends(get_config),
) -> IntelligentScheduler:
    recommender = ScheduleRecommender(llm, config.scheduler)
    return IntelligentScheduler(db, recommender, commands, config.scheduler)
