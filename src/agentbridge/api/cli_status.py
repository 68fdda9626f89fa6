"""Agent CLI status endpoints."""

from fastapi import APIRouter

from agentbridge.core.locator import BinaryLocator
from agentbridge.core.orchestrator import ProcessOrchestrator

from .deps import LocatorDep, OrchestratorDep
from .models import CliStatus

router = APIRouter(prefix="/api/v1", tags=["cli"])


async def build_cli_status(
    locator: BinaryLocator, orchestrator: ProcessOrchestrator
) -> CliStatus:
    path = await locator.resolve()
    status = CliStatus(
        installed=path is not None,
        processing=orchestrator.is_processing,
        state=orchestrator.state,
        last_outcome=orchestrator.last_outcome,
    )
    if path is None:
        status.install_instructions = locator.install_instructions()
    else:
        status.path = str(path)
        status.version = await locator.get_version()
    return status


@router.get("/cli")
async def get_cli_status(
    locator: LocatorDep, orchestrator: OrchestratorDep
) -> CliStatus:
    return await build_cli_status(locator, orchestrator)


@router.post("/cli/refresh")
async def refresh_cli_status(
    locator: LocatorDep, orchestrator: OrchestratorDep
) -> CliStatus:
    """Forget the cached lookup (e.g. right after installing) and probe again."""
    locator.clear_cache()
    return await build_cli_status(locator, orchestrator)
