"""FastAPI dependencies for the authenticated principal and the orchestrator."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from shipyard.config import get_settings
from shipyard.services.orchestrator import Orchestrator


async def get_current_principal(request: Request) -> str:
    """Get the authenticated principal id supplied by the gateway.

    Raises HTTPException 401 if no principal is present.
    """
    settings = get_settings()
    principal = request.headers.get(settings.principal_header, "").strip()
    if not principal:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return principal


def get_orchestrator(request: Request) -> Orchestrator:
    """Get the orchestrator created at application startup."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return orchestrator


# Type aliases for cleaner route signatures
CurrentPrincipal = Annotated[str, Depends(get_current_principal)]
OrchestratorDep = Annotated[Orchestrator, Depends(get_orchestrator)]
