"""Admin script endpoints."""

import logging

from fastapi import APIRouter, Depends

from ..container import Services, get_services
from ..schemas.script import DispatchResponse, ScriptInfo, ScriptListResponse, ScriptRunRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/scripts", tags=["scripts"])


@router.get("", response_model=ScriptListResponse)
def list_scripts(services: Services = Depends(get_services)):
    """List runnable admin scripts and whether their files exist."""
    registry = services.scripts
    return ScriptListResponse(scripts=[
        ScriptInfo(
            name=spec.name,
            path=spec.script,
            description=spec.description,
            required_env=list(spec.required_env),
            available=registry.is_available(spec),
        )
        for spec in registry.all()
    ])


@router.post("/{name}", response_model=DispatchResponse)
async def run_script(
    name: str,
    request: ScriptRunRequest = ScriptRunRequest(),
    services: Services = Depends(get_services),
):
    """Run an admin script and wait for it to finish.

    Only the script's required env vars are passed through, and only when
    their values are plain identifiers. Rejections (unknown script, missing
    file, bad env, already running, too many running) return 4xx without
    starting anything. A script that ran and failed returns 200 with
    ``success: false``.
    """
    result = await services.dispatcher.run_script(name, env=request.env, dry_run=request.dry_run)
    return DispatchResponse(**result.to_dict())
