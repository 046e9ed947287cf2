"""JSON API over the pipeline, the conflict resolver and the stores."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from codegate.config import CONFIG_TYPES, SettingsError, parse_config_blob
from codegate.dependencies import ServiceContainer, container_dependency
from codegate.logger import get_logger, log_with_context
from codegate.models.conflict import ResolutionStrategy
from codegate.services.orchestrator import PipelineOutcome

router = APIRouter()

logger = get_logger()

SECRET_FIELDS = ("token", "api_key", "api_token", "webhook_secret")
MASK = "********"


class ResolveRequest(BaseModel):
    filename: str
    strategy: ResolutionStrategy
    content: str = ""
    ai_analysis: str | None = None


def _check_config_type(config_type: str) -> None:
    if config_type not in CONFIG_TYPES:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown configuration type '{config_type}'.",
        )


def _mask_secrets(blob: Dict[str, Any]) -> Dict[str, Any]:
    masked = {}
    for key, value in blob.items():
        if key in SECRET_FIELDS and value:
            masked[key] = MASK
        elif isinstance(value, dict):
            masked[key] = _mask_secrets(value)
        else:
            masked[key] = value
    return masked


def _restore_secrets(blob: Dict[str, Any], stored: Dict[str, Any] | None) -> Dict[str, Any]:
    """Put stored secrets back where a client echoed the mask from a previous read."""

    stored = stored or {}
    restored = {}
    for key, value in blob.items():
        if key in SECRET_FIELDS and value == MASK:
            restored[key] = stored.get(key)
        elif isinstance(value, dict):
            nested = stored.get(key)
            restored[key] = _restore_secrets(value, nested if isinstance(nested, dict) else None)
        else:
            restored[key] = value
    return restored


def _outcome_payload(outcome: PipelineOutcome) -> Dict[str, Any]:
    payload = asdict(outcome)
    payload["transitions"] = [state.value for state in outcome.transitions]
    return payload


@router.get("/pulls", summary="List recent pull requests")
async def list_pulls(container: ServiceContainer = Depends(container_dependency)) -> List[Dict[str, Any]]:
    repository = await container.repository()
    return [asdict(pr) for pr in await repository.list_pull_requests()]


@router.post("/pulls/{pr_number}/select", summary="Make a pull request the active selection")
async def select_pull(pr_number: int, container: ServiceContainer = Depends(container_dependency)) -> Dict[str, Any]:
    container.orchestrator.select(pr_number)
    return {"active_pr": container.orchestrator.active_pr}


@router.post("/pulls/{pr_number}/pipeline", summary="Run the quality-gate pipeline")
async def run_pipeline(
    pr_number: int,
    select: bool = Query(True, description="Select the pull request before running"),
    container: ServiceContainer = Depends(container_dependency),
) -> Dict[str, Any]:
    await container.repository()
    if select:
        container.orchestrator.select(pr_number)
    outcome = await container.orchestrator.run(pr_number)
    return _outcome_payload(outcome)


@router.get("/pulls/{pr_number}/history", summary="Recent auto-merge decisions")
async def pull_history(pr_number: int, container: ServiceContainer = Depends(container_dependency)) -> List[Dict[str, Any]]:
    return [record.as_dict() for record in await container.orchestrator.history(pr_number)]


@router.get("/pulls/{pr_number}/mergeability", summary="Merge readiness of a pull request")
async def pull_mergeability(pr_number: int, container: ServiceContainer = Depends(container_dependency)) -> Dict[str, Any]:
    repository = await container.repository()
    return asdict(await repository.get_mergeability(pr_number))


@router.post("/pulls/{pr_number}/conflicts", summary="Check a pull request for merge conflicts")
async def check_conflicts(
    pr_number: int,
    analyze: bool = Query(False, description="Ask the AI provider to analyze each conflicting file"),
    container: ServiceContainer = Depends(container_dependency),
) -> Dict[str, Any]:
    engine = await container.ai_engine() if analyze else None
    try:
        resolver = await container.resolver(engine)
        result = await resolver.check_conflicts(pr_number)
        if not result.ok:
            return {"ok": False, "error_kind": result.error_kind, "message": result.user_message()}

        check = result.value
        analyses = []
        if engine is not None:
            for file in check.files:
                analysis = await resolver.analyze_with_ai(file)
                if analysis is not None:
                    analyses.append(asdict(analysis))
        pending = await resolver.pending_files(pr_number, check.files)
    finally:
        if engine is not None:
            await engine.aclose()

    return {
        "ok": True,
        "has_conflicts": check.has_conflicts,
        "mergeability": asdict(check.mergeability),
        "files": [asdict(file) for file in check.files],
        "pending": [file.filename for file in pending],
        "analyses": analyses,
    }


@router.post("/pulls/{pr_number}/conflicts/resolve", summary="Record a resolution for one conflicting file")
async def resolve_conflict(
    pr_number: int,
    request: ResolveRequest,
    container: ServiceContainer = Depends(container_dependency),
) -> Dict[str, Any]:
    resolver = await container.resolver()
    file = await resolver.conflict_file(pr_number, request.filename)
    result = await resolver.resolve(
        pr_number, file, request.strategy, request.content, ai_analysis=request.ai_analysis
    )
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.user_message())
    return {"message": result.message, "resolution": asdict(result.value)}


@router.get("/config/{config_type}", summary="Read a configuration blob")
async def read_config(config_type: str, container: ServiceContainer = Depends(container_dependency)) -> Dict[str, Any]:
    _check_config_type(config_type)
    blob = await container.stores.config.get(config_type)
    if blob is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No '{config_type}' configuration saved.")
    return _mask_secrets(blob)


@router.put("/config/{config_type}", summary="Save a configuration blob")
async def save_config(
    config_type: str,
    blob: Dict[str, Any],
    container: ServiceContainer = Depends(container_dependency),
) -> Dict[str, Any]:
    _check_config_type(config_type)
    blob = _restore_secrets(blob, await container.stores.config.get(config_type))
    try:
        model = parse_config_blob(config_type, blob)
    except SettingsError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    await container.stores.config.save(config_type, model.model_dump())
    log_with_context(logger, config_type=config_type).info("Configuration saved")
    if config_type == "github":
        await container.refresh_repository()
    return _mask_secrets(model.model_dump())
