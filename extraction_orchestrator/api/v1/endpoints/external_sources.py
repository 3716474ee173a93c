from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, Response

from ..schemas import ExternalSourceCreate, ExternalSourceUpdate, ExtractionRunResponse
from .extraction import accepted_response, already_in_progress_response
from ...dependencies import get_orchestrator, get_requesting_user, get_source_repository
from ....core.exceptions import AlreadyInProgressError
from ....models.extraction_job import JobKind
from ....repositories.external_source_repository import ExternalSourceRepository
from ....services.job_orchestrator import JobOrchestrator

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/fetch", response_model=ExtractionRunResponse, status_code=202)
def fetch_all_sources(
    requested_by: str = Depends(get_requesting_user),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Fetch every active source"""
    try:
        job = orchestrator.trigger(JobKind.EXTERNAL_FETCH, requested_by=requested_by)
    except AlreadyInProgressError as e:
        return already_in_progress_response(e)
    return accepted_response("External fetch started for all active sources", job)


@router.post("/{source_id}/fetch", response_model=ExtractionRunResponse, status_code=202)
def fetch_source(
    source_id: int,
    requested_by: str = Depends(get_requesting_user),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    try:
        job = orchestrator.trigger(JobKind.EXTERNAL_FETCH, requested_by=requested_by, source_id=source_id)
    except AlreadyInProgressError as e:
        return already_in_progress_response(e)
    return accepted_response(f"External fetch started for source {source_id}", job)


@router.get("")
def list_sources(repo: ExternalSourceRepository = Depends(get_source_repository)) -> List[Dict[str, Any]]:
    return [source.to_dict() for source in repo.list_all()]


@router.post("", status_code=201)
def create_source(
    request: ExternalSourceCreate,
    repo: ExternalSourceRepository = Depends(get_source_repository),
) -> Dict[str, Any]:
    source = repo.create(**request.model_dump())
    logger.info("external_source_created", source_id=source.id, name=source.name)
    return source.to_dict()


@router.get("/{source_id}")
def get_source(source_id: int, repo: ExternalSourceRepository = Depends(get_source_repository)) -> Dict[str, Any]:
    return repo.require(source_id).to_dict()


@router.put("/{source_id}")
def update_source(
    source_id: int,
    request: ExternalSourceUpdate,
    repo: ExternalSourceRepository = Depends(get_source_repository),
) -> Dict[str, Any]:
    source = repo.update(source_id, **request.model_dump(exclude_unset=True))
    logger.info("external_source_updated", source_id=source_id)
    return source.to_dict()


@router.delete("/{source_id}", status_code=204)
def delete_source(source_id: int, repo: ExternalSourceRepository = Depends(get_source_repository)) -> Response:
    repo.delete(source_id)
    logger.info("external_source_deleted", source_id=source_id)
    return Response(status_code=204)


@router.patch("/{source_id}/toggle")
def toggle_source(source_id: int, repo: ExternalSourceRepository = Depends(get_source_repository)) -> Dict[str, Any]:
    source = repo.toggle(source_id)
    logger.info("external_source_toggled", source_id=source_id, is_active=source.is_active)
    return source.to_dict()
