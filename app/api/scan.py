# app/api/scan.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context
from app.core.db import get_db
from app.core.rbac import ActorContext
from app.schemas.element import ElementRead
from app.schemas.scan import ProjectRead, ScanRequest, ScanResponse
from app.services.scan_resolver import ScanResolver

router = APIRouter()


@router.post("/scan", response_model=ScanResponse)
def resolve_scan(
    data: ScanRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    """Identify a scanned QR label. Read-only: nothing is loaded here."""
    result = ScanResolver(db).resolve(data.scan_token, actor)
    return ScanResponse(
        element=ElementRead.model_validate(result.element),
        project=ProjectRead.model_validate(result.project),
    )
