"""
Knowledge API - feed the agents' knowledge base

Uploaded files are read as text; the size limit depends on the plan.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form

from facility.db import User
from facility.schemas import IngestTextRequest, IngestResponse, KnowledgeDocumentResponse
from facility.api.auth import get_current_user
from facility.api.deps import get_knowledge_service
from facility.services import KnowledgeService, KnowledgeIngestionError, PlanLimitError
from facility.services.plan_policy import check_upload_size

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/knowledge", tags=["knowledge"])


@router.post("/upload", response_model=IngestResponse)
async def upload(
    file: Optional[UploadFile] = File(None),
    profession: str = Form(""),
    current_user: User = Depends(get_current_user),
    knowledge_service: KnowledgeService = Depends(get_knowledge_service),
):
    """Upload a file and add its text to a profession's knowledge base"""
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file sent.")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file sent.")
    if not profession.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Profession not provided.")

    try:
        check_upload_size(current_user, len(content))
    except PlanLimitError as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))

    try:
        document = await knowledge_service.ingest_file(
            content, file.filename or "upload.txt", profession.strip()
        )
    except KnowledgeIngestionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Error processing file: {e}",
        )

    return IngestResponse(
        message="File processed and learned successfully!",
        document=KnowledgeDocumentResponse.model_validate(document),
    )


@router.post("/ingest", response_model=IngestResponse)
async def ingest(
    body: IngestTextRequest,
    current_user: User = Depends(get_current_user),
    knowledge_service: KnowledgeService = Depends(get_knowledge_service),
):
    """Add a manually written text to a profession's knowledge base"""
    if not body.text.strip() or not body.profession.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid text or profession.")

    try:
        document = await knowledge_service.ingest_text(body.text, body.profession.strip())
    except KnowledgeIngestionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Error ingesting text: {e}",
        )

    return IngestResponse(
        message="Text absorbed successfully!",
        document=KnowledgeDocumentResponse.model_validate(document),
    )
