from fastapi import APIRouter, UploadFile, File, Depends, HTTPException, status
from typing import List
import os
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..db import get_async_session
from ..dependencies import current_admin
from ..schemas.session_schema import ApiResponse, AttemptEventsData, ExpireOverdueData
from ..schemas.test_schema import QuestionImport, ImportPreview, ImportSummary
from ..services import session_service, test_service
from ..services.excel_service import parse_excel, REQUIRED_COLUMNS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(current_admin)])

ALLOWED_EXTENSIONS = {".xlsx", ".xlsm", ".xls", ".xlsb", ".ods"}


@router.get("/attempts/{attempt_id}/events", response_model=ApiResponse[AttemptEventsData])
async def list_attempt_events(attempt_id: int, session: AsyncSession = Depends(get_async_session)):
    # proctoring audit trail for one attempt
    data = await session_service.list_attempt_events(session, attempt_id)
    return {"success": True, "data": data}


@router.post("/attempts/expire-overdue", response_model=ApiResponse[ExpireOverdueData])
async def expire_overdue_attempts(session: AsyncSession = Depends(get_async_session)):
    expired = await session_service.expire_overdue_attempts(session, grace_seconds=config.AUTO_SUBMIT_GRACE_SECONDS)
    return {"success": True, "data": {"expired": expired}}


# Upload Excel & Preview
@router.post("/tests/{test_id}/questions/upload", response_model=ApiResponse[ImportPreview])
async def upload_questions_excel(test_id: int, file: UploadFile = File(...)):
    file_extension = os.path.splitext(file.filename or "")[1].lower()
    if file_extension not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file extension. Only {sorted(ALLOWED_EXTENSIONS)} are allowed.",
        )
    try:
        rows = parse_excel(file.file)
    except KeyError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Column not found: {e}. The sheet must contain the columns {REQUIRED_COLUMNS} (case sensitive).",
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Could not read spreadsheet: {e}")

    preview = []
    for idx, row in enumerate(rows, start=2):
        try:
            preview.append(QuestionImport.model_validate(row))
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Row {idx}: {e}")
    return {"success": True, "data": {"total": len(preview), "preview": preview}}


# Confirm Import
@router.post("/tests/{test_id}/questions/confirm-import", response_model=ApiResponse[ImportSummary])
async def confirm_import(test_id: int, questions: List[QuestionImport], session: AsyncSession = Depends(get_async_session)):
    data = await test_service.import_questions(session, test_id, questions)
    logger.info("Imported %s question(s) into test %s", data["created"], test_id)
    return {"success": True, "data": data}
