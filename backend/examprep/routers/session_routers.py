from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_async_session
from ..security import current_active_user
from ..schemas.session_schema import (
    AckResponse,
    ApiResponse,
    AutosavePayload,
    SessionCreateData,
    SessionCreateRequest,
    SessionEventPayload,
    SessionStatusData,
    SubmitResult,
)
from ..services import session_service

router = APIRouter(prefix="/sessions", tags=["Sessions"])


@router.post("", response_model=ApiResponse[SessionCreateData], status_code=status.HTTP_201_CREATED)
async def create_session(payload: SessionCreateRequest, user=Depends(current_active_user), session: AsyncSession = Depends(get_async_session)):
    # start an attempt; returns the token and the question paper without the answer key
    data = await session_service.create_session(session, user, payload.test_id)
    return {"success": True, "data": data}


@router.patch("/{session_token}/answers", response_model=AckResponse)
async def autosave_answers(session_token: str, payload: AutosavePayload, user=Depends(current_active_user), session: AsyncSession = Depends(get_async_session)):
    answers = [a.model_dump() for a in payload.answers]
    await session_service.autosave_answers(session, user, session_token, answers)
    return {"success": True, "message": "Answers saved"}


@router.post("/{session_token}/submit", response_model=ApiResponse[SubmitResult])
async def submit_session(session_token: str, user=Depends(current_active_user), session: AsyncSession = Depends(get_async_session)):
    data = await session_service.submit_session(session, user, session_token)
    return {"success": True, "data": data}


@router.post("/{session_token}/events", response_model=AckResponse)
async def post_session_event(session_token: str, payload: SessionEventPayload, user=Depends(current_active_user), session: AsyncSession = Depends(get_async_session)):
    await session_service.post_session_event(session, user, session_token, payload.type, payload.metadata)
    return {"success": True}


@router.get("/{session_token}", response_model=ApiResponse[SessionStatusData])
async def get_session_status(session_token: str, user=Depends(current_active_user), session: AsyncSession = Depends(get_async_session)):
    data = await session_service.get_session_status(session, session_token)
    return {"success": True, "data": data}
