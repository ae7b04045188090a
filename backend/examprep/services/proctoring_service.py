import secrets
import logging
from typing import Dict, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..exceptions import ValidationFailedError
from ..models.attempt_model import TestSession, ProctoringEvent, ProctoringEventType

logger = logging.getLogger(__name__)

VALID_EVENT_TYPES = {t.value for t in ProctoringEventType}

# event type -> session counter it bumps; heartbeat bumps nothing
EVENT_COUNTERS: Dict[str, str] = {
    ProctoringEventType.TAB_SWITCH.value: "tab_switches",
    ProctoringEventType.SCREENSHOT.value: "screenshot_count",
    ProctoringEventType.FACE_DETECTION.value: "violation_count",
    ProctoringEventType.MULTIPLE_FACES.value: "violation_count",
}


def generate_session_token(nbytes: int | None = None) -> str:
    """Hex token from the OS CSPRNG; 2 * nbytes characters long."""
    return secrets.token_hex(max(nbytes or config.SESSION_TOKEN_BYTES, 24))


async def get_session_by_token(session: AsyncSession, token: str) -> TestSession | None:
    res = await session.execute(select(TestSession).where(TestSession.session_token == token))
    return res.scalar_one_or_none()


async def record_event(session: AsyncSession, test_session: TestSession, event_type: str, metadata: dict | None) -> ProctoringEvent:
    """Append an event row and bump the matching counter. Caller commits."""
    if event_type not in VALID_EVENT_TYPES:
        raise ValidationFailedError("Invalid event type", validTypes=sorted(VALID_EVENT_TYPES))

    details = metadata if isinstance(metadata, dict) else {}
    event = ProctoringEvent(
        test_session_id=test_session.id,
        event_type=event_type,
        event_details=details,
        severity=str(details.get("severity") or "low"),
    )
    session.add(event)

    counter = EVENT_COUNTERS.get(event_type)
    if counter:
        column = getattr(TestSession, counter)
        await session.execute(
            update(TestSession)
            .where(TestSession.id == test_session.id)
            .values({counter: column + 1})
            .execution_options(synchronize_session=False)
        )
        logger.debug("Session %s %s incremented by %s", test_session.id, counter, event_type)
    return event


async def list_events(session: AsyncSession, test_session_id: int) -> List[ProctoringEvent]:
    res = await session.execute(
        select(ProctoringEvent)
        .where(ProctoringEvent.test_session_id == test_session_id)
        .order_by(ProctoringEvent.created_at, ProctoringEvent.id)
    )
    return list(res.scalars().all())


def counters(test_session: TestSession) -> dict:
    return {
        "tab_switches": test_session.tab_switches or 0,
        "screenshot_count": test_session.screenshot_count or 0,
        "violation_count": test_session.violation_count or 0,
    }
