from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel
from typing import List
from core.errors import UnauthorizedError
from core.messages import get_message
from core.state import AppContext, get_context
from models.word_test import WordTestStatus
from utils.auth import session_id_from_request, set_session_cookie
from utils.security import generate_session_id
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["user"])

# ============ Request/Response Models ============

class ConnectRequest(BaseModel):
    """Participant entry request model"""
    username: str

    class Config:
        json_schema_extra = {
            "example": {
                "username": "Ayse"
            }
        }

class SubmitRequest(BaseModel):
    """Word submission request model"""
    words: List = []

    class Config:
        json_schema_extra = {
            "example": {
                "words": ["okumak", "kalem", "sayfa"]
            }
        }

# ============ Entry ============

@router.post("/connect")
async def connect(
    request: ConnectRequest,
    http_request: Request,
    response: Response,
    context: AppContext = Depends(get_context)
):
    """
    Register a participant name and hand out a durable session token.

    A caller that already carries a token keeps it, so a refresh never
    creates a second identity.

    Raises:
        ValidationError: Empty username
    """
    session_id = session_id_from_request(http_request, context.settings) or generate_session_id()
    participant = await context.registry.resolve_participant(session_id, request.username)
    active = await context.lifecycle.get_active_test()

    set_session_cookie(response, session_id, context.settings)
    logger.info(f"✓ Participant entered: {participant.username}")
    return {
        "success": True,
        "data": {
            "username": participant.username,
            "sessionId": session_id,
            "hasSubmitted": participant.has_submitted,
            "testActive": active is not None,
            "testWord": active.word if active else None
        }
    }

@router.get("/status")
async def status(
    http_request: Request,
    context: AppContext = Depends(get_context)
):
    """
    Where the participant stands in the current round.

    `shouldRedirect` is true once the participant's test is over and they had
    submitted, so the client can move on to the results.
    """
    session_id = session_id_from_request(http_request, context.settings)
    participant = await context.repository.get_participant_by_session(session_id) if session_id else None
    if participant is None:
        return {"success": False, "connected": False}

    active = await context.lifecycle.get_active_test()
    return {
        "success": True,
        "connected": True,
        "data": {
            "username": participant.username,
            "hasSubmitted": participant.has_submitted,
            "testActive": active is not None,
            "testId": active.id if active else None,
            "testWord": active.word if active else None,
            "shouldRedirect": bool(participant.test_id and participant.has_submitted and active is None)
        }
    }

@router.get("/check-redirect")
async def check_redirect(
    http_request: Request,
    context: AppContext = Depends(get_context)
):
    """Whether the participant's own test has finished"""
    session_id = session_id_from_request(http_request, context.settings)
    participant = await context.repository.get_participant_by_session(session_id) if session_id else None
    if participant is None or participant.test_id is None:
        return {"success": True, "shouldRedirect": False}

    test = await context.repository.get_test(participant.test_id)
    if test is None or test.status != WordTestStatus.FINISHED.value:
        return {"success": True, "shouldRedirect": False}
    return {"success": True, "shouldRedirect": True, "testId": test.id}

# ============ Submission ============

@router.post("/submit")
async def submit(
    request: SubmitRequest,
    http_request: Request,
    context: AppContext = Depends(get_context)
):
    """
    Save the caller's words for the active test.

    Raises:
        UnauthorizedError: Unknown session
        ValidationError: No usable words
        ConflictError: Already submitted for this test
        InvalidStateError: No test is active
    """
    session_id = session_id_from_request(http_request, context.settings)
    if not session_id:
        raise UnauthorizedError("session_not_found")

    participant, word_count = await context.registry.record_session_submission(session_id, request.words)

    await context.broadcaster.user_submitted(participant.username, word_count)
    await context.broadcaster.roster_changed(context.registry.roster_entries())
    return {
        "success": True,
        "message": get_message("answers_saved", context.settings.LANGUAGE),
        "wordCount": word_count
    }
