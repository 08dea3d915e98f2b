from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel
from core.errors import UnauthorizedError
from core.messages import get_message
from core.state import AppContext, get_context
from services.dashboard import build_dashboard, push_admin_status
from utils.security import admin_token_from_request, require_admin, security
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

# ============ Request/Response Models ============

class LoginRequest(BaseModel):
    """Admin login request model"""
    username: str
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "username": "admin",
                "password": "admin123"
            }
        }

class CreateTestRequest(BaseModel):
    """New test request model"""
    word: str

    class Config:
        json_schema_extra = {
            "example": {
                "word": "Kitap"
            }
        }

def _message(context: AppContext, key: str) -> str:
    return get_message(key, context.settings.LANGUAGE)

# ============ Login Session Endpoints ============

@router.post("/login")
async def login(
    request: LoginRequest,
    response: Response,
    context: AppContext = Depends(get_context)
):
    """
    Admin login endpoint.

    Checks the configured admin credentials and opens a server-held session.
    The token is returned in the body and also set as an httponly cookie.

    Raises:
        UnauthorizedError: Invalid credentials
    """
    if not context.admin_sessions.authenticate(request.username, request.password):
        logger.warning(f"Admin login failed: {request.username}")
        raise UnauthorizedError("invalid_credentials")

    token = context.admin_sessions.issue(request.username)
    response.set_cookie(
        key=context.settings.ADMIN_COOKIE_NAME,
        value=token,
        max_age=context.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=context.settings.SESSION_COOKIE_SECURE,
    )
    return {
        "success": True,
        "message": _message(context, "login_ok"),
        "token": token
    }

@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    context: AppContext = Depends(get_context)
):
    """Close the caller's admin session. Logging out twice is harmless."""
    context.admin_sessions.revoke(admin_token_from_request(request, credentials))
    response.delete_cookie(context.settings.ADMIN_COOKIE_NAME)
    return {"success": True, "message": _message(context, "logout_ok")}

@router.get("/status")
async def admin_status(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    context: AppContext = Depends(get_context)
):
    """Whether the caller holds a live admin session"""
    try:
        context.admin_sessions.validate(admin_token_from_request(request, credentials))
        return {"isAdmin": True}
    except UnauthorizedError:
        return {"isAdmin": False}

# ============ Dashboard ============

@router.get("/dashboard")
async def dashboard(
    admin: dict = Depends(require_admin),
    context: AppContext = Depends(get_context)
):
    """
    Current quiz state for the admin panel.

    Returns:
        activeTest, readyTest, latestTest, connectedUsers and usersList
    """
    return {"success": True, "data": await build_dashboard(context)}

@router.get("/tests")
async def list_tests(
    limit: int = 20,
    admin: dict = Depends(require_admin),
    context: AppContext = Depends(get_context)
):
    """Most recent tests, newest first"""
    tests = await context.lifecycle.list_tests(limit)
    return {"success": True, "data": [test.to_dict() for test in tests]}

# ============ Test Lifecycle ============

@router.post("/test")
async def create_test(
    request: CreateTestRequest,
    admin: dict = Depends(require_admin),
    context: AppContext = Depends(get_context)
):
    """
    Create a new test in the ready state.

    Raises:
        ValidationError: Empty word
        ConflictError: Another test is active
    """
    test = await context.lifecycle.create_test(request.word)
    await push_admin_status(context)
    return {
        "success": True,
        "message": _message(context, "test_created"),
        "data": {
            "testId": test.id,
            "word": test.word,
            "status": test.status
        }
    }

@router.post("/test/{test_id}/start")
async def start_test(
    test_id: int,
    admin: dict = Depends(require_admin),
    context: AppContext = Depends(get_context)
):
    """Start a ready test and push its word to every connected participant"""
    test = await context.lifecycle.start_test(test_id)
    await push_admin_status(context)
    return {
        "success": True,
        "message": _message(context, "test_started"),
        "data": test.to_dict()
    }

@router.post("/test/{test_id}/finish")
async def finish_test(
    test_id: int,
    admin: dict = Depends(require_admin),
    context: AppContext = Depends(get_context)
):
    test = await context.lifecycle.finish_test(test_id)
    await push_admin_status(context)
    return {
        "success": True,
        "message": _message(context, "test_finished"),
        "data": test.to_dict()
    }

@router.post("/cancel-test/{test_id}")
async def cancel_test(
    test_id: int,
    admin: dict = Depends(require_admin),
    context: AppContext = Depends(get_context)
):
    test = await context.lifecycle.cancel_test(test_id)
    await push_admin_status(context)
    return {
        "success": True,
        "message": _message(context, "test_cancelled"),
        "data": test.to_dict()
    }

# ============ Resets ============

@router.post("/soft-reset")
async def soft_reset(
    admin: dict = Depends(require_admin),
    context: AppContext = Depends(get_context)
):
    """
    Send every participant back to the entry screen.

    Finished tests and their responses are kept.
    """
    summary = await context.resets.soft_reset()
    await push_admin_status(context)
    return {
        "success": True,
        "message": _message(context, "soft_reset_done"),
        "data": summary
    }

@router.post("/emergency-reset")
async def emergency_reset(
    response: Response,
    admin: dict = Depends(require_admin),
    context: AppContext = Depends(get_context)
):
    """
    Wipe live state, log out every admin and close every socket.

    The caller's own session is revoked too, so the admin cookie is cleared.
    """
    summary = await context.resets.emergency_reset()
    response.delete_cookie(context.settings.ADMIN_COOKIE_NAME)
    return {
        "success": True,
        "message": _message(context, "emergency_reset_done"),
        "timestamp": summary["timestamp"],
        "data": summary
    }
