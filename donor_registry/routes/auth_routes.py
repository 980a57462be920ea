from fastapi import APIRouter, Depends, HTTPException, Request, status

from donor_registry.config import Settings
from donor_registry.dependencies import get_app_settings
from donor_registry.schemas.auth import LoginRequest, TokenResponse
from donor_registry.utils.logging_config import get_logger, log_security_event
from donor_registry.utils.security import (
    TokenManager,
    get_client_ip,
    verify_admin_credentials,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    settings: Settings = Depends(get_app_settings),
):
    """Exchange the administrator's username and password for a bearer token"""
    client_ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent", "unknown")

    if not verify_admin_credentials(credentials.username, credentials.password, settings):
        log_security_event(
            event_type="failed_login_attempt",
            ip_address=client_ip,
            user_agent=user_agent,
            details={"username": credentials.username},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials"
        )

    token = TokenManager.create_access_token({"sub": credentials.username}, settings)
    log_security_event(
        event_type="successful_login", ip_address=client_ip, user_agent=user_agent
    )
    return TokenResponse(token=token)
