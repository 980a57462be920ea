import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from donor_registry.config import Settings
from donor_registry.dependencies import get_app_settings
from donor_registry.utils.logging_config import get_logger, log_security_event

logger = get_logger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)


class TokenManager:
    """Issue and verify the administrator's bearer tokens"""

    @staticmethod
    def create_access_token(
        data: dict, settings: Settings, expires_delta: Optional[timedelta] = None
    ) -> str:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode.update({"exp": expire, "type": "access"})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str, settings: Settings) -> dict:
        """Decode and verify a JWT token"""
        try:
            return jwt.decode(
                token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
            )
        except JWTError as e:
            raise ValueError("Invalid or expired token") from e


def verify_admin_credentials(username: str, password: str, settings: Settings) -> bool:
    """Constant-time comparison against the configured admin pair."""
    username_ok = hmac.compare_digest(
        username.encode(), settings.ADMIN_USERNAME.encode()
    )
    password_ok = hmac.compare_digest(
        password.encode(), settings.ADMIN_PASSWORD.encode()
    )
    return username_ok and password_ok


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


async def get_current_admin(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """Resolve the bearer token to the administrator's username"""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = TokenManager.decode_token(token, settings)
    except ValueError as e:
        logger.warning(
            "Invalid authentication credentials",
            extra={"extra_fields": {"event_type": "invalid_token", "error": str(e)}},
        )
        log_security_event(
            event_type="invalid_token",
            ip_address=get_client_ip(request),
            details={"path": str(request.url.path)},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")

    username = payload.get("sub")
    if payload.get("type") != "access" or username != settings.ADMIN_USERNAME:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")

    return username
