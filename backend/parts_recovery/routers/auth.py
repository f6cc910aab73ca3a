"""Auth endpoints."""
import logging
import ipaddress

import redis
from redis.exceptions import RedisError
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from ..auth import (
    PermissionChecker,
    get_current_user,
    get_current_user_allow_password_change,
    validate_new_password,
)
from ..config import settings
from ..database import get_db
from ..models import User
from ..schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    ResetPasswordRequest,
    UserResponse,
)
from ..use_cases.accounts import (
    change_password_use_case,
    login_use_case,
    reset_password_use_case,
)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


_redis_client = None


def _get_redis():
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


def _get_client_ip(request: Request) -> str:
    if settings.TRUST_PROXY_HEADERS:
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            try:
                ipaddress.ip_address(real_ip)
                return real_ip
            except ValueError:
                pass

        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For may contain a list: client, proxy1, proxy2
            candidate = forwarded.split(",")[0].strip()
            try:
                ipaddress.ip_address(candidate)
                return candidate
            except ValueError:
                pass

    if request.client:
        return request.client.host
    return "unknown"


def _set_no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"


def _enforce_login_rate_limit(request: Request) -> None:
    ip = _get_client_ip(request)
    try:
        r = _get_redis()
        key = f"auth:rl:login:ip:{ip}"
        attempts = int(r.incr(key))
        if attempts == 1:
            r.expire(key, 60)
        if attempts > settings.AUTH_LOGIN_IP_LIMIT_PER_MINUTE:
            ttl = r.ttl(key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many login attempts. Try again later.",
                headers={"Retry-After": str(ttl if ttl and ttl > 0 else 60)},
            )
    except RedisError:
        # Fail open if Redis is down to avoid total auth outage.
        logger.exception("Redis error during login rate limiting (fail-open)")


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Login with user code and password; known default codes are provisioned on first use."""
    _set_no_store(response)
    _enforce_login_rate_limit(request)

    outcome = login_use_case(
        db=db,
        user_code=payload.user_code,
        password=payload.password,
        ip_address=_get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return LoginResponse(
        user=UserResponse.model_validate(outcome.user),
        must_change_password=bool(outcome.user.is_default_password),
        provisioned=outcome.provisioned,
    )


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user_allow_password_change)):
    return UserResponse.model_validate(current_user)


@router.post("/change-password", response_model=UserResponse)
def change_password(
    payload: ChangePasswordRequest,
    response: Response,
    current_user: User = Depends(get_current_user_allow_password_change),
    db: Session = Depends(get_db),
):
    """Change own password (the only call allowed while a default password is in use)."""
    _set_no_store(response)
    validate_new_password(new_password=payload.new_password, user_code=current_user.user_code)
    user = change_password_use_case(
        db=db,
        current_user=current_user,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return UserResponse.model_validate(user)


@router.post("/reset-password", response_model=UserResponse)
def reset_password(
    payload: ResetPasswordRequest,
    current_user: User = Depends(PermissionChecker("canManageUsers")),
    db: Session = Depends(get_db),
):
    """Reset another account to its default password."""
    user = reset_password_use_case(db=db, user_code=payload.user_code, current_user=current_user)
    return UserResponse.model_validate(user)


@router.get("/check")
def check_session(current_user: User = Depends(get_current_user)):
    """Lets clients check that a stored user code is still valid."""
    return {"user_code": current_user.user_code, "user_type": current_user.user_type}
