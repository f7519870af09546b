from fastapi import APIRouter, Depends, HTTPException, status, Response, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from datetime import datetime

from ..database import get_db
from ..config import settings
from ..models.user import User
from ..schemas.auth import Token, RegisterRequest, UserResponse
from ..utils.security import (
    hash_password, verify_password, validate_password_strength,
    create_access_token, normalize_email
)
from ..utils.rate_limiter import limiter, get_rate_limit, get_real_client_ip
from ..utils.audit_logger import log_auth_event, get_request_id
from ..utils.dependencies import get_current_user

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def set_auth_cookie(response: Response, access_token: str):
    """HttpOnly cookie for browser clients; API clients use the bearer token"""
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
        path="/"
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("register"))
async def register(
    request: Request,
    data: RegisterRequest,
    db: Session = Depends(get_db)
):
    """Create a customer account"""
    is_valid, error = validate_password_strength(data.password)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

    email = normalize_email(data.email)
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        email=email,
        hashed_password=hash_password(data.password),
        full_name=data.full_name,
        is_admin=False,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    log_auth_event("REGISTER", email=email, user_id=user.id, request_id=get_request_id(request))
    return user


@router.post("/login", response_model=Token)
@limiter.limit(get_rate_limit("login"))
async def login(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """Log in with email + password; returns a bearer token and sets a cookie"""
    request_id = get_request_id(request)
    client_ip = get_real_client_ip(request)

    email = normalize_email(form_data.username)
    password = form_data.password or ""

    user = db.query(User).filter(User.email == email).first()

    if not user or not verify_password(password, user.hashed_password):
        log_auth_event(
            "LOGIN",
            email=email,
            success=False,
            details="Invalid credentials",
            ip_address=client_ip,
            request_id=request_id
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        log_auth_event(
            "LOGIN",
            email=email,
            user_id=user.id,
            success=False,
            details="Account disabled",
            ip_address=client_ip,
            request_id=request_id
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")

    access_token = create_access_token(data={"sub": user.id})
    user.last_login_at = datetime.utcnow()
    db.commit()

    set_auth_cookie(response, access_token)
    log_auth_event("LOGIN", email=email, user_id=user.id, ip_address=client_ip, request_id=request_id)

    return Token(access_token=access_token)


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie("access_token", path="/")
    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    return current_user
