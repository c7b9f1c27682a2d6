# app/routes/auth/router.py

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import commit_or_conflict, get_db
from app.models.all_models import User, as_utc, utc_now
from app.routes.auth.schemas import (
    AuthResponse,
    EmailRequest,
    OTPVerificationRequest,
    PasswordResetConfirm,
    ProfileUpdateRequest,
    UserLoginRequest,
    UserSignupRequest,
)
from app.schemas.common import envelope
from app.schemas.user import UserResponse
from app.services.container import Services, get_services
from app.utils.auth import (
    create_access_token,
    generate_otp,
    get_current_user,
    hash_password,
    verify_password,
)
from app.utils.errors import Conflict, NotFound, Unauthorized, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _issue_otp(user: User) -> str:
    otp = generate_otp()
    user.otp_code = otp
    user.otp_expires_at = utc_now() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
    return otp


def _send_otp(services: Services, user: User, otp: str) -> bool:
    receipt = services.side_effects.run(
        "OTP SMS", services.sms.send_otp, user.phone, otp, settings.OTP_EXPIRE_MINUTES
    )
    return receipt is not None


def _check_otp(user: User, otp: str) -> None:
    if not user.otp_code or user.otp_code != otp:
        raise ValidationError("Invalid or expired OTP")
    if as_utc(user.otp_expires_at) is None or as_utc(user.otp_expires_at) < utc_now():
        raise ValidationError("OTP has expired")


def _find_by_email(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == email.lower()).first()
    if not user:
        raise NotFound("User not found")
    return user


def _auth_payload(user: User, otp_sent=None) -> AuthResponse:
    return AuthResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        role=user.role,
        is_verified=user.is_verified,
        token=create_access_token({"sub": str(user.id)}),
        otp_sent=otp_sent,
    )

# ================================
# SIGNUP & LOGIN
# ================================

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserSignupRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Register an account and text it a verification code."""
    email = user_data.email.lower()
    existing_user = db.query(User).filter(
        (User.email == email) | (User.phone == user_data.phone)
    ).first()
    if existing_user:
        raise Conflict("User already exists with this email or phone")

    new_user = User(
        name=user_data.name,
        email=email,
        phone=user_data.phone,
        password=hash_password(user_data.password),
        role=user_data.role,
    )
    otp = _issue_otp(new_user)
    db.add(new_user)
    commit_or_conflict(db, duplicate="User already exists with this email or phone")
    logger.info("Registered user %s with role %s", new_user.id, new_user.role.value)

    otp_sent = _send_otp(services, new_user, otp)
    return envelope(_auth_payload(new_user, otp_sent=otp_sent))


@router.post("/login")
def login(credentials: UserLoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == credentials.email.lower()).first()
    if not user or not verify_password(credentials.password, user.password):
        raise Unauthorized("Invalid email or password")
    return envelope(_auth_payload(user))

# ================================
# OTP VERIFICATION
# ================================

@router.post("/verify-otp")
def verify_otp(request: OTPVerificationRequest, db: Session = Depends(get_db)):
    user = _find_by_email(db, request.email)
    _check_otp(user, request.otp)

    user.is_verified = True
    user.otp_code = None
    user.otp_expires_at = None
    db.commit()
    return envelope({"is_verified": True}, message="Account verified successfully")


@router.post("/resend-otp")
def resend_otp(
    request: EmailRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    user = _find_by_email(db, request.email)
    otp = _issue_otp(user)
    db.commit()
    return envelope({"otp_sent": _send_otp(services, user, otp)}, message="OTP resent successfully")

# ================================
# PASSWORD RESET
# ================================

@router.post("/forgot-password")
def forgot_password(
    request: EmailRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    user = _find_by_email(db, request.email)
    otp = _issue_otp(user)
    db.commit()
    return envelope({"otp_sent": _send_otp(services, user, otp)}, message="Password reset OTP sent")


@router.post("/reset-password")
def reset_password(request: PasswordResetConfirm, db: Session = Depends(get_db)):
    user = _find_by_email(db, request.email)
    _check_otp(user, request.otp)

    user.password = hash_password(request.new_password)
    user.otp_code = None
    user.otp_expires_at = None
    db.commit()
    return envelope(message="Password reset successful")

# ================================
# PROFILE
# ================================

@router.get("/profile")
def get_profile(current_user: User = Depends(get_current_user)):
    return envelope(UserResponse.model_validate(current_user))


@router.put("/profile")
def update_profile(
    profile: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updates = profile.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in updates:
        updates["email"] = updates["email"].lower()
        taken = db.query(User).filter(User.email == updates["email"], User.id != current_user.id).first()
        if taken:
            raise Conflict("Email already in use")
    if "phone" in updates:
        taken = db.query(User).filter(User.phone == updates["phone"], User.id != current_user.id).first()
        if taken:
            raise Conflict("Phone number already in use")
    if "password" in updates:
        updates["password"] = hash_password(updates["password"])

    for field, value in updates.items():
        setattr(current_user, field, value)
    db.commit()
    return envelope(UserResponse.model_validate(current_user))
