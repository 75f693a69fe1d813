# servicepoint/api/routes/auth.py
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from servicepoint.api.deps import (
    RateLimiter,
    authenticate,
    require_admin_or_higher,
    validate_session_timeout,
)
from servicepoint.core.exceptions import AuthenticationError, Conflict, Forbidden, NotFound
from servicepoint.core.security import TokenService, get_token_service
from servicepoint.db.base import get_db
from servicepoint.db.models.admin import Admin
from servicepoint.db.models.garage import Garage
from servicepoint.schemas.admin import AdminResponse
from servicepoint.schemas.auth import AdminRegister, GarageClaim, GaragePasswordReset, LoginRequest
from servicepoint.schemas.garage import GarageResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    dependencies=[Depends(RateLimiter("auth", max_requests=50))],
)

INVALID_LOGIN = "Invalid email or password"


# Admin login
@router.post("/admin/login")
def admin_login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    # Step 1: find the account
    admin = db.query(Admin).filter(Admin.email == payload.email).first()
    if not admin:
        raise AuthenticationError(INVALID_LOGIN)

    # Step 2: must be active
    if not admin.is_active:
        raise AuthenticationError("Account is deactivated. Please contact main admin.")

    # Step 3: password
    if not admin.check_password(payload.password):
        raise AuthenticationError(INVALID_LOGIN)

    admin.last_login = datetime.utcnow()
    db.commit()
    db.refresh(admin)
    logger.info("Admin %s logged in", admin.admin_id)

    return {
        "success": True,
        "message": "Successful Login",
        "admin": AdminResponse.model_validate(admin),
        "token": tokens.issue(admin.token_claims()),
    }


# First admin bootstrap; closed as soon as one admin exists
@router.post("/admin/register", status_code=status.HTTP_201_CREATED)
def admin_register(
    payload: AdminRegister,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    if db.query(Admin).count() > 0:
        raise Forbidden("Admin registration is closed. Contact existing admin.")

    if db.query(Admin).filter(Admin.email == payload.email).first():
        raise Conflict("Email already registered")

    admin = Admin(name=payload.name.strip(), email=payload.email, role="main_admin")
    admin.set_password(payload.password)
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("Main admin %s created", admin.admin_id)

    return {
        "success": True,
        "message": "Main admin account created successfully",
        "admin": AdminResponse.model_validate(admin),
        "token": tokens.issue(admin.token_claims()),
    }


# Garage owner login
@router.post("/garage/login")
def garage_login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    garage = db.query(Garage).filter(Garage.email == payload.email).first()
    if not garage:
        raise AuthenticationError(INVALID_LOGIN)

    if not garage.is_active:
        raise AuthenticationError("Garage account is deactivated. Please contact admin.")

    if not garage.check_password(payload.password):
        raise AuthenticationError(INVALID_LOGIN)

    garage.last_login = datetime.utcnow()
    db.commit()
    db.refresh(garage)
    logger.info("Garage %s logged in", garage.garage_id)

    return {
        "success": True,
        "message": "Successful Login",
        "garage": GarageResponse.model_validate(garage),
        "token": tokens.issue(garage.token_claims()),
    }


# Owner claims an admin-created garage by choosing a password
@router.post("/garage/register")
def garage_register(payload: GarageClaim, db: Session = Depends(get_db)):
    garage = db.query(Garage).filter(
        Garage.email == payload.email,
        Garage.garage_id == payload.garage_id,
        Garage.is_active.is_(True),
    ).first()
    if not garage:
        raise NotFound(
            "Invalid email or Garage ID combination. Please check your details or contact your admin."
        )

    if garage.is_claimed:
        raise Conflict(
            "This garage is already registered! Please use the login page with your existing password."
        )

    garage.set_password(payload.password)
    garage.is_claimed = True
    garage.registration_date = datetime.utcnow()
    db.commit()
    db.refresh(garage)
    logger.info("Garage %s claimed by its owner", garage.garage_id)

    return {
        "success": True,
        "message": "Registration completed successfully! You can now login with your email and password.",
        "garage_info": {
            "garage_id": garage.garage_id,
            "garage_name": garage.garage_name,
            "owner_name": garage.owner_name,
            "email": garage.email,
        },
    }


@router.post("/garage/reset-password", dependencies=[Depends(validate_session_timeout)])
def garage_reset_password(
    payload: GaragePasswordReset,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin_or_higher),
):
    garage = db.query(Garage).filter(Garage.id == payload.garage_id).first()
    if not garage:
        raise NotFound("Garage not found")

    garage.set_password(payload.new_password)
    db.commit()
    logger.info("Admin %s reset the password of garage %s", admin.admin_id, garage.garage_id)

    return {"success": True, "message": "Garage password reset successfully"}


# Tokens are stateless; the client simply drops its copy
@router.post("/logout")
def logout():
    return {"success": True, "message": "Logged out successfully"}


@router.get("/verify")
def verify(claims: dict = Depends(authenticate)):
    return {
        "success": True,
        "message": "Token is valid",
        "data": {
            "type": claims.get("type"),
            "id": claims.get("id"),
            "email": claims.get("email"),
            "role": claims.get("role"),
            "expires_at": claims.get("exp"),
        },
    }
