from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from salon_backend.core.database import get_db
from salon_backend.core.rate_limiter import RateLimiterService, get_login_rate_limiter
from salon_backend.deps import StaffIdentity, get_current_staff
from salon_backend.errors import AuthenticationError, LockoutError, NotFoundError, RateLimitError, ValidationError
from salon_backend.models.staff import Staff
from salon_backend.schemas.auth import (
    BackupCodesResponse,
    ChangePasswordPayload,
    LoginPayload,
    LoginResponse,
    MeResponse,
    MessageResponse,
    StaffRead,
    TwoFactorChallengeResponse,
    TwoFactorCodePayload,
    TwoFactorDisablePayload,
    TwoFactorEnablePayload,
    TwoFactorQrResponse,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
    TwoFactorVerifyPayload,
)
from salon_backend.services import security_audit
from salon_backend.services.credentials import (
    CredentialStatus,
    consume_backup_codes,
    dump_backup_codes,
    load_backup_codes,
    normalize_email,
    resolve_login_tenant,
    verify_credentials,
)
from salon_backend.services.login_attempts import (
    attempts_remaining,
    check_login_lock,
    clear_login_attempts,
    current_lock,
    lock_seconds_remaining,
    register_failed_login,
)
from salon_backend.services.passwords import hash_password, password_strength_errors, verify_password
from salon_backend.services.permissions import capabilities_for
from salon_backend.services.security_audit import client_ip, log_security_event
from salon_backend.services.tokens import TokenIssuer, get_token_issuer
from salon_backend.services.two_factor import two_factor_service
from salon_backend.services.two_factor_challenge import (
    create_login_challenge,
    create_setup_token,
    decode_login_challenge,
    decode_setup_token,
)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
INVALID_SECOND_FACTOR_MESSAGE = "Invalid two-factor code"


def enforce_login_rate_limit(
    request: Request,
    rate_limiter: RateLimiterService = Depends(get_login_rate_limiter),
) -> None:
    identifier = client_ip(request) or "unknown"
    decision = rate_limiter.check(identifier=identifier, scope="login")
    if not decision.allowed:
        logger.warning("login rate limit hit ip=%s", identifier)
        raise RateLimitError(
            "Too many login attempts, please try again later",
            retry_after=decision.retry_after_seconds,
        )


def _tenant_hint(payload_tenant_id: Optional[int], request: Request) -> Optional[int]:
    if payload_tenant_id is not None:
        return payload_tenant_id
    header_value = (request.headers.get("X-Tenant-ID") or "").strip()
    if not header_value:
        return None
    try:
        return int(header_value)
    except ValueError as exc:
        raise ValidationError(
            "Invalid tenant",
            details=[{"field": "X-Tenant-ID", "message": "must be an integer"}],
        ) from exc


def _staff_read(staff: Staff) -> StaffRead:
    return StaffRead(
        id=staff.id,
        tenant_id=staff.tenant_id,
        email=staff.email,
        name=staff.name,
        role=staff.role,
        is_active=bool(staff.is_active),
        two_factor_enabled=bool(staff.two_factor_enabled),
    )


def _load_staff(db: Session, identity: StaffIdentity) -> Staff:
    staff = (
        db.query(Staff)
        .filter(Staff.id == identity.staff_id, Staff.tenant_id == identity.tenant_id)
        .first()
    )
    if staff is None or not staff.is_active:
        raise AuthenticationError("Access denied")
    return staff


def _raise_for_failed_attempt(
    db: Session,
    staff: Staff,
    *,
    failed_count: int,
    locked_until: Optional[datetime],
    message: str,
    request: Request,
) -> None:
    if locked_until is not None:
        log_security_event(
            db,
            event_type=security_audit.ACCOUNT_LOCKED,
            tenant_id=staff.tenant_id,
            staff_id=staff.id,
            severity="CRITICAL",
            description=f"Locked after {failed_count} failed attempts",
            request=request,
            meta={"failed_count": failed_count},
        )
    # the attempt has to survive the error response
    db.commit()
    if locked_until is not None:
        raise LockoutError(retry_after=lock_seconds_remaining(locked_until))
    raise AuthenticationError(message, details={"attempts_remaining": attempts_remaining(failed_count)})


def _verify_second_factor(
    db: Session,
    staff: Staff,
    *,
    code: Optional[str],
    backup_code: Optional[str],
    request: Request,
) -> None:
    """Accept a TOTP code or burn one backup code; count anything else as a failed login."""
    if code and code.strip():
        if two_factor_service.verify_code(code, staff.two_factor_secret):
            return
    elif backup_code and backup_code.strip():
        stored = staff.backup_codes
        check = two_factor_service.verify_backup_code(backup_code, load_backup_codes(staff))
        if check.valid and consume_backup_codes(db, staff, stored, check.remaining_codes):
            log_security_event(
                db,
                event_type=security_audit.TWO_FA_BACKUP_USED,
                tenant_id=staff.tenant_id,
                staff_id=staff.id,
                severity="WARNING",
                request=request,
                meta={"remaining": len(check.remaining_codes)},
            )
            return

    failed_count, locked_until = register_failed_login(db, staff.id)
    log_security_event(
        db,
        event_type=security_audit.INVALID_2FA_ATTEMPT,
        tenant_id=staff.tenant_id,
        staff_id=staff.id,
        severity="WARNING",
        request=request,
        meta={"method": "backup_code" if backup_code else "totp", "failed_count": failed_count},
    )
    _raise_for_failed_attempt(
        db,
        staff,
        failed_count=failed_count,
        locked_until=locked_until,
        message=INVALID_SECOND_FACTOR_MESSAGE,
        request=request,
    )


def _complete_login(
    db: Session,
    staff: Staff,
    *,
    request: Request,
    token_issuer: TokenIssuer,
    method: str,
) -> LoginResponse:
    if not clear_login_attempts(db, staff.id):
        # locked by a concurrent failure after the password was checked
        db.rollback()
        locked_until = current_lock(db, staff.id)
        logger.warning("login refused, account locked meanwhile staff_id=%s", staff.id)
        raise LockoutError(retry_after=lock_seconds_remaining(locked_until) if locked_until else 1)

    log_security_event(
        db,
        event_type=security_audit.LOGIN_SUCCESS,
        tenant_id=staff.tenant_id,
        staff_id=staff.id,
        request=request,
        meta={"method": method},
    )
    db.commit()
    db.refresh(staff)

    token = token_issuer.issue(staff.id, staff.email, staff.role, staff.tenant_id)
    logger.info("login succeeded staff_id=%s tenant_id=%s method=%s", staff.id, staff.tenant_id, method)
    return LoginResponse(
        token=token,
        expires_in=token_issuer.expire_minutes * 60,
        staff=_staff_read(staff),
    )


@router.post("/login", dependencies=[Depends(enforce_login_rate_limit)])
def login(
    payload: LoginPayload,
    request: Request,
    db: Session = Depends(get_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
):
    email = normalize_email(payload.email)
    tenant_id = resolve_login_tenant(db, email, _tenant_hint(payload.tenant_id, request))
    check = verify_credentials(db, tenant_id, email, payload.password)

    if check.status is CredentialStatus.NOT_FOUND:
        log_security_event(
            db,
            event_type=security_audit.LOGIN_FAILED,
            tenant_id=tenant_id,
            severity="WARNING",
            description="Unknown account",
            request=request,
            meta={"email": email},
        )
        db.commit()
        raise NotFoundError("Account not found")

    staff = check.staff
    if check.status is CredentialStatus.INACTIVE:
        log_security_event(
            db,
            event_type=security_audit.LOGIN_FAILED,
            tenant_id=staff.tenant_id,
            staff_id=staff.id,
            severity="WARNING",
            description="Inactive account",
            request=request,
        )
        db.commit()
        raise AuthenticationError("This account has been deactivated")

    if check.status is CredentialStatus.LOCKED:
        log_security_event(
            db,
            event_type=security_audit.LOGIN_FAILED,
            tenant_id=staff.tenant_id,
            staff_id=staff.id,
            severity="WARNING",
            description="Login attempt on locked account",
            request=request,
        )
        db.commit()
        raise LockoutError(retry_after=lock_seconds_remaining(check.locked_until))

    if check.status is CredentialStatus.BAD_PASSWORD:
        log_security_event(
            db,
            event_type=security_audit.LOGIN_FAILED,
            tenant_id=staff.tenant_id,
            staff_id=staff.id,
            severity="WARNING",
            description="Wrong password",
            request=request,
            meta={"failed_count": check.failed_count},
        )
        _raise_for_failed_attempt(
            db,
            staff,
            failed_count=check.failed_count,
            locked_until=check.locked_until,
            message=INVALID_CREDENTIALS_MESSAGE,
            request=request,
        )

    if not staff.two_factor_enabled:
        return _complete_login(db, staff, request=request, token_issuer=token_issuer, method="password")

    if not (payload.totp_code or "").strip() and not (payload.backup_code or "").strip():
        return TwoFactorChallengeResponse(
            challenge_token=create_login_challenge(
                staff_id=staff.id, tenant_id=staff.tenant_id, email=staff.email
            )
        )

    _verify_second_factor(
        db,
        staff,
        code=payload.totp_code,
        backup_code=None if (payload.totp_code or "").strip() else payload.backup_code,
        request=request,
    )
    return _complete_login(db, staff, request=request, token_issuer=token_issuer, method="password+2fa")


@router.post("/2fa/verify", response_model=LoginResponse, dependencies=[Depends(enforce_login_rate_limit)])
def verify_two_factor_login(
    payload: TwoFactorVerifyPayload,
    request: Request,
    db: Session = Depends(get_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
):
    challenge = decode_login_challenge(payload.challenge_token)
    if challenge is None or normalize_email(challenge.get("email", "")) != normalize_email(payload.email):
        raise AuthenticationError("Two-factor challenge is invalid or expired")

    staff = (
        db.query(Staff)
        .filter(Staff.id == challenge.get("staff_id"), Staff.tenant_id == challenge.get("tenant_id"))
        .first()
    )
    if staff is None or not staff.is_active or not staff.two_factor_enabled:
        raise AuthenticationError("Two-factor challenge is invalid or expired")

    locked, locked_until = check_login_lock(staff)
    if locked:
        raise LockoutError(retry_after=lock_seconds_remaining(locked_until))

    _verify_second_factor(db, staff, code=payload.code, backup_code=payload.backup_code, request=request)
    return _complete_login(db, staff, request=request, token_issuer=token_issuer, method="password+2fa")


@router.post("/2fa/setup", response_model=TwoFactorSetupResponse)
def setup_two_factor(
    identity: StaffIdentity = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    staff = _load_staff(db, identity)
    if staff.two_factor_enabled:
        raise ValidationError("Two-factor authentication is already enabled")

    enrollment = two_factor_service.setup(staff.email)
    return TwoFactorSetupResponse(
        secret=enrollment.secret,
        display_secret=enrollment.display_secret,
        otpauth_uri=enrollment.otpauth_uri,
        qr_image=enrollment.qr_image,
        backup_codes=enrollment.backup_codes,
        setup_token=create_setup_token(
            staff_id=staff.id, secret=enrollment.secret, backup_codes=enrollment.backup_codes
        ),
    )


@router.post("/2fa/enable", response_model=MessageResponse)
def enable_two_factor(
    payload: TwoFactorEnablePayload,
    request: Request,
    identity: StaffIdentity = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    staff = _load_staff(db, identity)
    if staff.two_factor_enabled:
        raise ValidationError("Two-factor authentication is already enabled")

    enrollment = decode_setup_token(payload.setup_token)
    if enrollment is None or enrollment.get("staff_id") != staff.id:
        raise ValidationError("Two-factor setup expired, start again")

    secret = enrollment.get("secret") or ""
    if not two_factor_service.validate_setup(secret, payload.code):
        raise ValidationError("Invalid verification code")

    staff.two_factor_secret = secret
    staff.backup_codes = dump_backup_codes(enrollment.get("backup_codes") or [])
    staff.two_factor_enabled = True
    log_security_event(
        db,
        event_type=security_audit.TWO_FA_ENABLED,
        tenant_id=staff.tenant_id,
        staff_id=staff.id,
        request=request,
    )
    db.commit()
    return MessageResponse(message="Two-factor authentication enabled")


@router.post("/2fa/disable", response_model=MessageResponse)
def disable_two_factor(
    payload: TwoFactorDisablePayload,
    request: Request,
    identity: StaffIdentity = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    staff = _load_staff(db, identity)
    if not staff.two_factor_enabled:
        raise ValidationError("Two-factor authentication is not enabled")
    if not verify_password(payload.password, staff.password_hash):
        raise AuthenticationError("Password is incorrect")

    _verify_second_factor(db, staff, code=payload.code, backup_code=payload.backup_code, request=request)

    staff.two_factor_enabled = False
    staff.two_factor_secret = None
    staff.backup_codes = None
    log_security_event(
        db,
        event_type=security_audit.TWO_FA_DISABLED,
        tenant_id=staff.tenant_id,
        staff_id=staff.id,
        severity="WARNING",
        request=request,
    )
    db.commit()
    return MessageResponse(message="Two-factor authentication disabled")


@router.post("/2fa/backup-codes", response_model=BackupCodesResponse)
def regenerate_backup_codes(
    payload: TwoFactorCodePayload,
    request: Request,
    identity: StaffIdentity = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    staff = _load_staff(db, identity)
    if not staff.two_factor_enabled:
        raise ValidationError("Two-factor authentication is not enabled")

    _verify_second_factor(db, staff, code=payload.code, backup_code=None, request=request)

    codes = two_factor_service.generate_backup_codes()
    staff.backup_codes = dump_backup_codes(codes)
    log_security_event(
        db,
        event_type=security_audit.TWO_FA_BACKUP_REGENERATED,
        tenant_id=staff.tenant_id,
        staff_id=staff.id,
        request=request,
    )
    db.commit()
    return BackupCodesResponse(backup_codes=codes)


@router.post("/2fa/qr", response_model=TwoFactorQrResponse)
def reissue_two_factor_qr(
    payload: TwoFactorCodePayload,
    request: Request,
    identity: StaffIdentity = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Show the enrolled secret again, e.g. to add a second authenticator device."""
    staff = _load_staff(db, identity)
    if not staff.two_factor_enabled:
        raise ValidationError("Two-factor authentication is not enabled")

    _verify_second_factor(db, staff, code=payload.code, backup_code=None, request=request)

    return TwoFactorQrResponse(
        otpauth_uri=two_factor_service.provisioning_uri(
            staff.two_factor_secret, staff.email, two_factor_service.issuer_name
        ),
        qr_image=two_factor_service.regenerate_qr(staff.two_factor_secret, staff.email),
    )


@router.get("/2fa/status", response_model=TwoFactorStatusResponse)
def two_factor_status(
    identity: StaffIdentity = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    staff = _load_staff(db, identity)
    return TwoFactorStatusResponse(
        enabled=bool(staff.two_factor_enabled),
        backup_codes_remaining=len(load_backup_codes(staff)),
        seconds_until_rotation=two_factor_service.time_remaining(),
    )


@router.post("/password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordPayload,
    request: Request,
    identity: StaffIdentity = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    staff = _load_staff(db, identity)
    if not verify_password(payload.current_password, staff.password_hash):
        raise AuthenticationError("Current password is incorrect")

    errors = password_strength_errors(payload.new_password)
    if payload.new_password == payload.current_password:
        errors.append("New password must differ from the current one")
    if errors:
        raise ValidationError(
            "Password does not meet the requirements",
            details=[{"field": "new_password", "message": message} for message in errors],
        )

    staff.password_hash = hash_password(payload.new_password)
    log_security_event(
        db,
        event_type=security_audit.PASSWORD_CHANGED,
        tenant_id=staff.tenant_id,
        staff_id=staff.id,
        request=request,
    )
    db.commit()
    return MessageResponse(message="Password changed")


@router.get("/me", response_model=MeResponse)
def me(
    identity: StaffIdentity = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    staff = _load_staff(db, identity)
    permissions = sorted(f"{resource.value}:{action.value}" for resource, action in capabilities_for(identity.role))
    # role in the response is the one the token carries
    read = _staff_read(staff).model_copy(update={"role": identity.role.value})
    return MeResponse(staff=read, permissions=permissions)


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    identity: StaffIdentity = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    log_security_event(
        db,
        event_type=security_audit.LOGOUT,
        tenant_id=identity.tenant_id,
        staff_id=identity.staff_id,
        request=request,
    )
    db.commit()
    return MessageResponse(message="Logged out")
