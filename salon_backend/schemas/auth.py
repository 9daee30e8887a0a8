from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    tenant_id: Optional[int] = Field(None, ge=1)
    totp_code: Optional[str] = None
    backup_code: Optional[str] = None

    @field_validator("password")
    @classmethod
    def _password_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("password is required")
        return value


class _SecondFactorPayload(BaseModel):
    code: Optional[str] = None
    backup_code: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_factor(self):
        has_code = bool((self.code or "").strip())
        has_backup = bool((self.backup_code or "").strip())
        if has_code == has_backup:
            raise ValueError("provide either code or backup_code")
        return self


class TwoFactorVerifyPayload(_SecondFactorPayload):
    email: EmailStr
    challenge_token: str = Field(..., min_length=1)


class TwoFactorEnablePayload(BaseModel):
    setup_token: str = Field(..., min_length=1)
    code: str = Field(..., min_length=6, max_length=10)


class TwoFactorDisablePayload(_SecondFactorPayload):
    password: str = Field(..., min_length=1)


class TwoFactorCodePayload(BaseModel):
    code: str = Field(..., min_length=6, max_length=10)


class ChangePasswordPayload(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class StaffRead(BaseModel):
    id: int
    tenant_id: int
    email: str
    name: str
    role: str
    is_active: bool
    two_factor_enabled: bool

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    token_type: str = "bearer"
    expires_in: int
    staff: StaffRead


class TwoFactorChallengeResponse(BaseModel):
    success: bool = True
    requires_two_factor: bool = True
    challenge_token: str
    message: str = "Two-factor code required"


class TwoFactorSetupResponse(BaseModel):
    success: bool = True
    secret: str
    display_secret: str
    otpauth_uri: str
    qr_image: str
    backup_codes: List[str]
    setup_token: str


class TwoFactorQrResponse(BaseModel):
    success: bool = True
    otpauth_uri: str
    qr_image: str


class TwoFactorStatusResponse(BaseModel):
    success: bool = True
    enabled: bool
    backup_codes_remaining: int
    seconds_until_rotation: int


class BackupCodesResponse(BaseModel):
    success: bool = True
    backup_codes: List[str]


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class MeResponse(BaseModel):
    success: bool = True
    staff: StaffRead
    permissions: List[str]
