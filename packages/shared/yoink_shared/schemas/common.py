from enum import Enum

from pydantic import BaseModel


class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class InvitationRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class AuthMethod(str, Enum):
    SESSION = "session"
    TOKEN = "token"


class DeviceType(str, Enum):
    SINGLE_DEVICE = "singleDevice"
    MULTI_DEVICE = "multiDevice"


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    error: ErrorBody


class OkResponse(BaseModel):
    ok: bool = True
