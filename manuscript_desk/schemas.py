from datetime import datetime
from typing import Any, Optional, List

from pydantic import BaseModel, Field

from .models import ClientType, ManuscriptStatus, NotificationKind

# =========================
# CLIENT SCHEMAS
# =========================
class ClientBase(BaseModel):
    name: str = Field(min_length=1)
    region: str = Field(min_length=1)
    business_type: str = Field(min_length=1)
    main_service: Optional[str] = None
    differentiator: Optional[str] = None
    contact: Optional[str] = None
    memo: Optional[str] = None
    client_type: ClientType = ClientType.template
    manager: Optional[str] = None

class ClientCreate(ClientBase):
    pass

class ClientUpdate(BaseModel):
    name: Optional[str] = None
    region: Optional[str] = None
    business_type: Optional[str] = None
    main_service: Optional[str] = None
    differentiator: Optional[str] = None
    contact: Optional[str] = None
    memo: Optional[str] = None
    client_type: Optional[ClientType] = None
    manager: Optional[str] = None
    is_active: Optional[bool] = None

class ClientRead(ClientBase):
    id: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ClientBrief(BaseModel):
    id: int
    name: str
    region: str
    business_type: str

    class Config:
        from_attributes = True


# =========================
# TEMPLATE SCHEMAS
# =========================
class TemplateBase(BaseModel):
    business_type: str = Field(min_length=1)
    month: int = Field(ge=1, le=12)
    week: Optional[int] = Field(default=None, ge=1, le=5)
    topic: Optional[str] = None
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)

class TemplateCreate(TemplateBase):
    pass

class TemplateUpdate(BaseModel):
    business_type: Optional[str] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)
    week: Optional[int] = Field(default=None, ge=1, le=5)
    topic: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None

class TemplateRead(TemplateBase):
    id: int
    send_count: int
    approve_count: int
    confirm_rate: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TemplateBrief(BaseModel):
    id: int
    business_type: str
    month: int
    week: Optional[int] = None
    topic: Optional[str] = None
    title: str

    class Config:
        from_attributes = True


# =========================
# MANUSCRIPT SCHEMAS
# =========================
class ManuscriptRead(BaseModel):
    id: int
    client_id: int
    template_id: Optional[int] = None
    title: str
    content: str
    status: ManuscriptStatus
    revision_request: Optional[str] = None
    revision_count: int
    confirm_token: str
    group_id: Optional[str] = None
    sent_at: datetime
    confirmed_at: Optional[datetime] = None
    reminded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    client: Optional[ClientBrief] = None
    template: Optional[TemplateBrief] = None

    class Config:
        from_attributes = True

class PublicManuscriptRead(BaseModel):
    """What the advertiser sees on the confirm page (no tokens, no contact)."""
    id: int
    title: str
    content: str
    status: ManuscriptStatus
    revision_request: Optional[str] = None
    revision_count: int
    group_id: Optional[str] = None
    sent_at: datetime
    confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    client: Optional[ClientBrief] = None
    template: Optional[TemplateBrief] = None

    class Config:
        from_attributes = True

class ManuscriptUpdate(BaseModel):
    status: Optional[ManuscriptStatus] = None
    title: Optional[str] = None
    content: Optional[str] = None
    revision_request: Optional[str] = None

class RewrittenContent(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None

class BulkSendRequest(BaseModel):
    template_ids: Optional[List[int]] = None
    # legacy single-template form
    template_id: Optional[int] = None
    client_ids: List[int] = []
    # {template_id: {client_id: {title, content}}}; legacy form is {client_id: {...}}
    rewritten_contents: Optional[dict[str, Any]] = None

class ResendRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None

class ChangeTemplateRequest(BaseModel):
    template_id: Optional[int] = None
    title: Optional[str] = None
    content: Optional[str] = None

class CustomSendRequest(BaseModel):
    client_id: Optional[int] = None
    title: Optional[str] = None
    content: Optional[str] = None
    topic: Optional[str] = None

class ConfirmLinkRead(BaseModel):
    client_id: int
    client_name: str
    confirm_url: str
    phone_number: Optional[str] = None
    group_id: Optional[str] = None
    manuscript_ids: List[int] = []

    class Config:
        from_attributes = True


# =========================
# CONFIRM (public) SCHEMAS
# =========================
class ConfirmAction(BaseModel):
    action: Optional[str] = None          # 'approve' | 'revision'
    revision_request: Optional[str] = None
    manuscript_id: Optional[int] = None


# =========================
# AI SCHEMAS
# =========================
class RewriteRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    revision_request: Optional[str] = None
    mode: Optional[str] = None            # 'revision' applies revision_request

class CustomGenerateRequest(BaseModel):
    client_id: Optional[int] = None
    client: Optional[dict[str, Any]] = None
    topic: Optional[str] = None

class DraftRead(BaseModel):
    title: str
    content: str


# =========================
# NOTIFICATION SCHEMAS
# =========================
class ManualAlimtalkRequest(BaseModel):
    phone: str
    kind: NotificationKind = NotificationKind.confirm_request
    client_name: str = ""
    confirm_url: str = ""
    client_id: Optional[int] = None
    manuscript_id: Optional[int] = None

class NotificationLogRead(BaseModel):
    id: int
    client_id: Optional[int] = None
    manuscript_id: Optional[int] = None
    kind: NotificationKind
    phone: Optional[str] = None
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
