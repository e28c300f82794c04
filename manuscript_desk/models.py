from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Text, DateTime, func, Index
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ManuscriptStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    revision = "revision"
    cancelled = "cancelled"
    auto_approved = "auto_approved"


class ClientType(str, enum.Enum):
    template = "template"   # receives automated templated sends
    custom = "custom"       # receives one-off generated manuscripts


class NotificationKind(str, enum.Enum):
    confirm_request = "confirm_request"
    revision_complete = "revision_complete"
    reminder = "reminder"


MANAGERS = ("주미", "수빈", "현주")

BUSINESS_TYPES = (
    "수학학원", "영어학원", "국어학원", "종합학원", "태권도학원", "미술학원",
    "음악학원", "반찬가게", "식당", "카페", "에스테틱", "피부과", "헬스장",
    "필라테스", "안경원", "세탁소", "인테리어", "부동산", "마사지",
    "복싱체육관", "보험샵", "교정원", "테라피", "기타",
)


# ---------------------------
# CLIENTS (advertisers)
# ---------------------------
class Client(Base):
    __tablename__ = "client"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    region = Column(String(100), nullable=False)
    business_type = Column(String(50), nullable=False, index=True)
    main_service = Column(Text, nullable=True)
    differentiator = Column(Text, nullable=True)
    contact = Column(String(32), nullable=True)   # phone number used for alimtalk
    memo = Column(Text, nullable=True)
    # "deleted" clients are deactivated, never removed
    is_active = Column(Boolean, default=True, nullable=False)
    client_type = Column(SAEnum(ClientType), default=ClientType.template, nullable=False)
    manager = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now())

    manuscripts = relationship("Manuscript", back_populates="client")

    def __repr__(self):
        return f"<Client {self.id} {self.name}>"


# ---------------------------
# TEMPLATES
# ---------------------------
class Template(Base):
    __tablename__ = "template"

    id = Column(Integer, primary_key=True, index=True)
    business_type = Column(String(50), nullable=False, index=True)
    month = Column(Integer, nullable=False)          # 1-12
    week = Column(Integer, nullable=True)            # 1-5, NULL = whole month
    topic = Column(String(200), nullable=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    # counters are only moved by the lifecycle engine / dispatcher
    send_count = Column(Integer, default=0, nullable=False)
    approve_count = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now())

    manuscripts = relationship("Manuscript", back_populates="template")

    @property
    def confirm_rate(self) -> int:
        if not self.send_count:
            return 0
        return round((self.approve_count or 0) / self.send_count * 100)


# ---------------------------
# MANUSCRIPTS
# ---------------------------
class Manuscript(Base):
    __tablename__ = "manuscript"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("client.id", ondelete="CASCADE"), nullable=False, index=True)
    # NULL for ad-hoc custom manuscripts
    template_id = Column(Integer, ForeignKey("template.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    status = Column(SAEnum(ManuscriptStatus), default=ManuscriptStatus.pending, nullable=False, index=True)
    revision_request = Column(Text, nullable=True)
    revision_count = Column(Integer, default=0, nullable=False)  # never reset
    confirm_token = Column(String(64), unique=True, nullable=False, index=True)
    # manuscripts sent to one client in one batch share a group
    group_id = Column(String(36), nullable=True, index=True)
    sent_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    reminded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now())

    client = relationship("Client", back_populates="manuscripts")
    template = relationship("Template", back_populates="manuscripts")

    __table_args__ = (
        Index("ix_manuscript_status_sent_at", "status", "sent_at"),
    )


# ---------------------------
# NOTIFICATION LOG
# ---------------------------
class NotificationLog(Base):
    __tablename__ = "notification_log"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("client.id", ondelete="SET NULL"), nullable=True, index=True)
    manuscript_id = Column(Integer, ForeignKey("manuscript.id", ondelete="SET NULL"), nullable=True, index=True)
    kind = Column(SAEnum(NotificationKind), nullable=False)
    phone = Column(String(32), nullable=True)
    success = Column(Boolean, default=False, nullable=False)
    message_id = Column(String(128), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
