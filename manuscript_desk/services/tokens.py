# services/tokens.py
import uuid
from typing import Optional

from manuscript_desk.settings.config import settings


def new_confirm_token() -> str:
    # the token is the only credential of the public confirm page
    return str(uuid.uuid4())


def new_group_id() -> str:
    return str(uuid.uuid4())


def confirm_url(token: str, base_url: Optional[str] = None) -> str:
    base = (base_url if base_url is not None else settings.confirm_base_url).rstrip("/")
    return f"{base}/confirm/{token}"
