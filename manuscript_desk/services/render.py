# services/render.py
"""Placeholder substitution for template titles and bodies."""
from __future__ import annotations

import re
from typing import Any

# token -> client attribute. Korean tokens are the ones the content team writes;
# the English aliases are accepted for imported templates.
PLACEHOLDERS: dict[str, str] = {
    "{{지역}}": "region",
    "{{업체명}}": "name",
    "{{대표서비스}}": "main_service",
    "{{차별점}}": "differentiator",
    "{{연락처}}": "contact",
    "{{region}}": "region",
    "{{business_name}}": "name",
    "{{main_service}}": "main_service",
    "{{differentiator}}": "differentiator",
    "{{contact}}": "contact",
}

_TOKEN_RE = re.compile("|".join(re.escape(tok) for tok in PLACEHOLDERS))


def _field(client: Any, attr: str) -> str:
    if isinstance(client, dict):
        value = client.get(attr)
    else:
        value = getattr(client, attr, None)
    return "" if value is None else str(value)


def render(text: str, client: Any) -> str:
    """Replace every known placeholder in ``text`` with the client's value.

    Matching is literal and case-sensitive. Unknown ``{{...}}`` tokens are left as
    they are and substituted values are never re-scanned.
    """
    if not text:
        return text or ""
    return _TOKEN_RE.sub(lambda m: _field(client, PLACEHOLDERS[m.group(0)]), text)


def render_pair(title: str, content: str, client: Any) -> tuple[str, str]:
    return render(title, client), render(content, client)


__all__ = ["PLACEHOLDERS", "render", "render_pair"]
