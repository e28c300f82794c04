import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from manuscript_desk.errors import UpstreamFailure
from manuscript_desk.settings.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Draft:
    title: str
    content: str


REWRITE_PROMPT = """아래 블로그 원고를 같은 의미와 맥락을 유지하면서 표현을 자연스럽게 변형해줘.
- 문장 구조 변경
- 동의어/유의어 활용
- 어순 변경
- 단, 핵심 키워드는 그대로 유지 (예: "강남 수학학원" 같은 지역+업종 키워드)
- 전체 글자수는 비슷하게 유지
- 마크다운 형식 유지
- 제목과 본문을 아래 형식으로 반환해줘:

[제목]
(리라이팅된 제목)

[본문]
(리라이팅된 본문)"""

REVISION_PROMPT = """당신은 블로그 원고 수정 전문가입니다. 광고주가 요청한 수정 사항을 반영하여 원고를 수정해주세요.

1. 광고주의 수정 요청 사항을 정확히 반영하세요.
2. 수정이 요청된 부분만 변경하고, 나머지 내용은 최대한 유지하세요.
3. 전체적인 글의 흐름과 톤은 유지하세요.
4. 마크다운 형식을 유지하세요.
5. 업체명, 지역명 등 핵심 키워드는 그대로 유지하세요.

반드시 아래 형식으로만 출력하세요:

[제목]
(수정된 제목)

[본문]
(수정된 본문)"""

GENERATE_PROMPT = """다음 정보를 바탕으로 네이버 블로그 원고를 작성해줘.

업체명: {name}
지역: {region}
업종: {business_type}
대표서비스: {main_service}
차별점: {differentiator}
주제: {topic}

작성 조건:
- 글자수: 1,700~2,000자
- 키워드 "{keyword}" 3회 이상 자연스럽게 삽입
- 구조: 도입 → 본문 3개 소주제 → 업체 소개 → 상담 유도 마무리
- 자연스럽고 친근한 문체
- 마크다운 형식 (### 소제목)

반드시 아래 형식으로만 출력하세요:

[제목]
(제목)

[본문]
(본문)"""

_TITLE_RE = re.compile(r"\[제목\]\s*([\s\S]*?)\s*\[본문\]")
_BODY_RE = re.compile(r"\[본문\]\s*([\s\S]*)$")
_TITLE_LINE_RE = re.compile(r"^제목:\s*(.+?)(?:\n|$)", re.MULTILINE)


def parse_draft(raw: str, fallback_title: str = "", fallback_content: str = "") -> Draft:
    """Split model output into title/body.

    Accepts the ``[제목]``/``[본문]`` sections, a ``제목:`` line, or falls back to
    first line as title.
    """
    text = (raw or "").strip()
    m = re.search(r"```(?:\w+)?\s*([\s\S]*?)```", text)
    if m and m.group(1).strip():
        text = m.group(1).strip()

    t = _TITLE_RE.search(text)
    b = _BODY_RE.search(text)
    if t or b:
        return Draft(
            title=(t.group(1).strip() if t else "") or fallback_title,
            content=(b.group(1).strip() if b else "") or fallback_content,
        )

    line = _TITLE_LINE_RE.search(text)
    if line:
        return Draft(title=line.group(1).strip(), content=text[line.end():].strip() or fallback_content)

    lines = text.splitlines()
    if not lines:
        return Draft(title=fallback_title, content=fallback_content)
    title = re.sub(r"^#+\s*", "", lines[0]).strip() or fallback_title
    content = "\n".join(lines[1:]).strip() or fallback_content
    return Draft(title=title, content=content)


def _client_field(client: Any, attr: str) -> str:
    value = client.get(attr) if isinstance(client, dict) else getattr(client, attr, None)
    return (str(value).strip() if value is not None else "") or ""


class RewriteGateway:
    """Opaque text transform: (title, content) in, (title, content) out."""

    async def complete(self, prompt: str) -> str:
        raise NotImplementedError

    async def rewrite(self, title: str, content: str, revision_request: Optional[str] = None) -> Draft:
        if revision_request:
            prompt = (
                f"{REVISION_PROMPT}\n\n---\n광고주 수정 요청 내용\n{revision_request}\n\n"
                f"---\n현재 원고\n\n제목: {title}\n\n본문:\n{content}\n---"
            )
        else:
            prompt = f"{REWRITE_PROMPT}\n\n---\n원본 제목: {title}\n\n원본 본문:\n{content}\n---"
        raw = await self.complete(prompt)
        return parse_draft(raw, fallback_title=title, fallback_content=content)

    async def generate(self, client: Any, topic: str) -> Draft:
        region = _client_field(client, "region")
        business_type = _client_field(client, "business_type")
        prompt = GENERATE_PROMPT.format(
            name=_client_field(client, "name"),
            region=region,
            business_type=business_type,
            main_service=_client_field(client, "main_service") or "없음",
            differentiator=_client_field(client, "differentiator") or "없음",
            topic=topic,
            keyword=f"{region} {business_type}".strip(),
        )
        raw = await self.complete(prompt)
        draft = parse_draft(raw)
        if not draft.title or not draft.content:
            raise UpstreamFailure("원고 생성에 실패했습니다.")
        return draft


class OllamaRewriter(RewriteGateway):
    def __init__(self, base_url: str, model: str, *, timeout: float = 120.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport

    async def complete(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.4},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(f"{self.base_url}/api/generate", json=payload)
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("rewrite: ollama request failed: %s", e)
            raise UpstreamFailure(f"Rewrite request failed: {e}") from e

        out = (data or {}).get("response", "")
        if not out:
            raise UpstreamFailure("Empty response from rewrite model.")
        return out


def build_rewriter(cfg: Settings | None = None) -> RewriteGateway:
    cfg = cfg or default_settings
    return OllamaRewriter(cfg.OLLAMA_BASE_URL, cfg.OLLAMA_MODEL, timeout=cfg.LLM_TIMEOUT_SEC)
