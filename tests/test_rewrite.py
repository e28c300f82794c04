import httpx
import pytest

from manuscript_desk.errors import UpstreamFailure
from manuscript_desk.services.rewrite import OllamaRewriter, parse_draft


def test_parse_sectioned_output():
    draft = parse_draft("[제목]\n강남 수학학원 특강\n\n[본문]\n### 소제목\n본문 내용")
    assert draft.title == "강남 수학학원 특강"
    assert draft.content == "### 소제목\n본문 내용"


def test_parse_code_fenced_and_title_line():
    fenced = parse_draft("```markdown\n[제목]\nT\n[본문]\nC\n```")
    assert (fenced.title, fenced.content) == ("T", "C")

    line = parse_draft("제목: 봄맞이 이벤트\n\n본문 첫 줄")
    assert (line.title, line.content) == ("봄맞이 이벤트", "본문 첫 줄")


def test_parse_falls_back_to_first_line_and_originals():
    draft = parse_draft("# 제목 한 줄\n나머지 본문")
    assert (draft.title, draft.content) == ("제목 한 줄", "나머지 본문")

    empty = parse_draft("", fallback_title="원래 제목", fallback_content="원래 본문")
    assert (empty.title, empty.content) == ("원래 제목", "원래 본문")


async def test_revision_prompt_carries_the_request(rewriter):
    draft = await rewriter.rewrite("원래 제목", "원래 본문", revision_request="가격 정보를 빼주세요")

    assert (draft.title, draft.content) == ("새 제목", "새 본문")
    assert "가격 정보를 빼주세요" in rewriter.prompts[0]
    assert "원래 본문" in rewriter.prompts[0]


async def test_generate_uses_region_and_business_keyword(rewriter):
    client = {"name": "ABC Academy", "region": "강남", "business_type": "수학학원"}

    await rewriter.generate(client, "겨울방학 특강")

    prompt = rewriter.prompts[0]
    assert '키워드 "강남 수학학원"' in prompt
    assert "대표서비스: 없음" in prompt


async def test_generate_rejects_unusable_output(rewriter):
    rewriter.reply = ""
    with pytest.raises(UpstreamFailure):
        await rewriter.generate({"name": "A", "region": "B", "business_type": "C"}, "topic")


async def test_ollama_client():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"response": "[제목]\nT\n[본문]\nC"})

    rewriter = OllamaRewriter("http://ollama.test/", "llama3.1:8b", transport=httpx.MockTransport(handler))
    draft = await rewriter.rewrite("t", "c")

    assert seen["url"] == "http://ollama.test/api/generate"
    assert (draft.title, draft.content) == ("T", "C")


async def test_ollama_errors_become_upstream_failures():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "model loading"})

    rewriter = OllamaRewriter("http://ollama.test", "m", transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamFailure):
        await rewriter.rewrite("t", "c")
