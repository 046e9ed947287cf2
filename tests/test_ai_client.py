import httpx
import pytest
from conftest import REVIEW_REPLY, ai_client_replying

from codegate.ai_client import AIReviewEngine, extract_json_payload, parse_conflict_analysis, parse_review
from codegate.config import AIConfig
from codegate.errors import ParseError
from codegate.models.conflict import ConflictFile
from codegate.models.pull_request import ChangedFile, PullRequestRef
from codegate.models.review import CATEGORY_NAMES, DEFAULT_SCORE
from codegate.prompts import build_review_prompt
from codegate.providers import PROVIDERS, ProviderResponse
from codegate.tickets import TicketContext

PR = PullRequestRef(number=7, title="Add calculator", author="alice", state="open", head_ref="feature", base_ref="main", additions=12, deletions=2, changed_files=1)
FILES = [ChangedFile("src/Calculator.java", "modified", patch="+public class Calculator {}")]


def _config(**overrides) -> AIConfig:
    return AIConfig(api_key="sk-test", **overrides)


@pytest.mark.parametrize(
    "reply",
    [
        "I could not review this pull request, sorry.",
        "```json\n{not valid json\n```",
        "[1, 2, 3]",
        "",
    ],
)
def test_malformed_reply_yields_default_scores(reply):
    result = parse_review(reply, "openai:gpt-4o-mini")

    assert result.overall_score == 70
    assert set(result.categories) == set(CATEGORY_NAMES)
    assert all(score == 70 for score in result.categories.values())
    assert result.is_fallback is True
    assert result.summary == reply[:500]


def test_fallback_summary_is_truncated():
    result = parse_review("x" * 2000, "m")
    assert len(result.summary) == 500


def test_fenced_block_is_preferred():
    result = parse_review(REVIEW_REPLY, "openai:gpt-4o-mini")

    assert result.is_fallback is False
    assert result.overall_score == 78
    assert result.categories["code_quality"] == 80
    assert result.categories["testability"] == 60
    assert result.suggestions[0].line == 2
    assert result.suggestions[0].remediation == "Use Math.addExact"
    assert result.recommendation == "COMMENT"


def test_raw_json_and_clamped_scores():
    result = parse_review('{"summary": "ok", "overallScore": 140, "categories": {"security": -5}}', "m")

    assert result.overall_score == 100
    assert result.categories["security"] == 0
    assert result.categories["performance"] == 70


def test_reply_without_overall_score_is_marked_fallback():
    result = parse_review('{"summary": "short"}', "m")
    assert result.summary == "short"
    assert result.is_fallback is True


def test_extract_json_payload_from_surrounding_prose():
    assert extract_json_payload('Sure! {"title": "feat: calc"} Hope that helps.') == {"title": "feat: calc"}
    with pytest.raises(ParseError):
        extract_json_payload("no json here")


def test_conflict_analysis_never_auto_resolves_logic():
    raw = '{"hasBusinessLogic": false, "conflictType": "logic", "recommendation": "ai_assisted", "canAutoResolve": true, "resolvedContent": "x"}'
    analysis = parse_conflict_analysis(raw, "a.py")

    assert analysis.has_business_logic is True
    assert analysis.can_auto_resolve is False
    assert analysis.resolved_content is None


def test_conflict_analysis_keeps_resolved_content_for_imports():
    raw = '{"hasBusinessLogic": false, "conflictType": "imports", "recommendation": "ai_assisted", "canAutoResolve": true, "resolvedContent": "import a\\nimport b"}'
    analysis = parse_conflict_analysis(raw, "a.py")

    assert analysis.can_auto_resolve is True
    assert analysis.resolved_content == "import a\nimport b"


@pytest.mark.parametrize(
    "provider, payload",
    [
        ("openai", {"choices": [{"message": {"content": "hello"}}]}),
        ("groq", {"choices": [{"message": {"content": "hello"}}]}),
        ("anthropic", {"content": [{"type": "text", "text": "hel"}, {"type": "text", "text": "lo"}]}),
        ("google", {"candidates": [{"content": {"parts": [{"text": "hello"}]}}]}),
    ],
)
def test_provider_envelopes_normalize_to_text(provider, payload):
    strategy = PROVIDERS[provider]
    assert strategy.extract_text(ProviderResponse(provider=provider, payload=payload)) == "hello"


def test_provider_auth_conventions():
    config = _config(model="some-model")

    openai = PROVIDERS["openai"].build_request(config, "p")
    anthropic = PROVIDERS["anthropic"].build_request(config, "p")
    google = PROVIDERS["google"].build_request(config, "p")

    assert openai.headers["Authorization"] == "Bearer sk-test"
    assert anthropic.headers["x-api-key"] == "sk-test"
    assert "Authorization" not in anthropic.headers
    assert google.params == {"key": "sk-test"}
    assert google.url.endswith("/some-model:generateContent")


@pytest.mark.asyncio
async def test_review_dispatches_to_configured_provider():
    calls = []
    engine = AIReviewEngine(_config(provider="groq"), client=ai_client_replying(REVIEW_REPLY, calls))

    result = await engine.review(PR, FILES, "review")

    assert result.overall_score == 78
    assert result.model == "groq:gpt-4o-mini"
    assert str(calls[0].url) == "https://api.groq.com/openai/v1/chat/completions"


@pytest.mark.asyncio
async def test_ticket_text_is_part_of_the_prompt():
    calls = []
    engine = AIReviewEngine(_config(), client=ai_client_replying(REVIEW_REPLY, calls))
    ticket = TicketContext(key="DEMO-12", summary="Calculator", acceptance_criteria="Adds two numbers")

    await engine.review(PR, FILES, "summary", ticket)

    assert b"DEMO-12" in calls[0].content
    assert b"Adds two numbers" in calls[0].content


@pytest.mark.asyncio
async def test_missing_api_key_is_a_soft_no_op():
    calls = []
    engine = AIReviewEngine(AIConfig(), client=ai_client_replying(REVIEW_REPLY, calls))

    assert await engine.review(PR, FILES) is None
    assert calls == []


@pytest.mark.asyncio
async def test_provider_failure_returns_none():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(429, json={"error": {"message": "Rate limit reached"}})))
    engine = AIReviewEngine(_config(), client=client)

    assert await engine.review(PR, FILES) is None
    assert await engine.analyze_conflict(ConflictFile("a.py", False, "+import os")) is None


@pytest.mark.asyncio
async def test_business_logic_validation_maps_requirements():
    reply = '{"alignmentScore": 85, "summary": "Mostly done", "requirements": [{"requirement": "Add numbers", "status": "implemented"}, {"requirement": "Divide", "status": "Partially Implemented"}, {"requirement": "Docs", "status": "bogus"}]}'
    engine = AIReviewEngine(_config(), client=ai_client_replying(reply))
    ticket = TicketContext(key="DEMO-12", summary="Calculator")

    validation = await engine.validate_business_logic(PR, FILES, ticket)

    assert validation.alignment_score == 85
    assert [m.status for m in validation.mappings] == ["implemented", "partially_implemented", "missing"]
    assert len(validation.by_status("missing")) == 1


def test_unknown_review_command_is_rejected():
    with pytest.raises(ValueError):
        build_review_prompt(PR, FILES, "poem")


@pytest.mark.parametrize(
    "provider, payload",
    [
        ("openai", {"choices": [{"message": "not-a-dict"}]}),
        ("openai", {"choices": "nope"}),
        ("anthropic", {"content": "plain text"}),
        ("anthropic", {"content": [{"type": "text", "text": 5}]}),
        ("google", {"candidates": [{"content": ["part"]}]}),
        ("google", {"candidates": [{"content": {"parts": {"text": "x"}}}]}),
    ],
)
def test_malformed_envelopes_normalize_to_empty_text(provider, payload):
    strategy = PROVIDERS[provider]
    assert strategy.extract_text(ProviderResponse(provider=provider, payload=payload)) == ""


@pytest.mark.asyncio
async def test_malformed_envelope_yields_default_review():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": [{"message": "not-a-dict"}]}))
    )
    engine = AIReviewEngine(_config(), client=client)

    review = await engine.review(PR, FILES)

    assert review.is_fallback
    assert review.overall_score == DEFAULT_SCORE
