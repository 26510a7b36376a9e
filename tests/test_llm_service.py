"""
AI assistant tests.

Guards against:
1. The assistant erroring when no Anthropic key is configured
2. Streaming returning nothing when Claude fails before the first token
3. The fallback ignoring the campaigns it was given
"""
from types import SimpleNamespace

import httpx
from anthropic import APIError

from adpilot.services.llm_service import LLMService, build_campaign_context, fallback_response

CAMPAIGNS = [
    {"name": "Brand", "status": "ENABLED", "spend": 250, "conversions": 12, "ctr": 6.5, "cpa": 20.83},
    {"name": "Generic", "status": "PAUSED", "spend": 80, "conversions": 0, "ctr": 1.1, "cpa": 0},
]


def _ask(text):
    return [{"role": "user", "content": text}]


def _api_error():
    return APIError("overloaded", httpx.Request("POST", "https://api.anthropic.com/v1/messages"), body=None)


class FakeStream:
    def __init__(self, chunks, fail=False):
        self.chunks = chunks
        self.fail = fail

    def __enter__(self):
        if self.fail:
            raise _api_error()
        return self

    def __exit__(self, *args):
        return False

    @property
    def text_stream(self):
        return iter(self.chunks)


class FakeMessages:
    def __init__(self, reply="Pause Generic.", fail=False):
        self.reply = reply
        self.fail = fail
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.fail:
            raise _api_error()
        return SimpleNamespace(content=[SimpleNamespace(text=self.reply)])

    def stream(self, **kwargs):
        self.requests.append(kwargs)
        return FakeStream(["Pause ", "Generic."], fail=self.fail)


def _service(messages):
    service = LLMService()
    service.enabled = True
    service.client = SimpleNamespace(messages=messages)
    return service


# ---------------------------------------------------------------------------
# Context and fallback
# ---------------------------------------------------------------------------

def test_campaign_context_lists_totals_and_campaigns():
    context = build_campaign_context(CAMPAIGNS)
    assert "## Current Campaigns (2 total)" in context
    assert "Total Spend: $330.00 | Total Conversions: 12" in context
    assert "[active] **Brand**: $250.00 spend, 12 conv, 6.50% CTR, $20.83 CPA" in context
    assert "[paused] **Generic**" in context
    assert "## Current Campaigns" not in build_campaign_context(None)


def test_fallback_campaign_answer_uses_data():
    answer = fallback_response(_ask("Which campaign has the highest spend?"), CAMPAIGNS)
    assert "- Brand: $250 spent, 12 conversions" in answer
    assert "- Generic: $80 wasted" in answer

    answer = fallback_response(_ask("campaign overview"), None)
    assert "make sure your Google Ads account is connected" in answer


def test_fallback_topics():
    assert fallback_response(_ask("Which keywords are wasting money?")).startswith("**Keyword Analysis:**")
    assert fallback_response(_ask("How do I improve ROAS?")).startswith("**Quick Optimization Actions:**")
    assert fallback_response(_ask("hi there")).startswith("Hello!")
    assert fallback_response(_ask("this is fine")).startswith('I understand you\'re asking about: "this is fine"')
    assert fallback_response([]).startswith('I understand you\'re asking about: ""')


# ---------------------------------------------------------------------------
# Claude calls
# ---------------------------------------------------------------------------

def test_unconfigured_service_is_unavailable():
    service = LLMService()
    assert service.is_available() is False
    assert service.chat(_ask("hi")) is None

    streamed = "".join(service.stream_chat(_ask("hi"), CAMPAIGNS))
    assert streamed == fallback_response(_ask("hi"), CAMPAIGNS)


def test_chat_sends_context_and_skips_empty_messages():
    messages = FakeMessages()
    reply = _service(messages).chat(
        [{"role": "user", "content": "Which campaign?"}, {"role": "assistant", "content": ""}], CAMPAIGNS,
    )
    assert reply == "Pause Generic."
    request = messages.requests[0]
    assert request["messages"] == [{"role": "user", "content": "Which campaign?"}]
    assert "## Current Campaigns (2 total)" in request["system"]


def test_chat_api_error_returns_none():
    assert _service(FakeMessages(fail=True)).chat(_ask("hi")) is None


def test_stream_chat_yields_deltas():
    assert list(_service(FakeMessages()).stream_chat(_ask("hi"))) == ["Pause ", "Generic."]


def test_stream_chat_falls_back_when_claude_fails():
    streamed = "".join(_service(FakeMessages(fail=True)).stream_chat(_ask("optimize please")))
    assert streamed.startswith("**Quick Optimization Actions:**")
