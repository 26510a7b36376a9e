"""
LLM Service for the campaign assistant

Answers questions about the account's campaigns with Claude, and falls back
to a rule-based summary when the API is not configured or fails.
"""
from typing import Dict, Iterator, List, Optional

from anthropic import Anthropic, APIError

from adpilot.config import get_settings
from adpilot.utils.logger import log

settings = get_settings()

BASE_PROMPT = """You are an expert Google Ads assistant. Help users optimize campaigns, analyze performance, and take quick actions.

Be concise and actionable. Focus on:
- Identifying optimization opportunities
- Suggesting specific actions (pause, enable, adjust budgets)
- Providing data-driven recommendations"""

HIGH_SPEND_THRESHOLD = 100


def build_campaign_context(campaigns: Optional[List[Dict]]) -> str:
    """System prompt with account totals and one line per campaign"""
    prompt = BASE_PROMPT
    if not campaigns:
        return prompt

    total_spend = sum(float(c.get("spend") or 0) for c in campaigns)
    total_conversions = sum(float(c.get("conversions") or 0) for c in campaigns)

    lines = [
        f"## Current Campaigns ({len(campaigns)} total)",
        f"Total Spend: ${total_spend:.2f} | Total Conversions: {total_conversions:g}",
        "",
    ]
    for c in campaigns:
        state = "[active]" if c.get("status") == "ENABLED" else "[paused]"
        lines.append(
            f"{state} **{c.get('name', 'Unnamed')}**: ${float(c.get('spend') or 0):.2f} spend, "
            f"{float(c.get('conversions') or 0):g} conv, {float(c.get('ctr') or 0):.2f}% CTR, "
            f"${float(c.get('cpa') or 0):.2f} CPA"
        )
    return f"{prompt}\n\n" + "\n".join(lines)


def fallback_response(messages: List[Dict], campaigns: Optional[List[Dict]] = None) -> str:
    """Deterministic answer keyed on the topic of the last user message"""
    last = (messages[-1].get("content") or "") if messages else ""
    question = last.lower()

    if any(word in question for word in ("spend", "conversion", "campaign")):
        parts = ["Based on your query about campaigns, here's what I found:", "", "**Campaign Performance Overview:**", ""]
        if campaigns:
            high_spend = [c for c in campaigns if float(c.get("spend") or 0) > HIGH_SPEND_THRESHOLD]
            no_conversions = [
                c for c in campaigns
                if not float(c.get("conversions") or 0) and float(c.get("spend") or 0) > 0
            ]
            if high_spend:
                parts.append("**High Spend Campaigns:**")
                parts += [
                    f"- {c.get('name')}: ${float(c.get('spend') or 0):.0f} spent, "
                    f"{float(c.get('conversions') or 0):g} conversions"
                    for c in high_spend[:3]
                ]
                parts.append("")
            if no_conversions:
                parts.append("**Campaigns with spend but no conversions:**")
                parts += [f"- {c.get('name')}: ${float(c.get('spend') or 0):.0f} wasted" for c in no_conversions[:3]]
            if not high_spend and not no_conversions:
                parts.append("No campaigns stand out on spend or wasted budget in this period.")
        else:
            parts.append("To see your campaign data, make sure your Google Ads account is connected.")
        return "\n".join(parts)

    if "keyword" in question or "wast" in question:
        return (
            "**Keyword Analysis:**\n\nTo identify wasting keywords, I recommend:\n\n"
            "1. **Check Search Terms Report** - Find irrelevant queries\n"
            "2. **Add Negative Keywords** - Block wasteful traffic\n"
            "3. **Review low Quality Score keywords** - Improve relevance or pause them\n\n"
            "*Would you like me to analyze your search terms for potential negative keywords?*"
        )

    if "optimize" in question or "improve" in question:
        return (
            "**Quick Optimization Actions:**\n\n"
            "1. **Pause Low Performers** - Campaigns with high spend, low conversions\n"
            "2. **Scale Winners** - Increase budget on converting campaigns\n"
            "3. **Refine Keywords** - Add negatives to reduce waste\n"
            "4. **Improve Ads** - A/B test new headlines\n\n"
            "*Which area would you like to focus on?*"
        )

    if any(word in question.split() for word in ("hello", "hi", "hey")):
        return (
            "Hello! I'm your Google Ads assistant.\n\nI can help you with:\n"
            "- **Campaign Analysis** - \"Show me campaigns with high spend\"\n"
            "- **Keyword Research** - \"What keywords are wasting budget?\"\n"
            "- **Optimization** - \"How can I improve my ROAS?\"\n"
            "- **Reporting** - \"Give me a performance summary\"\n\n"
            "What would you like to explore?"
        )

    return (
        f"I understand you're asking about: \"{last}\"\n\n"
        "I can help analyze:\n\n"
        "- **Campaigns** - Spend, conversions, CPA and ROAS\n"
        "- **Keywords** - Quality Score, waste and new opportunities\n"
        "- **Budgets** - Where to scale and where to cut\n\n"
        "What specific data would you like to explore?"
    )


class LLMService:
    """
    Chat with Claude over the current campaign context
    """

    def __init__(self):
        self.enabled = bool(settings.enable_llm_insights and settings.anthropic_api_key)
        self.client = None

        if self.enabled:
            self.client = Anthropic(api_key=settings.anthropic_api_key)
            log.info("LLM Service initialized with Claude")
        else:
            log.info("LLM assistant disabled (no API key or feature disabled)")

    def is_available(self) -> bool:
        return bool(self.enabled and self.client)

    @staticmethod
    def _messages(messages: List[Dict]) -> List[Dict]:
        return [
            {"role": m.get("role", "user"), "content": m.get("content", "")}
            for m in messages
            if m.get("content")
        ]

    def chat(self, messages: List[Dict], campaigns: Optional[List[Dict]] = None) -> Optional[str]:
        """Full reply text, or None when unavailable or the call failed"""
        if not self.is_available():
            return None

        try:
            response = self.client.messages.create(
                model=settings.llm_model,
                max_tokens=settings.llm_max_tokens,
                system=build_campaign_context(campaigns),
                messages=self._messages(messages),
            )
            text = response.content[0].text
            log.info(f"Generated assistant reply ({len(text)} chars)")
            return text

        except APIError as e:
            log.error(f"Error generating assistant reply: {str(e)}")
            return None

    def stream_chat(self, messages: List[Dict], campaigns: Optional[List[Dict]] = None) -> Iterator[str]:
        """
        Yield text deltas. Falls back to the rule-based answer, split into
        words, when the API is unavailable or fails before producing text.
        """
        produced = False
        if self.is_available():
            try:
                with self.client.messages.stream(
                    model=settings.llm_model,
                    max_tokens=settings.llm_max_tokens,
                    system=build_campaign_context(campaigns),
                    messages=self._messages(messages),
                ) as stream:
                    for text in stream.text_stream:
                        produced = True
                        yield text
                return
            except APIError as e:
                log.warning(f"Streaming reply failed, using fallback: {str(e)}")
                if produced:
                    return

        words = fallback_response(messages, campaigns).split(" ")
        for i, word in enumerate(words):
            yield word if i == len(words) - 1 else f"{word} "
