"""
Content Operations Dashboard
Story clustering and topic-proposal generation providers.

Provider-agnostic interface with:
    - Anthropic Claude provider (JSON-only prompts)
    - Local stub provider: deterministic, no API key, used in testing

Contract (both providers):
    cluster_stories(stories, audience) → [
        {theme, keywords[], story_ids[], relevance_score, audience_relevance}
    ]
    generate_proposal(cluster, stories, audience, duration_type,
                      duration_seconds, comparison_regions) → {
        title, hook, audience_care_statement, talking_points[],
        research_suggestions[]
    }

Provider output is untrusted: scores, partitions and story ids are
normalised by app.services.duplicate_detector before use.

Usage:
    from app.ai.clustering import get_topic_provider
    provider = get_topic_provider()
    clusters = provider.cluster_stories(stories, audience)
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from collections import Counter

import anthropic
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)


DURATION_CONFIG = {
    "short":    {"min_seconds": 60, "max_seconds": 120, "default_seconds": 90},
    "standard": {"min_seconds": 180, "max_seconds": 240, "default_seconds": 210},
    "long":     {"min_seconds": 300, "max_seconds": 600, "default_seconds": 450},
    "custom":   {"min_seconds": 60, "max_seconds": 900, "default_seconds": 180},
}

TONE_INSTRUCTIONS = {
    "investigative": "Create a title that CHALLENGES the mainstream narrative.",
    "educational": "Create a title that EXPLAINS and TEACHES.",
    "provocative": "Create a BOLD, attention-grabbing title.",
    "conversational": "Create a RELATABLE title in question format.",
    "balanced": "Create a NEUTRAL, factual title that presents the topic objectively.",
}

CLUSTERING_SYSTEM_PROMPT = (
    "You are a news analyst that identifies thematic connections between news "
    "stories to create compelling video content topics. Group related stories by "
    "underlying themes, weigh the target audience's values, fears and interests "
    "when scoring relevance, and return ONLY valid JSON."
)

PROPOSAL_SYSTEM_PROMPT = (
    "You are a content strategist creating topic proposals for short explainer "
    "videos. Write titles that spark curiosity, hooks that connect to the "
    "audience's concerns, and self-contained talking points that fit the "
    "requested duration. Return ONLY valid JSON."
)


class ProviderResponseError(Exception):
    """Raised when a provider reply cannot be parsed into the expected shape."""


def resolve_duration_seconds(duration_type: str, duration_seconds: int | None = None) -> int:
    """Default length for a duration type; explicit seconds are clamped to its range."""
    cfg = DURATION_CONFIG.get(duration_type, DURATION_CONFIG["standard"])
    if duration_seconds is None:
        return cfg["default_seconds"]
    return max(cfg["min_seconds"], min(cfg["max_seconds"], int(duration_seconds)))


def build_audience_context(audience: dict) -> str:
    sections = [f"TARGET AUDIENCE: {audience.get('name', 'General audience')}"]
    if audience.get("description"):
        sections.append(f"Description: {audience['description']}")
    if audience.get("market_region"):
        sections.append(f"Market: {audience['market_region']}")
    if audience.get("values"):
        sections.append(f"VALUES (frame topics around these): {', '.join(audience['values'])}")
    if audience.get("fears"):
        sections.append(f"FEARS (address these concerns): {', '.join(audience['fears'])}")
    if audience.get("interests"):
        sections.append(f"INTERESTS: {', '.join(audience['interests'])}")
    prefs = []
    if audience.get("preferred_tone"):
        prefs.append(f"Tone: {audience['preferred_tone']}")
    if audience.get("depth_preference"):
        prefs.append(f"Depth: {audience['depth_preference']}")
    if prefs:
        sections.append(f"Content Preferences: {', '.join(prefs)}")
    return "\n".join(sections)


def extract_json(text: str) -> dict:
    """Parse a JSON reply, tolerating a surrounding markdown code fence."""
    cleaned = text.strip()
    fence = re.match(r"^```(?:json)?\s*(.*?)\s*```$", cleaned, re.DOTALL)
    if fence:
        cleaned = fence.group(1)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ProviderResponseError(f"Provider returned invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ProviderResponseError("Provider returned a non-object JSON payload")
    return parsed


# ── Provider Abstract Base ────────────────────────────────────────────────────

class TopicAIProvider(ABC):
    """Abstract interface for clustering / proposal providers."""

    name = "abstract"

    @abstractmethod
    def cluster_stories(self, stories: list[dict], audience: dict) -> list[dict]:
        """Group stories into scored thematic clusters."""
        ...

    @abstractmethod
    def generate_proposal(
        self,
        cluster: dict,
        stories: list[dict],
        audience: dict,
        duration_type: str,
        duration_seconds: int,
        comparison_regions: list[str],
    ) -> dict:
        """Draft one topic proposal from a cluster."""
        ...


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicTopicProvider(TopicAIProvider):
    """Claude API (Anthropic) provider."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str = "claude-3-5-haiku-latest", client=None):
        self.model = model
        self._api_key = api_key
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = anthropic.Anthropic(api_key=self._api_key)
        return self._client

    def _complete(self, system: str, prompt: str, max_tokens: int) -> dict:
        response = self._get_client().messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        block = response.content[0]
        if getattr(block, "type", "text") != "text":
            raise ProviderResponseError("Unexpected response block type from Claude")
        logger.debug(
            "Claude call model=%s in=%s out=%s",
            self.model, response.usage.input_tokens, response.usage.output_tokens,
        )
        return extract_json(block.text)

    def cluster_stories(self, stories: list[dict], audience: dict) -> list[dict]:
        if not stories:
            return []
        story_lines = "\n".join(
            f"- ID: {s['id']} | {s['title']} | category={s.get('category') or 'general'}"
            f" | source={s.get('source') or 'unknown'}\n  {(s.get('summary') or '')[:500]}"
            for s in stories
        )
        prompt = (
            f"{build_audience_context(audience)}\n\n"
            f"STORIES TO CLUSTER:\n{story_lines}\n\n"
            "Group these stories into 1-5 thematic clusters. Each story may appear "
            "in at most one cluster. Return JSON:\n"
            '{"clusters": [{"theme": "...", "keywords": ["..."], "story_ids": [1, 2], '
            '"relevance_score": 85, "audience_relevance": "..."}]}\n'
            "relevance_score is 0-100 based on timeliness, audience fit and "
            "cross-story connections."
        )
        payload = self._complete(CLUSTERING_SYSTEM_PROMPT, prompt, max_tokens=2000)
        clusters = payload.get("clusters") or []
        if not isinstance(clusters, list):
            raise ProviderResponseError("'clusters' must be a list")
        return clusters

    def generate_proposal(self, cluster, stories, audience, duration_type,
                          duration_seconds, comparison_regions) -> dict:
        tone = TONE_INSTRUCTIONS.get(audience.get("preferred_tone") or "balanced",
                                     TONE_INSTRUCTIONS["balanced"])
        story_block = "\n---\n".join(
            f"Title: {s['title']}\nSource: {s.get('source') or 'unknown'}\n"
            f"Summary: {(s.get('summary') or '')[:800]}"
            for s in stories
        )
        prompt = (
            f"{build_audience_context(audience)}\n\n"
            f"CLUSTER THEME: {cluster['theme']}\n"
            f"KEYWORDS: {', '.join(cluster.get('keywords') or [])}\n\n"
            f"SOURCE STORIES:\n{story_block}\n\n"
            f"VIDEO: {duration_seconds} seconds ({duration_type}); comparison regions: "
            f"{', '.join(comparison_regions) or 'None specified'}\n"
            f"TITLE INSTRUCTIONS: {tone}\n\n"
            "Return JSON: {\"title\": \"...\", \"hook\": \"...\", "
            "\"audience_care_statement\": \"...\", \"talking_points\": [{\"point\": \"...\", "
            "\"supporting_detail\": \"...\", \"duration_estimate_seconds\": 60}], "
            "\"research_suggestions\": [{\"query\": \"...\", \"type\": \"statistic\", "
            "\"reason\": \"...\"}]}"
        )
        payload = self._complete(PROPOSAL_SYSTEM_PROMPT, prompt, max_tokens=3000)
        if not payload.get("title"):
            raise ProviderResponseError("Proposal payload is missing a title")
        return payload


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

_STOPWORDS = frozenset(
    "a an the and or of to in on for with at by from is are was were be as its it "
    "this that after over new says amid into".split()
)


class LocalStubTopicProvider(TopicAIProvider):
    """
    Deterministic provider for dev/testing. No API key required.

    Clusters by story category (largest group first); proposals are
    templated from the cluster theme and story titles.
    """

    name = "local"

    @staticmethod
    def _keywords(titles: list[str], limit: int = 3) -> list[str]:
        words = Counter()
        for title in titles:
            for word in re.findall(r"[a-zA-Z]{3,}", title.lower()):
                if word not in _STOPWORDS:
                    words[word] += 1
        return [w for w, _ in sorted(words.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]]

    def cluster_stories(self, stories: list[dict], audience: dict) -> list[dict]:
        groups: dict[str, list[dict]] = {}
        for story in stories:
            groups.setdefault(story.get("category") or "general", []).append(story)

        clusters = []
        for category, members in groups.items():
            titles = [s["title"] for s in members]
            clusters.append({
                "theme": f"{category.replace('_', ' ').title()} Developments",
                "keywords": self._keywords(titles),
                "story_ids": [s["id"] for s in members],
                "relevance_score": min(100, 40 + 15 * len(members)),
                "audience_relevance": (
                    f"{len(members)} related {category} stories for {audience.get('name', 'this audience')}"
                ),
            })
        clusters.sort(key=lambda c: (-c["relevance_score"], c["theme"]))
        return clusters

    def generate_proposal(self, cluster, stories, audience, duration_type,
                          duration_seconds, comparison_regions) -> dict:
        per_point = max(1, duration_seconds // max(1, len(stories)))
        return {
            "title": f"Understanding {cluster['theme']}",
            "hook": f"{len(stories)} stories point to the same shift: {cluster['theme'].lower()}.",
            "audience_care_statement": (
                f"{audience.get('name', 'Viewers')} should care because this touches "
                f"{', '.join(cluster.get('keywords') or []) or 'their daily lives'}."
            ),
            "talking_points": [
                {
                    "point": s["title"],
                    "supporting_detail": s.get("summary") or "",
                    "duration_estimate_seconds": per_point,
                }
                for s in stories
            ],
            "research_suggestions": [
                {"query": f"{kw} statistics", "type": "statistic",
                 "reason": f"Quantify {kw} for the audience"}
                for kw in (cluster.get("keywords") or [])[:2]
            ],
        }


# ── Factory ───────────────────────────────────────────────────────────────────

def get_topic_provider() -> TopicAIProvider:
    """Provider selected by AI_PROVIDER; local stub when no API key is configured."""
    cfg = current_app.config if has_app_context() else {}
    provider_name = cfg.get("AI_PROVIDER", "local")
    api_key = cfg.get("ANTHROPIC_API_KEY")
    if provider_name == "anthropic" and api_key:
        return AnthropicTopicProvider(api_key=api_key, model=cfg.get("CLUSTER_MODEL", "claude-3-5-haiku-latest"))
    if provider_name == "anthropic":
        logger.warning("AI_PROVIDER=anthropic but ANTHROPIC_API_KEY is not set; using local stub")
    return LocalStubTopicProvider()
