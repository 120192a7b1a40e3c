"""Cross-domain synthesis: themes that recur across different coaching domains."""

import json

import structlog

from cli.retry import llm_retry
from llm.base import LLMRateLimitError

from .cache import PatternCache
from .detector import PatternDetector, ThemeCluster
from .models import CrossDomainPattern, DomainEvidence

logger = structlog.get_logger()

_SYNTHESIS_SYSTEM = """You are a pattern analysis assistant for a coaching application.
You are given themes that showed up for the SAME user across DIFFERENT coaching domains,
with a short piece of evidence from each domain.

For each theme write one coaching-ready synthesis sentence that connects the dots.
Frame it with curiosity, not diagnosis. Speak to the user as "you".

Respond with ONLY valid JSON, no other text:
{"syntheses": [{"theme": "<theme exactly as given>", "synthesis": "<one sentence>"}]}"""

_FALLBACK_TEMPLATE = (
    "I've noticed {theme} coming up in your {domains} conversations. "
    "Could there be a connection worth exploring?"
)


def _join_domains(domains: list[str]) -> str:
    if len(domains) <= 2:
        return " and ".join(domains)
    return ", ".join(domains[:-1]) + f", and {domains[-1]}"


class CrossDomainSynthesizer:
    """Finds high-confidence multi-domain clusters and phrases them for the coach."""

    def __init__(
        self,
        detector: PatternDetector,
        cache: PatternCache,
        provider=None,
        min_domains: int = 2,
        confidence_threshold: float = 0.85,
        max_per_session: int = 1,
        min_sessions_between: int = 3,
        use_llm: bool = True,
    ):
        self.detector = detector
        self.cache = cache
        self._provider = provider
        self.min_domains = min_domains
        self.confidence_threshold = confidence_threshold
        self.max_per_session = max_per_session
        self.min_sessions_between = min_sessions_between
        self.use_llm = use_llm

    def _get_provider(self):
        if self._provider:
            return self._provider
        from llm.factory import create_cheap_provider

        self._provider = create_cheap_provider()
        return self._provider

    def find_candidates(self, clusters: list[ThemeCluster]) -> list[CrossDomainPattern]:
        candidates = []
        for cluster in clusters:
            if len(cluster.domains) < self.min_domains:
                continue
            confidence = self.detector.cluster_confidence(cluster)
            if confidence < self.confidence_threshold:
                continue
            evidence = []
            for domain in cluster.domains:
                first = next(o for o in cluster.observations if o.domain == domain)
                evidence.append(DomainEvidence(domain=domain, summary=first.theme))
            candidates.append(
                CrossDomainPattern(
                    theme=cluster.theme,
                    domains=cluster.domains,
                    confidence=confidence,
                    evidence=evidence,
                )
            )
        return sorted(candidates, key=lambda p: p.confidence, reverse=True)

    def synthesize(self, user_id: str, clusters: list[ThemeCluster]) -> list[CrossDomainPattern]:
        """Cache-first detection of cross-domain patterns with synthesis text."""
        cached = self.cache.get_syntheses(user_id)
        if cached is not None:
            return cached

        patterns = self.find_candidates(clusters)
        if not patterns:
            return []

        written = self._write_syntheses(patterns) if self.use_llm else {}
        for p in patterns:
            p.synthesis = written.get(p.theme) or _FALLBACK_TEMPLATE.format(
                theme=p.theme, domains=_join_domains(p.domains)
            )

        self.cache.set_syntheses(user_id, patterns)
        logger.info("patterns.synthesized", user_id=user_id, count=len(patterns))
        return patterns

    def _write_syntheses(self, patterns: list[CrossDomainPattern]) -> dict[str, str]:
        lines = []
        for p in patterns:
            lines.append(f"Theme: {p.theme}")
            lines.extend(f"  [{e.domain}] {e.summary}" for e in p.evidence)
        try:
            response = self._generate("\n".join(lines))
        except Exception as e:
            logger.warning("patterns.synthesis_llm_failed", error=str(e))
            return {}

        text = (response or "").strip()
        if text.startswith("```"):
            text = text.split("\n", 1)[-1]
        if text.endswith("```"):
            text = text.rsplit("```", 1)[0]
        try:
            parsed = json.loads(text.strip())
        except json.JSONDecodeError:
            logger.warning("patterns.synthesis_parse_failed", response=text[:200])
            return {}

        items = parsed.get("syntheses", []) if isinstance(parsed, dict) else []
        return {
            item["theme"]: item["synthesis"].strip()
            for item in items
            if isinstance(item, dict)
            and isinstance(item.get("theme"), str)
            and isinstance(item.get("synthesis"), str)
            and item["synthesis"].strip()
        }

    @llm_retry(max_attempts=2, exceptions=(LLMRateLimitError,))
    def _generate(self, prompt: str) -> str:
        return self._get_provider().generate(
            messages=[{"role": "user", "content": prompt}],
            system=_SYNTHESIS_SYSTEM,
            max_tokens=600,
        )

    def surfaceable(
        self, user_id: str, patterns: list[CrossDomainPattern], session_count: int
    ) -> list[CrossDomainPattern]:
        """At most ``max_per_session`` patterns whose theme is not on cooldown."""
        budget = self.max_per_session - self.cache.surfaced_in_session(user_id, session_count)
        allowed = []
        for p in patterns:
            if len(allowed) >= budget:
                break
            last = self.cache.last_surfaced_session(user_id, p.theme)
            if last is not None and session_count - last < self.min_sessions_between:
                continue
            allowed.append(p)
        return allowed

    def mark_surfaced(self, user_id: str, theme: str, session_count: int) -> None:
        self.cache.record_surfaced(user_id, theme, session_count)
