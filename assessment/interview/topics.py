"""
Topic tracking: which business themes an answer touched on.

Goes beyond field tracking. An answer about "bugs slowing our releases"
covers both `quality` and `velocity` even if no field was extracted.
"""

from __future__ import annotations

from typing import Iterable

TOPIC_GROUPS: dict[str, tuple[str, ...]] = {
    "velocity": (
        "velocity", "speed", "cycle time", "time to market", "deploy",
        "slow", "fast", "release",
    ),
    "quality": ("quality", "bug", "errors", "defect", "reliability", "incident"),
    "cost": ("cost", "budget", "price", "expense", "spend", "burn", "cac"),
    "team": ("team", "people", "hiring", "talent", "developers", "headcount", "turnover"),
    "tech-debt": ("tech debt", "technical debt", "refactor", "legacy"),
    "scalability": ("scalab", "scale", "growth", "performance", "demand"),
    "process": ("process", "workflow", "ci/cd", "devops", "automation", "manual"),
    "competition": ("competition", "competitor", "market share"),
    "compliance": ("compliance", "security", "gdpr", "lgpd", "audit"),
    "customer": ("customer", "client", "user", "churn", "retention"),
}

ESSENTIAL_TOPICS: tuple[str, ...] = ("velocity", "quality", "cost", "team", "process")


def detect_topics(answer: str) -> set[str]:
    """Topics mentioned in an answer (case-insensitive substring match)."""
    if not answer:
        return set()
    text = answer.lower()
    return {
        topic
        for topic, keywords in TOPIC_GROUPS.items()
        if any(keyword in text for keyword in keywords)
    }


def topic_coverage(covered: Iterable[str]) -> dict[str, object]:
    """Share of the essential topics already covered."""
    covered_set = set(covered)
    hit = [t for t in ESSENTIAL_TOPICS if t in covered_set]
    missing = [t for t in ESSENTIAL_TOPICS if t not in covered_set]
    return {
        "percentage": round(100 * len(hit) / len(ESSENTIAL_TOPICS)),
        "covered": hit,
        "missing": missing,
    }
