"""
content.py - Metadata derived from markdown content.

When a producer (a human editor or the generation pipeline) hands over a PRD
or Skill body without full metadata, the missing fields are inferred here:
title from the first heading, PRD complexity from size and structure, an
iteration estimate, and a skill's category and tags.
"""

from __future__ import annotations

import re
from typing import List

from .types import PRDComplexity

_H1 = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_H2 = re.compile(r"^##\s+(.+)$", re.MULTILINE)
_ITERATIONS = re.compile(r"estimated?.?\s*iterations?:?\s*(\d+)", re.IGNORECASE)
_TECH = re.compile(r"technical requirements|tech stack|architecture", re.IGNORECASE)
_PHASES = re.compile(r"phase \d|iteration \d", re.IGNORECASE)

DEFAULT_ITERATIONS = {
    PRDComplexity.SIMPLE: 3,
    PRDComplexity.MEDIUM: 8,
    PRDComplexity.COMPLEX: 15,
}

# Checked in order; first hit wins
_CATEGORY_KEYWORDS = [
    (("react", "hook"), "React"),
    (("api", "endpoint"), "API"),
    (("database", "prisma"), "Database"),
    (("security", "xss"), "Security"),
    (("testing", "test"), "Testing"),
    (("performance",), "Performance"),
]

_TAG_KEYWORDS = [
    "typescript", "javascript", "react", "nextjs", "prisma", "api",
    "security", "performance", "testing", "database", "validation", "error",
]


def extract_prd_title(content: str) -> str:
    """First H1, else first H2, else first non-empty line."""
    for pattern in (_H1, _H2):
        match = pattern.search(content)
        if match:
            return match.group(1).strip()
    for line in content.splitlines():
        if line.strip():
            return re.sub(r"^#+\s*", "", line).strip() or "Untitled PRD"
    return "Untitled PRD"


def extract_skill_title(content: str) -> str:
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith("# "):
            return stripped[2:].strip()
    return "Untitled Skill"


def detect_complexity(content: str) -> PRDComplexity:
    word_count = len(content.split())
    has_tech = bool(_TECH.search(content))
    has_phases = bool(_PHASES.search(content))

    if word_count > 2000 or (has_tech and has_phases):
        return PRDComplexity.COMPLEX
    if word_count > 800 or has_tech or has_phases:
        return PRDComplexity.MEDIUM
    return PRDComplexity.SIMPLE


def estimate_iterations(content: str, complexity: PRDComplexity) -> int:
    """Explicit "Estimated iterations: N" wins; otherwise a per-complexity default."""
    match = _ITERATIONS.search(content)
    if match:
        return int(match.group(1))
    return DEFAULT_ITERATIONS.get(complexity, 5)


def extract_skill_category(content: str, filename: str) -> str:
    parts = filename[:-3].split("_") if filename.endswith(".md") else filename.split("_")
    if len(parts) > 1 and parts[0]:
        return parts[0].capitalize()

    lowered = content.lower()
    for keywords, category in _CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return "General"


def extract_skill_tags(content: str, limit: int = 5) -> List[str]:
    lowered = content.lower()
    return [k for k in _TAG_KEYWORDS if k in lowered][:limit]
