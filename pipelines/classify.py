"""Shared classification helpers for survey adapters.

Popularity scoring, keyword categorization and capability extraction are
pure functions of their inputs so every adapter classifies the same way.
"""

import math
import re
from typing import List, Optional

GENERAL_CATEGORY = "General AI"

# Ordered: the first category with a matching keyword wins
CATEGORY_KEYWORDS = [
    ("LLM", ["llm", "language model", "gpt", "claude", "llama", "mistral", "gemini"]),
    ("Computer Vision", ["vision", "image", "video", "cv", "object detection", "segmentation"]),
    ("NLP", ["nlp", "natural language", "text", "translation", "sentiment"]),
    ("Agent", ["agent", "autonomous", "rag", "retrieval"]),
    ("Audio", ["audio", "speech", "voice", "sound", "music"]),
    ("Robotics", ["robot", "robotics", "control", "motion"]),
    ("ML Framework", ["framework", "pytorch", "tensorflow", "jax", "training"]),
    ("Data Science", ["data", "analysis", "visualization", "pandas", "numpy"]),
    ("MLOps", ["mlops", "deployment", "monitoring", "serving", "inference"]),
]

CAPABILITY_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(text generation|generation)\b",
        r"\b(image generation|image creation)\b",
        r"\b(classification|categorization)\b",
        r"\b(detection|recognition)\b",
        r"\b(translation)\b",
        r"\b(summarization)\b",
        r"\b(question answering|qa)\b",
        r"\b(embedding|vector)\b",
        r"\b(fine-tuning|training)\b",
        r"\b(inference|prediction)\b",
    )
]

POPULARITY_WEIGHTS = {
    "stars": 10.0,
    "downloads": 5.0,
    "views": 2.0,
    "likes": 3.0,
}


def _log_count(value: Optional[float]) -> float:
    if not value or value < 0:
        return 0.0
    return math.log10(value + 1)


def calculate_popularity_score(stars: Optional[float] = None,
                               downloads: Optional[float] = None,
                               views: Optional[float] = None,
                               likes: Optional[float] = None) -> float:
    """Weighted log-scaled popularity in [0, 100].

    Missing or negative counts contribute nothing.
    """
    score = (
        POPULARITY_WEIGHTS["stars"] * _log_count(stars)
        + POPULARITY_WEIGHTS["downloads"] * _log_count(downloads)
        + POPULARITY_WEIGHTS["views"] * _log_count(views)
        + POPULARITY_WEIGHTS["likes"] * _log_count(likes)
    )
    return max(0.0, min(100.0, score))


def categorize_by_keywords(text: Optional[str]) -> str:
    """Return the first category whose keywords occur in the text."""
    lowered = (text or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return GENERAL_CATEGORY


def extract_capabilities(text: Optional[str]) -> List[str]:
    """Distinct lowercased capability phrases found in the text, in table order."""
    if not text:
        return []

    found: List[str] = []
    for pattern in CAPABILITY_PATTERNS:
        for match in pattern.finditer(text):
            label = match.group(1).lower()
            if label not in found:
                found.append(label)
    return found
