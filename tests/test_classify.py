"""Tests for shared classification helpers."""

import random

import pytest

from pipelines.classify import (
    GENERAL_CATEGORY,
    calculate_popularity_score,
    categorize_by_keywords,
    extract_capabilities,
)


class TestPopularityScore:
    def test_no_signals_scores_zero(self):
        assert calculate_popularity_score() == 0.0
        assert calculate_popularity_score(stars=0, downloads=0, views=0, likes=0) == 0.0

    def test_negative_counts_contribute_nothing(self):
        assert calculate_popularity_score(stars=-50, likes=-1) == 0.0

    def test_weighted_log_scale(self):
        assert calculate_popularity_score(stars=999) == pytest.approx(30.0)
        assert calculate_popularity_score(stars=999, downloads=99) == pytest.approx(40.0)
        assert calculate_popularity_score(views=9, likes=9) == pytest.approx(5.0)

    def test_score_is_capped(self):
        assert calculate_popularity_score(stars=10 ** 12, downloads=10 ** 12) == 100.0

    def test_score_is_bounded_and_monotonic(self):
        rng = random.Random(7)
        for _ in range(200):
            counts = {k: rng.randint(0, 10 ** 7) for k in ("stars", "downloads", "views", "likes")}
            score = calculate_popularity_score(**counts)
            assert 0.0 <= score <= 100.0

            bumped = dict(counts)
            key = rng.choice(list(counts))
            bumped[key] += rng.randint(1, 10 ** 5)
            assert calculate_popularity_score(**bumped) >= score


class TestCategorize:
    def test_first_matching_category_wins(self):
        # "gpt" (LLM) is checked before "image" (Computer Vision)
        assert categorize_by_keywords("GPT image editor") == "LLM"

    def test_keyword_categories(self):
        assert categorize_by_keywords("Speech synthesis toolkit") == "Audio"
        assert categorize_by_keywords("Object detection models") == "Computer Vision"
        assert categorize_by_keywords("Autonomous agent planner") == "Agent"

    def test_fallback_category(self):
        assert categorize_by_keywords("hello world") == GENERAL_CATEGORY
        assert categorize_by_keywords(None) == GENERAL_CATEGORY

    def test_is_deterministic(self):
        text = "A PyTorch framework for training"
        assert categorize_by_keywords(text) == categorize_by_keywords(text) == "ML Framework"


class TestCapabilities:
    def test_distinct_lowercased_in_table_order(self):
        text = "Supports Text Generation and Summarization, plus more generation and summarization"
        assert extract_capabilities(text) == ["text generation", "generation", "summarization"]

    def test_word_boundaries(self):
        assert extract_capabilities("Qualified vectors") == []
        assert extract_capabilities("Fast QA over docs") == ["qa"]

    def test_empty_text(self):
        assert extract_capabilities("") == []
        assert extract_capabilities(None) == []
