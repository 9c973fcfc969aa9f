"""Tests for LLM semantic scoring."""

import json

import pytest

from highlightcut.ai.semantic_scorer import (
    SemanticConfig,
    build_blocks,
    build_semantic_prompt,
    parse_semantic_scores,
    score_with_llm,
)
from highlightcut.cancellation import CancellationToken
from highlightcut.errors import ExecutionCancelled
from highlightcut.models import SemanticScores, TranscriptChunk

from conftest import FakeProvider


def _chunk(i, start, end, text="some words here"):
    return TranscriptChunk(index=i, start_time=start, end_time=end, text=text, word_count=len(text.split()))


def _scores(*indices, value=7):
    return json.dumps([
        {"index": i, "importance": value, "emotionalIntensity": value, "hookPotential": value, "standalone": value}
        for i in indices
    ])


class TestBuildBlocks:
    def test_speech_budget(self):
        chunks = [_chunk(i, i * 60.0, (i + 1) * 60.0) for i in range(4)]
        blocks = build_blocks(chunks, SemanticConfig())
        assert [[c.index for c in b] for b in blocks] == [[0, 1, 2], [3]]

    def test_span_budget(self):
        chunks = [_chunk(i, s, s + 10.0) for i, s in enumerate([0.0, 100.0, 200.0, 310.0])]
        blocks = build_blocks(chunks, SemanticConfig())
        assert [[c.index for c in b] for b in blocks] == [[0, 1, 2], [3]]


def test_prompt_lists_indexed_excerpts():
    prompt = build_semantic_prompt([_chunk(4, 65.0, 80.0, "x" * 400)], max_chars=10)
    assert "[4] (01:05-01:20) xxxxxxxxxx..." in prompt
    assert "hookPotential" in prompt


class TestParseSemanticScores:
    def test_rounds_and_clamps(self):
        out = parse_semantic_scores(json.dumps([
            {"index": 0, "importance": 12, "emotionalIntensity": 0, "hookPotential": 6.6, "standalone": "5"},
        ]))
        assert out == {0: SemanticScores(importance=10, emotional_intensity=1, hook_potential=7, standalone=5)}

    def test_object_wrapper_and_allowed(self):
        content = json.dumps({"scores": json.loads(_scores(1, 2, 9))})
        out = parse_semantic_scores(content, allowed={1, 2})
        assert sorted(out) == [1, 2]

    def test_bad_items_dropped(self):
        content = json.dumps([
            {"index": 1.5, "importance": 5, "emotionalIntensity": 5, "hookPotential": 5, "standalone": 5},
            {"index": True, "importance": 5, "emotionalIntensity": 5, "hookPotential": 5, "standalone": 5},
            {"index": 3, "importance": "high", "emotionalIntensity": 5, "hookPotential": 5, "standalone": 5},
            "junk",
        ])
        assert parse_semantic_scores(content) is None

    def test_unparsable(self):
        assert parse_semantic_scores("sorry, I cannot") is None
        assert parse_semantic_scores('{"other": 1}') is None


def test_score_with_llm_records_failed_blocks():
    chunks = [_chunk(i, i * 60.0, (i + 1) * 60.0) for i in range(4)]
    provider = FakeProvider(["```json\n" + _scores(0, 1, 2, 3) + "\n```", "garbage"])
    result, diag = score_with_llm(chunks, provider)

    assert sorted(result) == [0, 1, 2]
    assert diag.total_blocks == 2
    assert diag.failed_blocks == 1
    assert diag.failed_samples[0].startswith("block 1: unparsable")
    assert diag.all_failed is False
    assert len(provider.calls) == 2


def test_score_with_llm_provider_errors_are_not_fatal():
    chunks = [_chunk(0, 0.0, 30.0)]
    result, diag = score_with_llm(chunks, FakeProvider([RuntimeError("boom")]))
    assert result == {}
    assert diag.all_failed is True
    assert "boom" in diag.failed_samples[0]


def test_failed_samples_capped():
    chunks = [_chunk(i, i * 400.0, i * 400.0 + 10.0) for i in range(5)]
    result, diag = score_with_llm(chunks, FakeProvider(["x" * 500]))
    assert diag.failed_blocks == 5
    assert len(diag.failed_samples) == 3
    assert all(len(s) <= 200 for s in diag.failed_samples)


def test_cancelled_before_start():
    token = CancellationToken()
    token.cancel()
    provider = FakeProvider([_scores(0)])
    with pytest.raises(ExecutionCancelled):
        score_with_llm([_chunk(0, 0.0, 10.0)], provider, cancel=token)
    assert provider.calls == []


def test_cancelled_during_call():
    token = CancellationToken()

    def respond(_messages):
        token.cancel()
        return _scores(0)

    with pytest.raises(ExecutionCancelled):
        score_with_llm([_chunk(0, 0.0, 10.0)], FakeProvider(respond), cancel=token)
