"""Tests for hybridrag.retrieve.trace — the pipeline flight recorder."""

from __future__ import annotations

import pytest

from hybridrag.retrieve.trace import STAGE_EMBED_QUERY, STAGE_KEYWORD_SEARCH, TraceRecorder
from hybridrag.types import RetrievalMode, StageTiming


def _recorder(preview_chars: int = 200) -> TraceRecorder:
    return TraceRecorder("what is rrf", RetrievalMode.HYBRID, "RRF(k=60)", preview_chars)


def _add(recorder: TraceRecorder, rank: int, included: bool, content: str = "text") -> None:
    recorder.add_candidate(
        rank=rank,
        chunk_id=rank * 10,
        source_name="guide.md",
        chunk_index=rank - 1,
        vector_score=0.8,
        keyword_score=2.0,
        final_score=1 / 60,
        token_count=4,
        included=included,
        content=content,
    )


class TestStages:
    def test_records_in_execution_order(self):
        recorder = _recorder()
        with recorder.stage(STAGE_EMBED_QUERY):
            pass
        with recorder.stage(STAGE_KEYWORD_SEARCH):
            pass

        assert [t.name for t in recorder.timings] == ["EmbedQuery", "KeywordSearch"]
        assert all(t.elapsed_ms >= 0 for t in recorder.timings)

    def test_records_failed_stage(self):
        recorder = _recorder()
        with pytest.raises(RuntimeError), recorder.stage("Boom"):
            raise RuntimeError("stage failed")
        assert [t.name for t in recorder.timings] == ["Boom"]

    def test_measure_returns_result(self):
        recorder = _recorder()
        assert recorder.measure("Add", lambda a, b: a + b, 2, b=3) == 5
        assert recorder.elapsed_ms("Add") >= 0
        assert recorder.elapsed_ms("Missing") == 0.0

    def test_stage_timing_str(self):
        assert str(StageTiming("VectorSearch", 12.345)) == "VectorSearch: 12.3ms"


class TestBuild:
    def test_build_freezes_candidates(self):
        recorder = _recorder()
        _add(recorder, 1, True)
        _add(recorder, 2, True)
        _add(recorder, 3, False)

        trace = recorder.build()

        assert trace.query == "what is rrf"
        assert trace.mode is RetrievalMode.HYBRID
        assert trace.fusion_formula == "RRF(k=60)"
        assert trace.total_candidates == 3
        assert trace.included_chunks == 2
        assert [c.rank for c in trace.candidates] == [1, 2, 3]
        assert trace.utc.tzinfo is not None

    def test_total_time_is_sum_of_stages(self):
        recorder = _recorder()
        for name in ("A", "B", "C"):
            with recorder.stage(name):
                pass
        trace = recorder.build()
        assert trace.total_time_ms == pytest.approx(sum(t.elapsed_ms for t in trace.timings))

    def test_empty_trace(self):
        trace = _recorder().build()
        assert trace.candidates == ()
        assert trace.total_time_ms == 0
        assert trace.included_chunks == 0


class TestPreview:
    def test_whitespace_collapsed(self):
        recorder = _recorder()
        _add(recorder, 1, True, content="line one\n\nline   two")
        assert recorder.build().candidates[0].preview == "line one line two"

    def test_truncated_with_ellipsis(self):
        recorder = _recorder(preview_chars=20)
        _add(recorder, 1, True, content="x" * 100)
        preview = recorder.build().candidates[0].preview
        assert preview == "x" * 17 + "..."
        assert len(preview) == 20
