from highlightcut.models import (
    LLMScoringDiagnostics,
    TranscriptContext,
    TranscriptSegment,
    ToolResult,
)


def test_segment_accepts_short_keys() -> None:
    seg = TranscriptSegment.from_dict({"start": 1, "end": 2.5, "text": "hi"})
    assert seg == TranscriptSegment(1.0, 2.5, "hi")
    assert seg.to_dict() == {"startTime": 1.0, "endTime": 2.5, "text": "hi"}


def test_unknown_transcript_source() -> None:
    assert TranscriptContext.from_dict({"source": "radio"}).source == "none"


def test_diagnostics_all_failed() -> None:
    diag = LLMScoringDiagnostics()
    assert diag.all_failed is False
    diag.total_blocks = 2
    diag.failed_blocks = 2
    assert diag.to_dict()["allFailed"] is True


def test_tool_result_keys() -> None:
    d = ToolResult(success=False, message="nope", error_code="NO_WORDS").to_dict()
    assert d == {"success": False, "message": "nope", "errorCode": "NO_WORDS", "degraded": False, "data": {}}
