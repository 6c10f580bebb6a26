from __future__ import annotations

from overturegraph.ingestion.errors import (
    DegenerateEdge,
    FieldOverflow,
    IoFailure,
    MissingRequiredField,
    classify_conversion_error,
)


def test_error_message_carries_file_and_id() -> None:
    exc = MissingRequiredField("geometry", source="segment.parquet").with_context(
        source="other.parquet", record_id="abc"
    )
    assert str(exc) == "Required field 'geometry' is absent | file=segment.parquet | id=abc"


def test_classify_conversion_error() -> None:
    assert classify_conversion_error(MissingRequiredField("id")).kind == "input"
    assert classify_conversion_error(DegenerateEdge(1)).code == "degenerate_edge"
    assert classify_conversion_error(FieldOverflow("speed_", 300, 8)).kind == "output"
    assert classify_conversion_error(IoFailure("boom")).kind == "io"
    assert classify_conversion_error(FileNotFoundError("x")).code == "file_not_found"
    assert classify_conversion_error(ValueError("bad strategy")).kind == "config"
    assert classify_conversion_error(RuntimeError("?")).code == "unknown"
