from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class ConversionError(Exception):
    """Base class for failures raised while converting Overture data.

    `source` names the input/output file and `record_id` the segment or connector id, so a
    failed run can always report what triggered it.
    """

    code = "conversion_error"

    def __init__(
        self,
        message: str,
        *,
        source: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.source = source
        self.record_id = record_id

    def with_context(
        self, *, source: Optional[str] = None, record_id: Optional[str] = None
    ) -> "ConversionError":
        if source is not None and self.source is None:
            self.source = source
        if record_id is not None and self.record_id is None:
            self.record_id = record_id
        return self

    def __str__(self) -> str:
        parts = [self.message]
        if self.source:
            parts.append(f"file={self.source}")
        if self.record_id:
            parts.append(f"id={self.record_id}")
        return " | ".join(parts)


class GeometryTypeMismatch(ConversionError):
    code = "geometry_type_mismatch"

    def __init__(self, expected: str, actual: str, **kwargs) -> None:
        super().__init__(f"Expected {expected} geometry, got {actual}", **kwargs)
        self.expected = expected
        self.actual = actual


class MissingRequiredField(ConversionError):
    code = "missing_required_field"

    def __init__(self, field: str, reason: str = "absent", **kwargs) -> None:
        super().__init__(f"Required field '{field}' is {reason}", **kwargs)
        self.field = field
        self.reason = reason


class UnresolvedConnectorReference(ConversionError):
    """A segment references a connector id that is not in the connector table (never fatal)."""

    code = "unresolved_connector_reference"

    def __init__(self, connector_id: str, **kwargs) -> None:
        super().__init__(f"Unknown connector '{connector_id}'", **kwargs)
        self.connector_id = connector_id


class DegenerateEdge(ConversionError):
    code = "degenerate_edge"

    def __init__(self, vertex_count: int, **kwargs) -> None:
        super().__init__(f"Edge needs at least 2 vertices, got {vertex_count}", **kwargs)
        self.vertex_count = vertex_count


class FieldOverflow(ConversionError):
    code = "field_overflow"

    def __init__(self, field: str, value: int, bits: int, **kwargs) -> None:
        super().__init__(f"Value {value} does not fit {bits}-bit field '{field}'", **kwargs)
        self.field = field
        self.value = value
        self.bits = bits


class IoFailure(ConversionError):
    code = "io_failure"


@dataclass(frozen=True)
class ConversionErrorInfo:
    code: str
    kind: str
    message: str


def classify_conversion_error(exc: Exception) -> ConversionErrorInfo:
    """Classify conversion failures into stable codes for CLI output/monitoring."""

    text = str(exc)

    if isinstance(exc, (GeometryTypeMismatch, MissingRequiredField)):
        return ConversionErrorInfo(code=exc.code, kind="input", message=text)
    if isinstance(exc, (DegenerateEdge, UnresolvedConnectorReference)):
        return ConversionErrorInfo(code=exc.code, kind="graph", message=text)
    if isinstance(exc, FieldOverflow):
        return ConversionErrorInfo(code=exc.code, kind="output", message=text)
    if isinstance(exc, IoFailure):
        return ConversionErrorInfo(code=exc.code, kind="io", message=text)
    if isinstance(exc, ConversionError):
        return ConversionErrorInfo(code=exc.code, kind="unknown", message=text)

    if isinstance(exc, FileNotFoundError):
        return ConversionErrorInfo(code="file_not_found", kind="io", message=text)
    if isinstance(exc, PermissionError):
        return ConversionErrorInfo(code="permission_denied", kind="io", message=text)
    if isinstance(exc, OSError):
        return ConversionErrorInfo(code="os_error", kind="io", message=text)
    if isinstance(exc, ValueError):
        return ConversionErrorInfo(code="invalid_value", kind="config", message=text)

    return ConversionErrorInfo(code="unknown", kind="unknown", message=text)
