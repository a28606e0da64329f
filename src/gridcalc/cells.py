"""Cell record, coordinates and the closed cell value variant.

Every value the engine stores is one of the :data:`CellValue` models.  The
evaluator works on plain Python values and crosses into the variant only
through :func:`to_cell_value` / :meth:`to_python`, so there is exactly one
place where a native value becomes a typed cell value.
"""

from __future__ import annotations

import datetime
import math
import re
from enum import Enum
from typing import Annotated, Any, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Coordinates
# ---------------------------------------------------------------------------


class CellPos(BaseModel):
    """0-based cell coordinate."""

    model_config = ConfigDict(frozen=True)

    row: int = Field(ge=0)
    col: int = Field(ge=0)


class SelectionRange(BaseModel):
    """A rectangle given by two corners, in whatever order they were picked.

    Consumers must not assume ``start`` is the top-left corner; use
    :meth:`normalized` or :meth:`bounds` before iterating.
    """

    start: CellPos
    end: CellPos

    @classmethod
    def single(cls, pos: CellPos) -> SelectionRange:
        return cls(start=pos, end=pos)

    def bounds(self) -> tuple[int, int, int, int]:
        """Return ``(top, left, bottom, right)``, inclusive."""
        return (
            min(self.start.row, self.end.row),
            min(self.start.col, self.end.col),
            max(self.start.row, self.end.row),
            max(self.start.col, self.end.col),
        )

    def normalized(self) -> SelectionRange:
        top, left, bottom, right = self.bounds()
        return SelectionRange(
            start=CellPos(row=top, col=left),
            end=CellPos(row=bottom, col=right),
        )

    def contains(self, row: int, col: int) -> bool:
        top, left, bottom, right = self.bounds()
        return top <= row <= bottom and left <= col <= right

    def positions(self) -> Iterator[CellPos]:
        """Yield every coordinate inside the rectangle, row-major."""
        top, left, bottom, right = self.bounds()
        for r in range(top, bottom + 1):
            for c in range(left, right + 1):
                yield CellPos(row=r, col=c)

    @property
    def n_rows(self) -> int:
        top, _, bottom, _ = self.bounds()
        return bottom - top + 1

    @property
    def n_cols(self) -> int:
        _, left, _, right = self.bounds()
        return right - left + 1


# ---------------------------------------------------------------------------
# Value variant
# ---------------------------------------------------------------------------


class EmptyValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["empty"] = "empty"

    def to_python(self) -> None:
        return None


class NumberValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["number"] = "number"
    value: float

    def to_python(self) -> int | float:
        # Integral numbers come back as int so that range() and string
        # rendering behave the way a user typed them.
        if self.value.is_integer() and abs(self.value) < 2**53:
            return int(self.value)
        return self.value


class TextValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str

    def to_python(self) -> str:
        return self.value


class BoolValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["bool"] = "bool"
    value: bool

    def to_python(self) -> bool:
        return self.value


class TimestampValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["timestamp"] = "timestamp"
    value: datetime.datetime

    def to_python(self) -> datetime.datetime:
        return self.value


class SequenceValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["sequence"] = "sequence"
    items: list[CellValue]

    def to_python(self) -> list[Any]:
        return [item.to_python() for item in self.items]


class TableValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["table"] = "table"
    rows: list[list[CellValue]]

    def to_python(self) -> list[list[Any]]:
        return [[item.to_python() for item in row] for row in self.rows]


CellValue = Annotated[
    Union[
        EmptyValue,
        NumberValue,
        TextValue,
        BoolValue,
        TimestampValue,
        SequenceValue,
        TableValue,
    ],
    Field(discriminator="kind"),
]

_VALUE_CLASSES = (
    EmptyValue,
    NumberValue,
    TextValue,
    BoolValue,
    TimestampValue,
    SequenceValue,
    TableValue,
)

SequenceValue.model_rebuild()
TableValue.model_rebuild()

EMPTY = EmptyValue()


def to_cell_value(obj: Any) -> CellValue:
    """Convert a native Python value into the cell value variant.

    Raises:
        TypeError: If *obj* has no cell representation (dicts, objects,
            non-finite floats).
    """
    if isinstance(obj, _VALUE_CLASSES):
        return obj
    if obj is None:
        return EMPTY
    if isinstance(obj, bool):
        return BoolValue(value=obj)
    if isinstance(obj, (int, float)):
        num = float(obj)
        if not math.isfinite(num):
            raise TypeError(f"Non-finite number cannot be stored: {obj!r}")
        return NumberValue(value=num)
    if isinstance(obj, str):
        return TextValue(value=obj)
    if isinstance(obj, datetime.datetime):
        return TimestampValue(value=obj)
    if isinstance(obj, datetime.date):
        return TimestampValue(value=datetime.datetime.combine(obj, datetime.time()))
    if isinstance(obj, (list, tuple)):
        if obj and all(isinstance(item, (list, tuple)) for item in obj):
            return TableValue(rows=[[to_cell_value(v) for v in row] for row in obj])
        return SequenceValue(items=[to_cell_value(v) for v in obj])
    raise TypeError(f"Unsupported cell value type: {type(obj).__name__}")


# ---------------------------------------------------------------------------
# Data types and formats
# ---------------------------------------------------------------------------


class DataType(str, Enum):
    null = "null"
    number = "number"
    string = "string"
    boolean = "boolean"
    date = "date"
    array = "array"


class Format(str, Enum):
    general = "general"
    integer = "integer"
    decimal = "decimal"
    decimal2 = "decimal2"
    decimal3 = "decimal3"
    decimal4 = "decimal4"
    decimal6 = "decimal6"
    currency = "currency"
    percentage = "percentage"
    scientific = "scientific"
    string = "string"
    array = "array"
    DDMMYYYY = "DDMMYYYY"
    MMDDYYYY = "MMDDYYYY"
    YYYYMMDD = "YYYYMMDD"
    DDMM = "DDMM"
    MMDD = "MMDD"
    time = "time"
    datetime = "datetime"


FORMAT_OPTIONS: dict[DataType, tuple[Format, ...]] = {
    DataType.number: (
        Format.general,
        Format.integer,
        Format.decimal,
        Format.decimal2,
        Format.decimal3,
        Format.decimal4,
        Format.decimal6,
        Format.currency,
        Format.percentage,
        Format.scientific,
    ),
    DataType.date: (
        Format.general,
        Format.DDMMYYYY,
        Format.MMDDYYYY,
        Format.YYYYMMDD,
        Format.DDMM,
        Format.MMDD,
        Format.time,
        Format.datetime,
    ),
    DataType.string: (Format.general, Format.string),
    DataType.array: (Format.general, Format.array),
    DataType.boolean: (Format.general,),
    DataType.null: (Format.general,),
}


def format_options(data_type: DataType) -> tuple[Format, ...]:
    """Return the display formats allowed for *data_type*."""
    return FORMAT_OPTIONS.get(data_type, (Format.general,))


_KIND_TO_TYPE = {
    "empty": DataType.null,
    "number": DataType.number,
    "text": DataType.string,
    "bool": DataType.boolean,
    "timestamp": DataType.date,
    "sequence": DataType.array,
    "table": DataType.array,
}


def detect_data_type(value: CellValue) -> DataType:
    """Auto-detect the data type of a stored value."""
    return _KIND_TO_TYPE[value.kind]


# ---------------------------------------------------------------------------
# Literal parsing (fixed format table, no locale)
# ---------------------------------------------------------------------------

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
)


def parse_number_text(text: str) -> int | float | None:
    """Parse plain decimal/exponent notation; ``None`` if not a number."""
    s = text.strip()
    if not _NUMBER_RE.match(s):
        return None
    num = float(s)
    if not math.isfinite(num):
        return None
    if num.is_integer() and "." not in s and "e" not in s.lower():
        return int(num)
    return num


def parse_date_text(text: str) -> datetime.datetime | None:
    """Parse text against the fixed date format table."""
    s = text.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def parse_literal(text: str) -> CellValue:
    """Convert user-entered literal text to a typed value."""
    stripped = text.strip()
    if stripped.upper() in ("TRUE", "FALSE"):
        return BoolValue(value=stripped.upper() == "TRUE")
    num = parse_number_text(stripped)
    if num is not None:
        return NumberValue(value=float(num))
    when = parse_date_text(stripped)
    if when is not None:
        return TimestampValue(value=when)
    return TextValue(value=text)


def validate_type(value: CellValue, expected: DataType) -> bool:
    """Check whether *value* is acceptable for a cell pinned to *expected*."""
    actual = detect_data_type(value)
    if expected == DataType.null:
        return True
    if expected == DataType.number:
        return actual == DataType.number or (
            isinstance(value, TextValue) and parse_number_text(value.value) is not None
        )
    if expected == DataType.string:
        return True
    if expected == DataType.date:
        return actual == DataType.date or (
            isinstance(value, TextValue) and parse_date_text(value.value) is not None
        )
    return actual == expected


def coerce_to_type(value: CellValue, expected: DataType) -> CellValue:
    """Convert a value that passed :func:`validate_type` to the pinned type."""
    if expected == DataType.number and isinstance(value, TextValue):
        num = parse_number_text(value.value)
        if num is not None:
            return NumberValue(value=float(num))
    if expected == DataType.date and isinstance(value, TextValue):
        when = parse_date_text(value.value)
        if when is not None:
            return TimestampValue(value=when)
    if expected == DataType.string and not isinstance(value, (TextValue, EmptyValue)):
        from gridcalc.formatting import render_natural

        return TextValue(value=render_natural(value))
    return value


# ---------------------------------------------------------------------------
# Cell record
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    formula = "formula"
    type_mismatch = "type-mismatch"
    circular = "circular"
    reference = "reference"


class CellError(BaseModel):
    message: str
    kind: ErrorKind


class Cell(BaseModel):
    """State of one materialized cell.

    ``display_value`` is derived; the store re-renders it whenever
    ``raw_value``, ``data_type``, ``formatting`` or ``error`` change.
    """

    raw_value: CellValue = Field(default_factory=EmptyValue)
    formula: str | None = None
    data_type: DataType = DataType.null
    data_type_override: DataType | None = None
    formatting: Format = Format.general
    display_value: str = ""
    computed: bool = False
    error: CellError | None = None
    style: dict[str, Any] = Field(default_factory=dict)

    @property
    def value(self) -> Any:
        """The stored value as a plain Python object."""
        return self.raw_value.to_python()

    @property
    def is_empty(self) -> bool:
        return isinstance(self.raw_value, EmptyValue) and self.formula is None
