"""Tests for the A1 address codec."""

from __future__ import annotations

import pytest

from gridcalc.addressing import (
    cell_key,
    col_letter_to_index,
    index_to_col_letter,
    parse_addr,
    parse_key,
    parse_range,
    position_to_ref,
    range_label,
    ref_to_key,
    ref_to_position,
)
from gridcalc.cells import CellPos, SelectionRange


# ────────────────────────────────────────────────────────────────
# Column letters
# ────────────────────────────────────────────────────────────────


class TestColumnLetters:
    @pytest.mark.parametrize(
        "idx,letters",
        [(0, "A"), (1, "B"), (25, "Z"), (26, "AA"), (27, "AB"), (51, "AZ"), (52, "BA"), (701, "ZZ"), (702, "AAA")],
    )
    def test_index_to_letters(self, idx: int, letters: str) -> None:
        assert index_to_col_letter(idx) == letters
        assert col_letter_to_index(letters) == idx

    def test_lowercase_letters(self) -> None:
        assert col_letter_to_index("ab") == 27

    def test_negative_index_rejected(self) -> None:
        with pytest.raises(ValueError):
            index_to_col_letter(-1)


# ────────────────────────────────────────────────────────────────
# Cell references
# ────────────────────────────────────────────────────────────────


class TestCellRefs:
    def test_position_to_ref(self) -> None:
        assert position_to_ref(0, 0) == "A1"
        assert position_to_ref(9, 27) == "AB10"

    def test_round_trip(self) -> None:
        for row in range(0, 120, 7):
            for col in range(0, 800, 13):
                pos = ref_to_position(position_to_ref(row, col))
                assert pos == CellPos(row=row, col=col)

    def test_case_insensitive(self) -> None:
        assert ref_to_position("b3") == CellPos(row=2, col=1)
        assert ref_to_position(" c10 ") == CellPos(row=9, col=2)

    @pytest.mark.parametrize("bad", ["", "A", "1", "A0", "1A", "A1B", "A-1", "A1:B2", "$A$1", None])
    def test_malformed_returns_none(self, bad: str | None) -> None:
        assert ref_to_position(bad) is None

    def test_negative_coordinates_rejected(self) -> None:
        with pytest.raises(ValueError):
            position_to_ref(-1, 0)

    def test_parse_addr(self) -> None:
        assert parse_addr("C2") == (1, 2)
        with pytest.raises(ValueError, match="Invalid cell address"):
            parse_addr("nope")


# ────────────────────────────────────────────────────────────────
# Ranges and keys
# ────────────────────────────────────────────────────────────────


class TestRanges:
    def test_single_cell_range(self) -> None:
        rng = parse_range("B2")
        assert rng is not None
        assert rng.start == rng.end == CellPos(row=1, col=1)

    def test_corners_kept_as_given(self) -> None:
        rng = parse_range("C5:A1")
        assert rng is not None
        assert rng.start == CellPos(row=4, col=2)
        assert rng.end == CellPos(row=0, col=0)
        assert rng.bounds() == (0, 0, 4, 2)

    @pytest.mark.parametrize("bad", ["A1:", ":B2", "A1:B2:C3", "A1:ZZ", ""])
    def test_bad_ranges(self, bad: str) -> None:
        assert parse_range(bad) is None

    def test_range_label_normalizes(self) -> None:
        rng = SelectionRange(start=CellPos(row=4, col=2), end=CellPos(row=0, col=0))
        assert range_label(rng) == "A1:C5"
        assert range_label(SelectionRange.single(CellPos(row=0, col=1))) == "B1"

    def test_keys(self) -> None:
        assert cell_key(3, 4) == "3-4"
        assert parse_key("3-4") == (3, 4)
        assert ref_to_key("E4") == "3-4"
        assert ref_to_key("bad") is None
