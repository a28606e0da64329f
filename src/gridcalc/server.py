"""FastAPI service exposing one spreadsheet engine over HTTP.

Routes are thin wrappers over :class:`SpreadsheetEngine`; invalid
references, formats and sizes surface as HTTP 400.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from gridcalc.addressing import parse_addr, parse_range, position_to_ref, range_label
from gridcalc.cell_graph import key_label
from gridcalc.cells import CellPos
from gridcalc.clipboard import ClipboardData
from gridcalc.engine import SpreadsheetEngine
from gridcalc.formulas.references import extract_dependency_keys


def create_app(config: dict[str, Any] | None = None, *, engine: SpreadsheetEngine | None = None) -> FastAPI:
    """Create the FastAPI application around one engine.

    Args:
        config: Engine configuration (see :func:`gridcalc.config.load_config`).
        engine: An existing engine to serve instead of building one.

    Returns:
        Configured FastAPI instance.  The engine is available as
        ``app.state.engine``.
    """
    from gridcalc import __version__

    engine = engine if engine is not None else SpreadsheetEngine(config)
    app = FastAPI(title="gridcalc", version=__version__)
    app.state.engine = engine
    app.include_router(_api_router(engine))
    return app


# ---------------------------------------------------------------------------
# Request/response models
# ---------------------------------------------------------------------------


class CellEdit(BaseModel):
    ref: str
    value: Any = None


class CellUpdateRequest(BaseModel):
    edits: list[CellEdit]


class StyleRequest(BaseModel):
    ref: str
    style: dict[str, Any]


class DataTypeRequest(BaseModel):
    ref: str
    data_type: str | None = None


class FormatRequest(BaseModel):
    ref: str
    formatting: str


class SelectionStartRequest(BaseModel):
    ref: str
    extend: bool = False
    inserting: bool = False


class SelectionExtendRequest(BaseModel):
    ref: str


class EditBeginRequest(BaseModel):
    ref: str
    text: str | None = None
    cursor_pos: int | None = None


class EditUpdateRequest(BaseModel):
    text: str
    cursor_pos: int = Field(ge=0)


class CopyRequest(BaseModel):
    range: str
    cut: bool = False


class PasteRequest(BaseModel):
    ref: str


class AxisSizeRequest(BaseModel):
    index: int
    size: int


def _pos(ref: str) -> CellPos:
    row, col = parse_addr(ref)
    return CellPos(row=row, col=col)


def _api_router(engine: SpreadsheetEngine) -> APIRouter:
    router = APIRouter(prefix="/api")
    # Server-side clipboard, one per app
    clip: dict[str, ClipboardData] = {}

    def selection_state() -> dict[str, Any]:
        sel = engine.selection
        return {
            "ranges": sel.labels(),
            "current": position_to_ref(sel.current.row, sel.current.col) if sel.current else None,
            "is_selecting": sel.is_selecting,
            "is_inserting": sel.is_inserting,
            "edit": sel.edit.model_dump() if sel.edit is not None else None,
        }

    # -- Sheet --

    @router.get("/sheet")
    async def get_sheet(
        scroll_top: float = Query(0, ge=0),
        scroll_left: float = Query(0, ge=0),
        height: float = Query(600, ge=0),
        width: float = Query(1200, ge=0),
    ) -> dict[str, Any]:
        return engine.viewport(scroll_top, scroll_left, height, width).model_dump(mode="json")

    @router.get("/cell/{ref}")
    async def get_cell(ref: str) -> dict[str, Any]:
        try:
            row, col = parse_addr(ref)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return engine.view(row, col).model_dump(mode="json")

    @router.post("/cells")
    async def update_cells(req: CellUpdateRequest) -> dict[str, Any]:
        updated = []
        try:
            for edit in req.edits:
                row, col = parse_addr(edit.ref)
                engine.set_cell(row, col, edit.value)
                updated.append((row, col))
        except (ValueError, TypeError) as exc:
            raise HTTPException(400, str(exc))
        # Report final state: later edits may have recalculated earlier ones.
        return {"cells": [engine.view(r, c).model_dump(mode="json") for r, c in updated]}

    @router.post("/cells/style")
    async def update_style(req: StyleRequest) -> dict[str, Any]:
        try:
            row, col = parse_addr(req.ref)
            engine.set_cell_style(row, col, req.style)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return engine.view(row, col).model_dump(mode="json")

    @router.post("/cells/type")
    async def update_type(req: DataTypeRequest) -> dict[str, Any]:
        try:
            row, col = parse_addr(req.ref)
            engine.set_cell_data_type(row, col, req.data_type)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return engine.view(row, col).model_dump(mode="json")

    @router.post("/cells/format")
    async def update_format(req: FormatRequest) -> dict[str, Any]:
        try:
            row, col = parse_addr(req.ref)
            engine.set_cell_formatting(row, col, req.formatting)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return engine.view(row, col).model_dump(mode="json")

    # -- Formula analysis --

    @router.get("/references")
    async def get_references(formula: str = Query(...)) -> dict[str, Any]:
        return {
            "references": [range_label(r) for r in engine.references(formula)],
            "dependencies": [key_label(k) for k in extract_dependency_keys(formula)],
        }

    # -- Selection --

    @router.get("/selection")
    async def get_selection() -> dict[str, Any]:
        return selection_state()

    @router.post("/selection/start")
    async def start_selection(req: SelectionStartRequest) -> dict[str, Any]:
        try:
            engine.start_selection(_pos(req.ref), extend=req.extend, inserting=req.inserting)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return selection_state()

    @router.post("/selection/extend")
    async def extend_selection(req: SelectionExtendRequest) -> dict[str, Any]:
        try:
            engine.extend_selection(_pos(req.ref))
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return selection_state()

    @router.post("/selection/end")
    async def end_selection() -> dict[str, Any]:
        inserted = engine.end_selection()
        state = selection_state()
        state["inserted"] = inserted.model_dump() if inserted is not None else None
        return state

    @router.post("/selection/clear")
    async def clear_selection() -> dict[str, Any]:
        engine.clear_selection()
        return selection_state()

    # -- Formula editing --

    @router.post("/edit/begin")
    async def begin_edit(req: EditBeginRequest) -> dict[str, Any]:
        try:
            row, col = parse_addr(req.ref)
            edit = engine.begin_formula_edit(row, col, req.text, req.cursor_pos)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return edit.model_dump()

    @router.post("/edit/update")
    async def update_edit(req: EditUpdateRequest) -> dict[str, Any]:
        try:
            edit = engine.update_formula_edit(req.text, req.cursor_pos)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return edit.model_dump()

    @router.post("/edit/commit")
    async def commit_edit() -> dict[str, Any]:
        edit = engine.commit_formula_edit()
        if edit is None:
            raise HTTPException(400, "No formula edit in progress")
        return engine.view(edit.row, edit.col).model_dump(mode="json")

    # -- Clipboard --

    @router.post("/clipboard/copy")
    async def copy(req: CopyRequest) -> dict[str, Any]:
        rng = parse_range(req.range)
        if rng is None:
            raise HTTPException(400, f"Invalid range: {req.range!r}")
        try:
            clip["data"] = engine.copy_range(rng, cut=req.cut)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return {"source": range_label(clip["data"].source), "cut": clip["data"].is_cut}

    @router.post("/clipboard/paste")
    async def paste(req: PasteRequest) -> dict[str, Any]:
        data = clip.get("data")
        if data is None:
            raise HTTPException(400, "Clipboard is empty")
        try:
            at = _pos(req.ref)
            clip["data"] = engine.paste(data, at)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        cells = [
            engine.view(at.row + i, at.col + j).model_dump(mode="json")
            for i in range(data.n_rows)
            for j in range(data.n_cols)
        ]
        return {"cells": cells, "cut": clip["data"].is_cut}

    # -- Axis sizes --

    @router.post("/axis/rows")
    async def set_row_height(req: AxisSizeRequest) -> dict[str, Any]:
        try:
            engine.set_row_height(req.index, req.size)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return {"index": req.index, "size": engine.rows.size(req.index), "total": engine.rows.total()}

    @router.post("/axis/cols")
    async def set_col_width(req: AxisSizeRequest) -> dict[str, Any]:
        try:
            engine.set_col_width(req.index, req.size)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return {"index": req.index, "size": engine.cols.size(req.index), "total": engine.cols.total()}

    return router
