"""gridcalc -- in-memory reactive spreadsheet engine.

Public API::

    from gridcalc import SpreadsheetEngine

    engine = SpreadsheetEngine()
    engine.set_ref("A1", 10)
    engine.set_ref("B1", '=cell("A1") * 2')
    engine.get_ref("B1").display_value  # "20"
"""

__version__ = "0.1.0"

from gridcalc.engine import SpreadsheetEngine  # noqa: E402

__all__ = ["SpreadsheetEngine", "__version__"]
