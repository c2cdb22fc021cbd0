"""
Chart validator: shape detection and chart descriptors for catalogue results.
resolve_shape(result, declared) -> shape tag or None; build_chart(...) -> {type, x, y, label} or None.
If no chart comes back: table only.
"""
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

CHART_TYPES = ("bar", "line", "pie")

# shape -> (x key, y key, y label). x key None: resolved per result (see _x_key).
CHART_AXES: Dict[str, Tuple[Optional[str], str, str]] = {
    "approval-overview": ("status", "count", "Entries"),
    "entry-type-count": ("type", "count", "Entries"),
    "top-by-field": ("value", "count", "Entries"),
    "field-value-count": ("value", "count", "Entries"),
    "month-count": ("month", "count", "Entries"),
    "month-amount": ("month", "totalAmount", "Total Amount"),
    "vendor-count": ("vendorName", "count", "Entries"),
    "label-count": ("label", "count", "Entries"),
    "center-count": (None, "count", "Entries"),
    "vendor-concentration": ("vendorName", "percentage", "Share of Total Amount (%)"),
    "approval-rate": ("status", "percentage", "Percentage"),
    "approver-workload": ("approver", "count", "Entries"),
    "year-over-year": ("year", "totalAmount", "Total Amount"),
    "error-message-count": ("errorMessage", "count", "Entries"),
    "amount-range-count": ("range", "count", "Entries"),
    "status-count": ("status", "count", "Entries"),
    "vendor-summary": ("vendorName", "totalAmount", "Total Amount"),
    "dormant-vendors": ("vendorName", "monthsInactive", "Months Inactive"),
    "month-type-count": (None, "count", "Entries"),
    "amount-stats": (None, "value", "Amount"),
}

CENTER_KEYS = ("costCenter", "profitCenter", "businessArea")

# Fixed priority for untagged list results: (shape, keys that must be present, keys that must be absent).
# First match wins.
SNIFF_ORDER: List[Tuple[str, Tuple[str, ...], Tuple[str, ...]]] = [
    ("approval-overview", ("status", "count"), ("percentage", "field")),
    ("entry-type-count", ("type", "count"), ("month",)),
    ("top-by-field", ("value", "count"), ("field",)),
    ("field-value-count", ("field", "value", "count"), ()),
    ("month-count", ("month", "count"), ("type",)),
    ("month-amount", ("month", "totalAmount"), ()),
    ("vendor-count", ("vendorName", "count"), ("totalAmount",)),
    ("label-count", ("label", "count"), ()),
    ("center-count", ("costCenter", "count"), ()),
    ("center-count", ("profitCenter", "count"), ()),
    ("center-count", ("businessArea", "count"), ()),
    ("vendor-concentration", ("vendorName", "percentage"), ()),
    ("approval-rate", ("status", "percentage"), ()),
    ("approver-workload", ("approver", "count"), ()),
    ("year-over-year", ("year", "totalAmount"), ()),
    ("error-message-count", ("errorMessage", "count"), ()),
    ("amount-range-count", ("range", "count"), ()),
]

NO_CHART_SHAPES = {"row-preview", "facet"}


def sniff_shape(result: Any) -> Optional[str]:
    """Shape from the keys of the first element of a list result; None when nothing matches."""
    if not isinstance(result, list) or not result or not isinstance(result[0], dict):
        return None
    keys = set(result[0].keys())
    for shape, required, absent in SNIFF_ORDER:
        if keys.issuperset(required) and not keys.intersection(absent):
            return shape
    return None


def resolve_shape(result: Any, declared: Optional[str] = None) -> Optional[str]:
    """The operation's declared tag wins; untagged results fall back to sniffing."""
    if declared:
        return declared
    return sniff_shape(result)


def _x_key(shape: str, first: dict) -> Optional[str]:
    x_key, _, _ = CHART_AXES[shape]
    if x_key:
        return x_key
    if shape == "center-count":
        return next((k for k in CENTER_KEYS if k in first), None)
    return None


def _rows_for_chart(result: Any, shape: str) -> List[dict]:
    if shape == "amount-stats" and isinstance(result, dict):
        return [{"label": k, "value": v} for k, v in result.items()]
    if shape == "month-type-count" and isinstance(result, list):
        return [{"label": f"{r.get('month')} {r.get('type')}", "count": r.get("count")} for r in result if isinstance(r, dict)]
    if isinstance(result, dict):
        return [result]
    if isinstance(result, list):
        return [r for r in result if isinstance(r, dict)]
    return []


def build_chart(result: Any, shape: Optional[str], graph_type: Optional[str] = "bar") -> Optional[dict]:
    """
    Chart descriptor {type, x, y, label} or None.

    Rules:
    1. Shape must have a chart mapping (row previews and facets never do).
    2. x and y columns must exist; y must be numeric (rows with a non-numeric y are dropped).
    3. Axes must be non-empty and of equal length.
    """
    if not shape or shape in NO_CHART_SHAPES or shape not in CHART_AXES:
        return None
    rows = _rows_for_chart(result, shape)
    if not rows:
        return None
    if shape in ("amount-stats", "month-type-count"):
        x_key = "label"
    else:
        x_key = _x_key(shape, rows[0])
    _, y_key, label = CHART_AXES[shape]
    df = pd.DataFrame(rows)
    if x_key is None or x_key not in df.columns or y_key not in df.columns:
        return None

    df = df[[x_key, y_key]].copy()
    df[y_key] = pd.to_numeric(df[y_key], errors="coerce")
    df = df.dropna(subset=[x_key, y_key])
    if df.empty:
        return None

    chart = {
        "type": graph_type if graph_type in CHART_TYPES else "bar",
        "x": [str(v) for v in df[x_key].tolist()],
        "y": df[y_key].tolist(),
        "label": label,
    }
    return chart if validate_chart(chart) else None


def validate_chart(chart: Optional[Dict[str, Any]]) -> bool:
    """Non-empty x and y of equal length, known chart type."""
    if not chart:
        return False
    x, y = chart.get("x"), chart.get("y")
    if not x or not y or len(x) != len(y):
        return False
    return chart.get("type") in CHART_TYPES
