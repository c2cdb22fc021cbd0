"""
Response agent: shapes the /ask payload: {answer, data, graph, presentType, status, operation}.
Bounded previews always disclose the true total. No LLM text generation here; the decision's
message is used as-is.
"""
import logging
from typing import Any, Optional, Tuple

from utils.chart_validator import build_chart, resolve_shape

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 50

ANSWERED = "answered"
FAILED = "failed"

DEFAULT_ANSWER = "Here's a summary of the requested data."
NO_DATA_ANSWER = "No data found for your query."
FAILED_ANSWER = "Something went wrong while running this query. Please try again later."
GUIDANCE = {
    "low_confidence": "I'm not confident I understood the question. Try rephrasing it, e.g. 'top 5 vendors' or 'credit vs debit'.",
    "unknown_operation": "That question isn't supported yet. Try asking about vendors, amounts, approvals, cost centers or monthly trends.",
    "unparseable": "I couldn't interpret that question. Please rephrase it.",
    "classifier_error": "I couldn't process the question right now. Please try again in a moment.",
    "invalid_parameters": "Some details in the question are not valid.",
    "empty_question": "Please ask a question about your data.",
}


def _disclosure(shown: int, total: int) -> str:
    return f"Showing first {shown} of {total} results."


def _preview(result: Any, shape: Optional[str]) -> Tuple[Any, Optional[str], bool]:
    """(data, disclosure sentence or None, is_empty)."""
    if isinstance(result, list):
        if not result:
            return [], None, True
        if len(result) > PREVIEW_LIMIT:
            return result[:PREVIEW_LIMIT], _disclosure(PREVIEW_LIMIT, len(result)), False
        return result, None, False
    if isinstance(result, dict) and shape == "facet":
        rows = result.get("rows") or []
        total = int(result.get("totalCount") or 0)
        if total == 0:
            return result, None, True
        if total > len(rows):
            return result, _disclosure(len(rows), total), False
        return result, None, False
    return result, None, result is None


def respond(decision: Any, operation: Any, tagged: dict) -> dict:
    """
    Build the answered payload from a tagged result {shape, payload}.
    Chart only when the decision asks for one, the operation is not a row preview and the shape maps to axes.
    """
    result = tagged.get("payload")
    shape = resolve_shape(result, tagged.get("shape"))
    data, disclosure, empty = _preview(result, shape)

    graph = None
    if decision.graph and not operation.row_preview and not empty:
        graph = build_chart(data if isinstance(data, list) else result, shape, decision.graph_type)

    if empty:
        answer = NO_DATA_ANSWER
    else:
        answer = decision.message or DEFAULT_ANSWER
        if disclosure:
            answer = f"{answer} {disclosure}"

    logger.info(
        "response_shaped: operation=%s shape=%s chart_rendered=%s truncated=%s",
        operation.name, shape, graph is not None, disclosure is not None,
    )
    return {
        "answer": answer,
        "data": [] if data is None else data,
        "graph": graph,
        "presentType": graph["type"] if graph else "table",
        "status": ANSWERED,
        "operation": operation.name,
    }


def rejection(reason: str, detail: Optional[str] = None, operation: Optional[str] = None) -> dict:
    """Safe fallback: HTTP 200, empty data, guidance message."""
    answer = GUIDANCE.get(reason, GUIDANCE["unparseable"])
    if detail:
        answer = f"{answer} {detail}"
    return {
        "answer": answer,
        "data": [],
        "graph": None,
        "presentType": "table",
        "status": reason,
        "operation": operation,
    }


def failure(operation: Optional[str]) -> dict:
    """Execution failure payload (served with HTTP 500)."""
    return {
        "answer": FAILED_ANSWER,
        "data": [],
        "graph": None,
        "presentType": "table",
        "status": FAILED,
        "operation": operation,
    }
