"""
Orchestrator: validator and dispatcher for one question.

received -> classified -> {validated, rejected} -> {executed, failed} -> responded

Rejections (low confidence, unknown operation, unparseable reply, classifier error, invalid
parameters) are safe fallbacks served with HTTP 200. Failures (any exception while loading entries
or running the operation) are served with HTTP 500. Every transition is logged.
"""
import logging
from typing import Any, Callable, List, Optional, Tuple

from .analyst import InvalidParameters
from .catalogue import adapt_parameters, describe_catalogue, get_operation
from .data_agent import load_entries
from .planner import GROQ_API_KEY, ClassificationError, Decision, LLMClassifier
from .responder import failure, rejection, respond
from utils.query_normalizer import normalize_query
from utils.query_router import RuleBasedClassifier, apply_rules

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.7


def default_classifier():
    """Groq-backed classifier when GROQ_API_KEY is set, otherwise the rule-based one."""
    if GROQ_API_KEY:
        return LLMClassifier()
    logger.info("classifier_fallback: GROQ_API_KEY not set, using rule-based classifier")
    return RuleBasedClassifier()


def _transition(state: str, **fields: Any) -> None:
    detail = " ".join(f"{k}={v}" for k, v in fields.items())
    logger.info("state_transition: %s %s", state, detail)


def _reject(reason: str, detail: Optional[str] = None, operation: Optional[str] = None) -> Tuple[dict, int]:
    _transition("rejected", reason=reason, operation=operation, detail=detail)
    payload = rejection(reason, detail, operation)
    _transition("responded", status=reason, http=200)
    return payload, 200


def run(
    question: str,
    classifier: Any = None,
    loader: Optional[Callable[[], List[dict]]] = None,
    vocabulary: Optional[Callable[[], List[str]]] = None,
) -> Tuple[dict, int]:
    """
    Answer one question. Returns (payload, http_status).
    classifier: anything with classify(question, catalogue_description) -> Decision.
    loader: returns the entry list (default: data_agent.load_entries).
    vocabulary: returns vendor names for typo correction (optional, best-effort).
    """
    q = (question or "").strip()
    _transition("received", length=len(q))
    if not q:
        return _reject("empty_question")

    vendor_names: List[str] = []
    if vocabulary is not None:
        try:
            vendor_names = vocabulary()
        except Exception as e:
            logger.warning("vocabulary_unavailable: error=%s", e)
    normalized = normalize_query(q, vendor_names)
    normalized_query = normalized["normalized_query"] or q
    if normalized["correction_map"]:
        logger.info("corrections applied: %s", normalized["correction_map"])

    classifier = classifier or default_classifier()
    try:
        decision: Decision = classifier.classify(normalized_query, describe_catalogue())
    except ClassificationError as e:
        return _reject(e.reason, operation=None)
    except Exception as e:
        logger.warning("classifier_error: type=%s error=%s", type(e).__name__, e)
        return _reject("classifier_error")
    _transition("classified", operation=decision.operation, confidence=f"{decision.confidence:.2f}")

    try:
        apply_rules(decision, normalized_query)
    except InvalidParameters as e:
        return _reject("invalid_parameters", str(e), decision.operation)

    if decision.confidence < CONFIDENCE_THRESHOLD:
        return _reject("low_confidence", operation=decision.operation)
    op = get_operation(decision.operation)
    if op is None:
        return _reject("unknown_operation", operation=decision.operation)
    try:
        kwargs = adapt_parameters(op, decision.parameters)
    except InvalidParameters as e:
        return _reject("invalid_parameters", str(e), op.name)
    _transition("validated", operation=op.name, params=kwargs)

    try:
        entries = (loader or load_entries)()
        result = op.func(entries, **kwargs)
    except InvalidParameters as e:
        return _reject("invalid_parameters", str(e), op.name)
    except Exception:
        logger.exception("operation_failed: operation=%s params=%s", op.name, kwargs)
        _transition("failed", operation=op.name)
        payload = failure(op.name)
        _transition("responded", status="failed", http=500)
        return payload, 500
    _transition("executed", operation=op.name, shape=op.shape)

    payload = respond(decision, op, {"shape": op.shape, "payload": result})
    _transition("responded", status=payload["status"], http=200)
    return payload, 200
