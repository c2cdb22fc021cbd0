"""
Query router: deterministic rules around intent classification.

1. apply_rules(decision, question): runs after EVERY classifier (LLM or rule-based). Enforces literal
   amount parsing with explicit units, limits only from explicit digits, the three canonical status
   values, phrase overrides and chart defaults. Logged.
2. RuleBasedClassifier: ordered regex routing table producing the same Decision. Used without a
   GROQ_API_KEY and as the reproducible classifier in tests.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from agents.analyst import InvalidParameters
from agents.catalogue import Operation, get_operation
from agents.planner import GRAPH_TYPES, Decision
from db.models import STATUS_VALUES
from utils.field_resolver import fields_mentioned

logger = logging.getLogger(__name__)

RULE_CONFIDENCE = 0.9
FIELD_GUESS_CONFIDENCE = 0.75
NO_MATCH_CONFIDENCE = 0.2

# ---------------------------------------------------------------------------
# Phrase overrides (precedence over any classifier output)
# ---------------------------------------------------------------------------
CREDIT_DEBIT_RE = re.compile(
    r"\bcredit\s*(?:vs\.?|versus|and|&|/)\s*debit\b"
    r"|\bdebit\s*(?:vs\.?|versus|and|&|/)\s*credit\b"
    r"|\bdebit\s+entries\s+(?:vs\.?|versus)\s+credit\s+entries\b"
    r"|\bcredit\s+entries\s+(?:vs\.?|versus)\s+debit\s+entries\b"
    r"|\bjournal\s+entry\s+types?\b"
    r"|\bentry\s+types?\s+distribution\b",
    re.IGNORECASE,
)
APPROVAL_OVERVIEW_RE = re.compile(r"\bapproval\s+(?:status\s+)?(?:overview|summary)\b", re.IGNORECASE)
MONTHLY_RE = re.compile(
    r"\b(?:monthly|month[\s-]*wise|this\s+month|previous\s+months|trend\s+over\s+time|per\s+month|by\s+month)\b",
    re.IGNORECASE,
)
AMOUNT_WORD_RE = re.compile(r"\b(?:amounts?|values?|spend|spending|spent)\b", re.IGNORECASE)
NO_CHART_RE = re.compile(r"\b(?:no\s+(?:chart|graph)|without\s+(?:a\s+)?(?:chart|graph)|table\s+only|only\s+(?:a\s+)?table)\b", re.IGNORECASE)
CHART_TYPE_RE = re.compile(r"\b(pie|line|bar)\s+(?:chart|graph)\b", re.IGNORECASE)

# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------
LEVEL_RE = re.compile(r"\b(?:l|level)\s*-?\s*([12])\b", re.IGNORECASE)
STATUS_RE = re.compile(r"\b(approved|rejected|pending)\b", re.IGNORECASE)
OTHER_STATUS_RE = re.compile(
    r"\b(declined|cancell?ed|on\s+hold|completed|failed|returned|draft|submitted|denied|accepted)\b",
    re.IGNORECASE,
)
LIMIT_RES = [
    re.compile(r"\b(?:top|first|bottom|largest|biggest|highest)\s+(\d{1,5})\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,5})\s+(?:largest|biggest|highest|top|most|leading)\b", re.IGNORECASE),
    re.compile(
        r"\b(\d{1,5})\s+(?:vendors?|suppliers?|cost\s*cent(?:er|re)s?|profit\s*cent(?:er|re)s?|business\s+areas?|values?)\b",
        re.IGNORECASE,
    ),
]
ISO_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")

_NUM = r"(?:₹|rs\.?|inr|\$)?\s*(\d[\d,]*(?:\.\d+)?)\s*(k\b|thousand\b|lakhs?\b|lacs?\b)?"
BETWEEN_RE = re.compile(r"\bbetween\s+" + _NUM + r"\s+(?:and|to|-)\s+" + _NUM, re.IGNORECASE)
MIN_EXCLUSIVE_RE = re.compile(r"(?:\bgreater\s+than|\bmore\s+than|\babove|\bover|\bexceeding|\bexceeds|>(?!=))\s*" + _NUM, re.IGNORECASE)
MIN_INCLUSIVE_RE = re.compile(r"(?:\bat\s+least|\bminimum(?:\s+of)?|\bnot\s+less\s+than|>=)\s*" + _NUM, re.IGNORECASE)
MAX_EXCLUSIVE_RE = re.compile(r"(?:\bless\s+than|\bbelow|\bunder|<(?!=))\s*" + _NUM, re.IGNORECASE)
MAX_INCLUSIVE_RE = re.compile(r"(?:\bat\s+most|\bup\s*to|\bmaximum(?:\s+of)?|\bnot\s+more\s+than|<=)\s*" + _NUM, re.IGNORECASE)

UNIT_MULTIPLIERS = {"k": 1_000, "thousand": 1_000, "lakh": 100_000, "lac": 100_000}

AMOUNT_PARAM_KEYS = {"min", "max", "mininclusive", "maxinclusive", "minamount", "maxamount", "min_amount",
                     "max_amount", "from", "to", "gte", "gt", "lte", "lt", "above", "below", "greaterthan",
                     "lessthan", "lower", "upper", "min_inclusive", "max_inclusive"}
LIMIT_PARAM_KEYS = {"limit", "n", "top", "topn", "top_n", "count"}


def scale_amount(number: str, unit: Optional[str]) -> float:
    """Literal number; explicit unit words scale it, nothing else does."""
    value = float(number.replace(",", ""))
    if unit:
        key = unit.lower().rstrip("s")
        value *= UNIT_MULTIPLIERS.get(key, 1)
    return value


def extract_amount_bounds(question: str) -> Dict[str, Any]:
    """
    {min?, max?, minInclusive, maxInclusive} from comparison words. Empty dict when the question
    states no bound. A one-sided bound stays one-sided.
    """
    q = question or ""
    m = BETWEEN_RE.search(q)
    if m:
        a, b = scale_amount(m.group(1), m.group(2)), scale_amount(m.group(3), m.group(4))
        return {"min": min(a, b), "max": max(a, b), "minInclusive": True, "maxInclusive": True}
    out: Dict[str, Any] = {}
    for regex, key, inclusive in (
        (MIN_INCLUSIVE_RE, "min", True),
        (MIN_EXCLUSIVE_RE, "min", False),
        (MAX_INCLUSIVE_RE, "max", True),
        (MAX_EXCLUSIVE_RE, "max", False),
    ):
        if key in out:
            continue
        m = regex.search(q)
        if m:
            out[key] = scale_amount(m.group(1), m.group(2))
            out[f"{key}Inclusive"] = inclusive
    return out


def extract_limit(question: str) -> Optional[int]:
    for regex in LIMIT_RES:
        m = regex.search(question or "")
        if m:
            n = int(m.group(1))
            return n if n > 0 else None
    return None


def extract_level(question: str) -> Optional[str]:
    m = LEVEL_RE.search(question or "")
    return f"L{m.group(1)}" if m else None


def extract_status(question: str) -> Optional[str]:
    m = STATUS_RE.search(question or "")
    if not m:
        return None
    return {s.lower(): s for s in STATUS_VALUES}[m.group(1).lower()]


def extract_status_field(question: str) -> Optional[str]:
    level = extract_level(question)
    if level:
        return f"{level}ApproverStatus"
    if re.search(r"\binitiator\b", question or "", re.IGNORECASE):
        return "InitiatorStatus"
    return None


def extract_dates(question: str) -> List[str]:
    return ISO_DATE_RE.findall(question or "")


_VENDOR_STOP = r"(?:\s+(?:monthly|trend|trends|this\s+month|vs\.?|versus|average|avg|entries|transactions|details|per\s+month|over\s+time)\b|[?.!]*$)"
VENDOR_RES = [
    re.compile(r"[\"“]([^\"”]{2,})[\"”]"),
    re.compile(r"\bvendor\s+(?:named\s+|called\s+)?(.+?)" + _VENDOR_STOP, re.IGNORECASE),
    re.compile(r"\b(?:for|of|from|by)\s+(?:the\s+)?(.+?)" + _VENDOR_STOP, re.IGNORECASE),
    re.compile(r"^(?:show\s+(?:me\s+)?)?(.+?)\s+(?:monthly\s+)?trend\b", re.IGNORECASE),
    re.compile(r"^(?:show\s+(?:me\s+)?)?(.+?)\s+this\s+month\b", re.IGNORECASE),
]


def extract_vendor(question: str) -> Optional[str]:
    for regex in VENDOR_RES:
        m = regex.search(question or "")
        if not m:
            continue
        name = re.sub(r"^(?:vendor|supplier)\s+", "", m.group(1).strip(), flags=re.IGNORECASE)
        name = name.strip(" ?.!,")
        if name and name.lower() not in ("vendor", "vendors", "entries", "all"):
            return name
    return None


# ---------------------------------------------------------------------------
# Deterministic rules over any classifier's decision
# ---------------------------------------------------------------------------
def _override(decision: Decision, question: str) -> None:
    if CREDIT_DEBIT_RE.search(question):
        target, params = "countAllJournalEntryTypes", {}
    elif APPROVAL_OVERVIEW_RE.search(question) and extract_level(question):
        target, params = "getApprovalOverview", {"level": extract_level(question)}
    elif MONTHLY_RE.search(question) and AMOUNT_WORD_RE.search(question):
        target, params = "amountMonthlyTrend", {}
    else:
        return
    if decision.operation != target or decision.parameters != params:
        logger.info("rule_override: from=%s to=%s params=%s", decision.operation, target, params)
    decision.operation = target
    decision.parameters = params
    decision.confidence = max(decision.confidence, RULE_CONFIDENCE)


def _drop_keys(params: Dict[str, Any], keys: set) -> Dict[str, Any]:
    return {k: v for k, v in params.items() if str(k).strip().lower() not in keys}


def _apply_amounts(decision: Decision, question: str) -> None:
    bounds = extract_amount_bounds(question)
    if bounds:
        decision.parameters = _drop_keys(decision.parameters, AMOUNT_PARAM_KEYS)
        decision.parameters.update(bounds)


def _given_limit(params: Dict[str, Any], question: str) -> Optional[int]:
    """A classifier-supplied limit, kept only when that integer is written in the question."""
    typed = set(re.findall(r"(?<![\d.,])\d+(?!\d|[.,]\d)", question or ""))
    for key, value in params.items():
        if str(key).strip().lower() not in LIMIT_PARAM_KEYS:
            continue
        try:
            n = int(str(value).strip())
        except ValueError:
            continue
        if n > 0 and str(n) in typed:
            return n
    return None


def _apply_limit(decision: Decision, op: Operation, question: str) -> None:
    if not any(p.name == "limit" for p in op.params):
        return
    params = _drop_keys(decision.parameters, LIMIT_PARAM_KEYS)
    limit = extract_limit(question)
    if limit is None:
        limit = _given_limit(decision.parameters, question)
    if limit is not None:
        params["limit"] = limit
    elif params != decision.parameters:
        logger.info("limit_removed: operation=%s reason=not_in_question", op.name)
    decision.parameters = params


def _apply_status(decision: Decision, question: str) -> None:
    status = extract_status(question)
    if status:
        decision.parameters["status"] = status
    else:
        given = decision.parameters.get("status")
        canonical = {s.lower() for s in STATUS_VALUES}
        if OTHER_STATUS_RE.search(question) or (given is not None and str(given).strip().lower() not in canonical):
            raise InvalidParameters("Status must be one of Approved, Rejected or Pending.")
    field = extract_status_field(question)
    if field:
        decision.parameters["field"] = field
    elif not decision.parameters.get("field"):
        decision.parameters["field"] = "InitiatorStatus"


def _apply_graph(decision: Decision, op: Operation, question: str) -> None:
    decision.query_type = op.query_type
    if op.row_preview or not op.chart:
        decision.graph = False
        decision.graph_type = None
        return
    decision.graph = not NO_CHART_RE.search(question)
    asked = CHART_TYPE_RE.search(question)
    if asked:
        decision.graph_type = asked.group(1).lower()
    elif decision.graph_type not in GRAPH_TYPES:
        decision.graph_type = "bar"
    if not decision.graph:
        decision.graph_type = None


def apply_rules(decision: Decision, question: str) -> Decision:
    """
    Enforce the deterministic rules in place and return the decision.
    Raises InvalidParameters when the question names a status outside Approved/Rejected/Pending
    for a status-count operation.
    """
    q = question or ""
    decision.confidence = max(0.0, min(1.0, float(decision.confidence or 0.0)))
    decision.parameters = dict(decision.parameters or {})
    _override(decision, q)

    op = get_operation(decision.operation)
    if op is None:
        return decision
    if op.name == "getEntriesByAmount":
        _apply_amounts(decision, q)
    _apply_limit(decision, op, q)
    if op.name == "getEntriesByStatus":
        _apply_status(decision, q)
    if op.name in ("getApprovalOverview", "getApprovalRates", "getApproverWorkload"):
        level = extract_level(q)
        if level:
            decision.parameters["level"] = level
    _apply_graph(decision, op, q)
    logger.info(
        "rules_applied: operation=%s params=%s graph=%s graph_type=%s",
        op.name, decision.parameters, decision.graph, decision.graph_type,
    )
    return decision


# ---------------------------------------------------------------------------
# Rule-based classifier
# ---------------------------------------------------------------------------
def _vendor_params(q: str) -> Optional[Dict[str, Any]]:
    vendor = extract_vendor(q)
    return {"vendor": vendor} if vendor else None


def _dormant_params(q: str) -> Dict[str, Any]:
    m = re.search(r"\b(\d{1,3})\s*months?\b", q, re.IGNORECASE)
    return {"months": int(m.group(1))} if m else {}


def _outlier_params(q: str) -> Dict[str, Any]:
    m = re.search(r"\b(\d+(?:\.\d+)?)\s*(?:std|standard|sigma|deviations?)", q, re.IGNORECASE)
    return {"threshold": float(m.group(1))} if m else {}


def _date_params(q: str) -> Optional[Dict[str, Any]]:
    dates = extract_dates(q)
    if len(dates) < 2:
        return None
    field = "PostingDate" if re.search(r"\bposting\b", q, re.IGNORECASE) else "DocumentDate"
    return {"start": dates[0], "end": dates[1], "field": field}


def _cost_center_params(q: str) -> Optional[Dict[str, Any]]:
    m = re.search(r"\bcost\s*cent(?:er|re)\s+([A-Za-z0-9\-_/]+)", q, re.IGNORECASE)
    if not m or m.group(1).lower() in ("monthly", "trend", "distribution", "wise"):
        return None
    return {"costCenter": m.group(1)}


def _document_params(q: str) -> Optional[Dict[str, Any]]:
    m = re.search(r"\b(?:document|doc|wid)\s*(?:number|no\.?|#)?\s*:?\s*([A-Za-z0-9\-_/]*\d[A-Za-z0-9\-_/]*)", q, re.IGNORECASE)
    return {"document": m.group(1)} if m else None


def _level_params(q: str) -> Dict[str, Any]:
    level = extract_level(q)
    return {"level": level} if level else {}


def _field_params(q: str) -> Optional[Dict[str, Any]]:
    fields = fields_mentioned(q)
    return {"field": fields[0]} if fields else None


# (pattern, operation, params builder or None). First match whose builder does not return None wins.
ROUTES = [
    (r"\b(?:credit|debit)\b.*\b(?:monthly|per\s+month|month[\s-]*wise|trend)\b|\b(?:monthly|trend)\b.*\b(?:credit|debit)\b",
     "creditDebitMonthlyTrend", None),
    (r"\bcredit\b|\bdebit\b|\bentry\s+types?\b", "countAllJournalEntryTypes", None),
    (r"\bapproval\s+(?:status\s+)?(?:overview|summary|breakdown|distribution)\b", "getApprovalOverview", _level_params),
    (r"\bapproval\s+rates?\b|\b(?:approval|status)\s+percentages?\b|\bpercentage\s+of\s+(?:approved|rejected|pending)\b",
     "getApprovalRates", _level_params),
    (r"\bapprover\s+workload\b|\bworkload\b|\bper\s+approver\b|\bby\s+approver\b", "getApproverWorkload", _level_params),
    (r"\b(?:approved|rejected|pending|declined|cancell?ed|on\s+hold)\b", "getEntriesByStatus", lambda q: {}),
    (r"\b(?:dormant|inactive)\b", "getDormantVendors", _dormant_params),
    (r"\bconcentration\b|\bvendor\s+share\b|\bshare\s+of\s+(?:total|spend)", "getVendorConcentration", lambda q: {}),
    (r"\baverage\s+transaction\b|\bavg\s+transaction\b|\baverage\b.*\bvendor\b", "getVendorAverageTransaction", _vendor_params),
    (r"\bthis\s+month\s+(?:vs\.?|versus|and|compared\s+to)\s+last\s+month\b", "vendorThisVsLastMonth", _vendor_params),
    (r"\bcost\s*cent(?:er|re)\b.*\b(?:monthly|trend)\b", "costCenterMonthlyTrend", _cost_center_params),
    (r"\bamounts?\b.*\b(?:monthly|trend|per\s+month)\b|\b(?:monthly|trend)\b.*\bamounts?\b", "amountMonthlyTrend", lambda q: {}),
    (r"\bmonthly\s+trend\b|\btrend\b", "vendorMonthlyTrend", _vendor_params),
    (r"\btop\b.*\bcost\s*cent(?:er|re)s?\b|\b\d{1,5}\s+cost\s*cent(?:er|re)s\b.*\b(?:most|highest|largest)\b", "topCostCenters", lambda q: {}),
    (r"\bcost\s*cent(?:er|re)s?\b", "getCostCenterDistribution", lambda q: {}),
    (r"\btop\b.*\bprofit\s*cent(?:er|re)s?\b|\b\d{1,5}\s+profit\s*cent(?:er|re)s\b.*\b(?:most|highest|largest)\b", "topProfitCenters", lambda q: {}),
    (r"\bprofit\s*cent(?:er|re)s?\b", "getProfitCenterDistribution", lambda q: {}),
    (r"\bbusiness\s+areas?\b", "getBusinessAreaDistribution", lambda q: {}),
    (r"\btop\b.*\b(?:vendors?|suppliers?)\b|\b(?:vendors?|suppliers?)\b.*\b(?:most|highest)\s+entries\b", "topVendors", lambda q: {}),
    (r"\bmonth\s+over\s+month\b|\bmom\b", "getMonthOverMonthComparison", lambda q: {}),
    (r"\byear\s+over\s+year\b|\byoy\b|\byearly\b|\bper\s+year\b|\bby\s+year\b", "getYearOverYearComparison", lambda q: {}),
    (r"\boutliers?\b|\banomal(?:y|ies)\b|\bunusual\b", "detectAmountOutliers", _outlier_params),
    (r"\bamount\s+(?:ranges?|buckets?|bands?)\b|\brange\s+summary\b", "getAmountRangeSummary", lambda q: {}),
    (r"\berrors?\b|\berror\s+messages?\b|\bfailed\s+documents?\b", "getDocumentsWithErrors", lambda q: {}),
    (r"\breversals?\b|\breversed\b", "getReversalDocuments", lambda q: {}),
    (r"\b(?:document|doc|wid)\b", "getDocumentDetails", _document_params),
    (r"\d{4}-\d{2}-\d{2}.*\d{4}-\d{2}-\d{2}", "getEntriesByDate", _date_params),
    (r"(?:greater\s+than|more\s+than|above|over|exceeding|less\s+than|below|under|at\s+least|at\s+most|between|[<>])\s*(?:₹|rs\.?|inr|\$)?\s*\d",
     "getEntriesByAmount", extract_amount_bounds),
    (r"\b(?:entries|transactions|rows)\s+(?:for|of|from|by)\b|\bvendor\s+\S+", "getEntriesByVendor", _vendor_params),
    (r"\b(?:average|avg|mean|total|sum|maximum|max|minimum|min|highest|lowest)\b.*\bamounts?\b|\bamount\s+stat", "amountStats", lambda q: {}),
    (r"\b(?:most\s+common|most\s+frequent)\b", "topByField", _field_params),
    (r"\b(?:distribution|breakdown|count\s+by|group\s+by|per)\b", "countByField", _field_params),
    (r"\bhow\s+many\s+(?:entries|rows|records|transactions)\b|\btotal\s+(?:number\s+of\s+)?entries\b|\bcount\s+(?:all\s+)?entries\b",
     "countAllEntries", lambda q: {}),
]
_COMPILED_ROUTES = [(re.compile(p, re.IGNORECASE), op, builder) for p, op, builder in ROUTES]

MESSAGES = {
    "row-preview": "Here are the matching entries.",
    "facet": "Here are the matching entries.",
    "month-count": "This view shows how activity changes month by month.",
    "month-amount": "This view shows how amounts change month by month.",
    "month-type-count": "This view shows entry types month by month.",
    "year-over-year": "Here is a year-by-year comparison.",
    "amount-stats": "Here is a summary of the amounts.",
    "status-count": "Here is the count for the requested status.",
}
DEFAULT_MESSAGE = "This view shows how the information is distributed."
GUIDANCE_MESSAGE = (
    "I couldn't map your question to a supported query. Try phrases like 'top 5 vendors', "
    "'credit vs debit', 'entries above 50000' or 'L1 approval overview'."
)


class RuleBasedClassifier:
    """classify(question, catalogue_description) -> Decision from an ordered regex table."""

    def classify(self, question: str, catalogue_description: str = "") -> Decision:
        q = (question or "").strip()
        for regex, op_name, builder in _COMPILED_ROUTES:
            if not regex.search(q):
                continue
            params = builder(q) if builder else {}
            if params is None:
                continue
            op = get_operation(op_name)
            confidence = FIELD_GUESS_CONFIDENCE if op_name in ("countByField", "topByField") else RULE_CONFIDENCE
            logger.info("router_decision: operation=%s pattern=%s", op_name, regex.pattern[:40])
            return Decision(
                intent=op_name,
                message=MESSAGES.get(op.shape, DEFAULT_MESSAGE),
                query_type=op.query_type,
                operation=op_name,
                parameters=dict(params),
                graph=op.chart,
                graph_type="bar" if op.chart else None,
                confidence=confidence,
            )
        logger.info("router_decision: no_match")
        return Decision(intent="unknown", message=GUIDANCE_MESSAGE, confidence=NO_MATCH_CONFIDENCE)
