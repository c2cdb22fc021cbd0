"""
Query catalogue: the closed, versioned set of operations a question can be routed to.

Each Operation declares its wire name, parameter signature (kinds, defaults, domains, aliases),
output shape tag and chart default. adapt_parameters maps whatever parameter names a classifier
produced onto the Python signature of the operation.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from agents import analyst, trends
from agents.analyst import InvalidParameters
from db.models import DATE_FIELDS, ENTRY_FIELDS, STATUS_FIELDS, STATUS_VALUES
from utils.field_resolver import resolve_field
from utils.normalizer import parse_amount, parse_date

logger = logging.getLogger(__name__)

CATALOGUE_VERSION = "1.0"

AGGREGATE = "AGGREGATE"
SPECIFIC = "SPECIFIC"

LEVELS = ("L1", "L2")

_TRUE = {"true", "yes", "1", "inclusive", "y"}
_FALSE = {"false", "no", "0", "exclusive", "n"}


@dataclass
class Param:
    name: str                       # wire name used by classifiers
    kind: str = "str"               # str | int | float | bool | date | field | choice | level
    required: bool = False
    default: Any = None
    choices: Optional[Tuple[str, ...]] = None
    aliases: Tuple[str, ...] = ()
    arg: Optional[str] = None       # Python keyword when it differs from name

    @property
    def keyword(self) -> str:
        return self.arg or self.name


@dataclass
class Operation:
    name: str
    func: Callable[..., Any]
    shape: str
    description: str
    params: List[Param] = field(default_factory=list)
    query_type: str = AGGREGATE
    chart: bool = True
    row_preview: bool = False

    def signature(self) -> str:
        parts = []
        for p in self.params:
            s = p.name
            if p.choices:
                s += " in " + "|".join(p.choices)
            if not p.required:
                s = f"[{s}={p.default}]" if p.default is not None else f"[{s}]"
            parts.append(s)
        return f"{self.name}({', '.join(parts)})"


_VENDOR = Param("vendor", required=True, aliases=("vendorName", "vendor_name", "name", "JournalEntryVendorName"))
_LIMIT = Param("limit", kind="int", aliases=("n", "top", "topN", "top_n", "count"))
_LEVEL = Param("level", kind="level", default="L1", choices=LEVELS, aliases=("approvalLevel", "approval_level"))
_REFERENCE = Param("reference", kind="date", aliases=("referenceDate", "reference_date", "asOf", "as_of", "date"))

_OPERATIONS: List[Operation] = [
    Operation("countAllEntries", analyst.count_all_entries, "label-count",
              "Total number of ledger entries."),
    Operation("countAllJournalEntryTypes", analyst.count_all_journal_entry_types, "entry-type-count",
              "Entry type distribution (credit vs debit), trimmed and upper-cased."),
    Operation("countByField", analyst.count_by_field, "field-value-count",
              "Count of entries per distinct value of one field.",
              [Param("field", kind="field", required=True, aliases=("column", "groupBy", "group_by", "by"))]),
    Operation("topByField", analyst.top_by_field, "top-by-field",
              "Most frequent values of one field.",
              [Param("field", kind="field", required=True, aliases=("column", "groupBy", "group_by", "by")), _LIMIT]),
    Operation("topVendors", analyst.top_vendors, "vendor-count",
              "Vendors with the most entries.", [_LIMIT]),
    Operation("amountStats", analyst.amount_stats, "amount-stats",
              "Total, average, maximum and minimum amount over entries with a valid amount."),
    Operation("getEntriesByDate", analyst.get_entries_by_date, "vendor-summary",
              "Vendor-wise count and total amount between two dates (inclusive).",
              [Param("start", kind="date", required=True, aliases=("startDate", "start_date", "from", "dateFrom", "fromDate")),
               Param("end", kind="date", required=True, aliases=("endDate", "end_date", "to", "dateTo", "toDate")),
               Param("field", kind="field", default="DocumentDate", choices=DATE_FIELDS, aliases=("dateField", "date_field"))]),
    Operation("getEntriesByStatus", analyst.get_entries_by_status, "status-count",
              "Number of entries with one approval status on one status field.",
              [Param("field", kind="field", required=True, choices=STATUS_FIELDS, aliases=("statusField", "status_field", "level")),
               Param("status", kind="choice", required=True, choices=STATUS_VALUES, aliases=("value", "statusValue"))]),
    Operation("getCostCenterDistribution", analyst.get_cost_center_distribution, "center-count",
              "All cost centers with entry counts."),
    Operation("topCostCenters", analyst.top_cost_centers, "center-count",
              "Cost centers with the most entries.", [_LIMIT]),
    Operation("costCenterMonthlyTrend", trends.cost_center_monthly_trend, "month-count",
              "Monthly entry count for one cost center.",
              [Param("costCenter", required=True, arg="cost_center",
                     aliases=("cost_center", "center", "JournalEntryCostCenter", "value"))]),
    Operation("getProfitCenterDistribution", analyst.get_profit_center_distribution, "center-count",
              "All profit centers with entry counts."),
    Operation("topProfitCenters", analyst.top_profit_centers, "center-count",
              "Profit centers with the most entries.", [_LIMIT]),
    Operation("getBusinessAreaDistribution", analyst.get_business_area_distribution, "center-count",
              "All business areas with entry counts."),
    Operation("getEntriesByVendor", analyst.get_entries_by_vendor, "facet",
              "Entries for one vendor (preview plus totals).", [_VENDOR],
              query_type=SPECIFIC, chart=False, row_preview=True),
    Operation("getEntriesByAmount", analyst.get_entries_by_amount, "facet",
              "Entries whose amount lies within a range; either bound may be omitted.",
              [Param("min", kind="float", arg="min_amount",
                     aliases=("minAmount", "min_amount", "from", "gte", "gt", "above", "greaterThan", "lower")),
               Param("max", kind="float", arg="max_amount",
                     aliases=("maxAmount", "max_amount", "to", "lte", "lt", "below", "lessThan", "upper")),
               Param("minInclusive", kind="bool", default=True, arg="min_inclusive", aliases=("min_inclusive",)),
               Param("maxInclusive", kind="bool", default=True, arg="max_inclusive", aliases=("max_inclusive",))],
              query_type=SPECIFIC, chart=False, row_preview=True),
    Operation("getVendorAverageTransaction", analyst.get_vendor_average_transaction, "vendor-summary",
              "Count, total and average amount for one vendor.", [_VENDOR]),
    Operation("getVendorConcentration", analyst.get_vendor_concentration, "vendor-concentration",
              "Vendors by total amount with their share of the overall total.", [_LIMIT]),
    Operation("getDormantVendors", trends.get_dormant_vendors, "dormant-vendors",
              "Vendors with no postings for at least N months.",
              [Param("months", kind="int", default=trends.DEFAULT_DORMANT_MONTHS,
                     aliases=("month", "inactiveMonths", "inactive_months", "period")), _REFERENCE]),
    Operation("getApprovalOverview", analyst.get_approval_overview, "approval-overview",
              "Every approval status present at level L1 or L2 with counts.", [_LEVEL]),
    Operation("getApprovalRates", analyst.get_approval_rates, "approval-rate",
              "Approval status counts with percentages at level L1 or L2.", [_LEVEL]),
    Operation("getApproverWorkload", analyst.get_approver_workload, "approver-workload",
              "Entries handled per approver at level L1 or L2.", [_LEVEL]),
    Operation("getDocumentDetails", analyst.get_document_details, "row-preview",
              "Entries for one document number or work id.",
              [Param("document", required=True,
                     aliases=("documentNumber", "document_number", "doc", "docNumber", "id", "DocumentNumberOrErrorMessage"))],
              query_type=SPECIFIC, chart=False, row_preview=True),
    Operation("getReversalDocuments", analyst.get_reversal_documents, "facet",
              "Entries that carry a reversal document number.",
              query_type=SPECIFIC, chart=False, row_preview=True),
    Operation("getDocumentsWithErrors", analyst.get_documents_with_errors, "error-message-count",
              "Error messages in the document column with counts."),
    Operation("getYearOverYearComparison", trends.get_year_over_year_comparison, "year-over-year",
              "Total amount and entry count per year."),
    Operation("getMonthOverMonthComparison", trends.get_month_over_month_comparison, "month-amount",
              "Total amount per month with percent change from the previous month."),
    Operation("detectAmountOutliers", analyst.detect_amount_outliers, "facet",
              "Entries whose amount is more than N standard deviations from the mean.",
              [Param("threshold", kind="float", default=2, aliases=("stdDev", "std", "deviations", "n", "sigma"))],
              query_type=SPECIFIC, chart=False, row_preview=True),
    Operation("getAmountRangeSummary", analyst.get_amount_range_summary, "amount-range-count",
              "Entry counts per fixed amount bucket."),
    Operation("amountMonthlyTrend", trends.amount_monthly_trend, "month-amount",
              "Total amount per month."),
    Operation("vendorMonthlyTrend", trends.vendor_monthly_trend, "month-count",
              "Monthly entry count for one vendor.", [_VENDOR]),
    Operation("vendorThisVsLastMonth", trends.vendor_this_vs_last_month, "month-count",
              "Entry count for one vendor this month and last month.", [_VENDOR, _REFERENCE]),
    Operation("creditDebitMonthlyTrend", trends.credit_debit_monthly_trend, "month-type-count",
              "Monthly entry count per entry type."),
]

CATALOGUE: Dict[str, Operation] = {op.name: op for op in _OPERATIONS}


def get_operation(name: Optional[str]) -> Optional[Operation]:
    if not name:
        return None
    return CATALOGUE.get(str(name).strip())


def describe_catalogue() -> str:
    """Text block given to classifiers: one line per operation."""
    lines = [f"Catalogue version {CATALOGUE_VERSION}"]
    for op in _OPERATIONS:
        kind = "row preview, no chart" if op.row_preview else op.query_type.lower()
        lines.append(f"- {op.signature()} [{kind}]: {op.description}")
    return "\n".join(lines)


def _coerce_bool(p: Param, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise InvalidParameters(f"{p.name} must be true or false, got {value}")


def _coerce_level(p: Param, value: Any) -> str:
    s = "".join(ch for ch in str(value).upper() if ch.isalnum()).replace("LEVEL", "L")
    if s.isdigit():
        s = "L" + s
    if s not in LEVELS:
        raise InvalidParameters(f"{p.name} must be one of {list(LEVELS)}, got {value}")
    return s


def _coerce(p: Param, value: Any) -> Any:
    if p.kind == "str":
        return str(value).strip()
    if p.kind in ("int", "float"):
        n = parse_amount(value)
        if n is None:
            raise InvalidParameters(f"{p.name} must be a number, got {value}")
        if p.kind == "int":
            if not float(n).is_integer():
                raise InvalidParameters(f"{p.name} must be a whole number, got {value}")
            return int(n)
        return n
    if p.kind == "bool":
        return _coerce_bool(p, value)
    if p.kind == "date":
        d = parse_date(value)
        if d is None:
            raise InvalidParameters(f"{p.name} must be a date (YYYY-MM-DD), got {value}")
        return d
    if p.kind == "field":
        resolved = resolve_field(value, allowed=p.choices or ENTRY_FIELDS)
        if resolved is None:
            allowed = list(p.choices) if p.choices else "an entry field"
            raise InvalidParameters(f"{p.name} must be {allowed}, got {value}")
        return resolved
    if p.kind == "choice":
        canonical = {c.lower(): c for c in p.choices or ()}.get(str(value).strip().lower())
        if canonical is None:
            raise InvalidParameters(f"{p.name} must be one of {list(p.choices or ())}, got {value}")
        return canonical
    if p.kind == "level":
        return _coerce_level(p, value)
    raise ValueError(f"Unknown parameter kind {p.kind} for {p.name}")


def adapt_parameters(op: Operation, raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Translate decision parameters to the operation's keyword arguments.
    Keys match the wire name or an alias, case-insensitively; null/empty values count as absent.
    Unknown keys are dropped. Raises InvalidParameters for missing or out-of-domain values.
    """
    given = {
        str(k).strip().lower(): v
        for k, v in (raw or {}).items()
        if v is not None and not (isinstance(v, str) and not v.strip())
    }
    kwargs: Dict[str, Any] = {}
    used = set()
    for p in op.params:
        key = next((n.lower() for n in (p.name,) + p.aliases if n.lower() in given), None)
        if key is None:
            if p.required:
                raise InvalidParameters(f"{op.name} requires parameter '{p.name}'")
            if p.default is not None:
                kwargs[p.keyword] = p.default
            continue
        used.add(key)
        kwargs[p.keyword] = _coerce(p, given[key])
    dropped = sorted(set(given) - used)
    if dropped:
        logger.info("parameters_dropped: operation=%s keys=%s", op.name, dropped)
    return kwargs
