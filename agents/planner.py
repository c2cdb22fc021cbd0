"""
Planner: LLM-backed intent classifier.
Sends the question plus the catalogue description to Groq under a strict system prompt and parses
the JSON decision. Returns a Decision; raises ClassificationError when the call fails or the
reply is not the required JSON object. Deterministic rules run afterwards (utils.query_router.apply_rules).
"""
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

GROQ_API_KEY = os.getenv("GROQ_API_KEY")
DEFAULT_MODEL = "llama-3.3-70b-versatile"
GROQ_MODEL = os.getenv("GROQ_MODEL", DEFAULT_MODEL)
CLASSIFIER_TIMEOUT = float(os.getenv("CLASSIFIER_TIMEOUT", "20"))

GRAPH_TYPES = ("bar", "line", "pie")
QUERY_TYPES = ("AGGREGATE", "SPECIFIC")

# ClassificationError.reason values
UNPARSEABLE = "unparseable"
CLASSIFIER_ERROR = "classifier_error"


class ClassificationError(Exception):
    """The classifier produced nothing usable. reason: unparseable | classifier_error."""

    def __init__(self, message: str, reason: str = UNPARSEABLE):
        super().__init__(message)
        self.reason = reason


@dataclass
class Decision:
    intent: str = "other"
    message: str = ""
    query_type: str = "AGGREGATE"
    operation: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    graph: bool = False
    graph_type: Optional[str] = None
    confidence: float = 0.0

    @classmethod
    def from_dict(cls, data: Any) -> "Decision":
        """Build from the wire JSON ({intent, message, queryType, helperFunction, ...})."""
        if not isinstance(data, dict):
            raise ClassificationError("Classifier reply is not a JSON object")
        try:
            confidence = float(data.get("confidence", 0.0) or 0.0)
        except (TypeError, ValueError):
            raise ClassificationError(f"confidence is not a number: {data.get('confidence')!r}")
        params = data.get("parameters") or {}
        if not isinstance(params, dict):
            raise ClassificationError("parameters must be an object")
        operation = data.get("helperFunction")
        operation = str(operation).strip() if operation else None
        query_type = str(data.get("queryType") or "AGGREGATE").strip().upper()
        graph_type = data.get("graphType")
        graph_type = str(graph_type).strip().lower() if graph_type else None
        graph = data.get("graph", False)
        if isinstance(graph, str):
            graph = graph.strip().lower() == "true"
        return cls(
            intent=str(data.get("intent") or "other").strip(),
            message=str(data.get("message") or "").strip(),
            query_type=query_type if query_type in QUERY_TYPES else "AGGREGATE",
            operation=operation,
            parameters=dict(params),
            graph=bool(graph),
            graph_type=graph_type,
            confidence=max(0.0, min(1.0, confidence)),
        )


SYSTEM_PROMPT_TEMPLATE = """You are a STRICT intent matcher for a ledger spreadsheet analytics system.
You are not a chat assistant. For one user question you must:
1. Pick exactly ONE operation from the catalogue below (never invent, rename or combine operations)
2. Extract its parameters from what the question literally says
3. Classify the query as AGGREGATE or SPECIFIC
4. Decide graph true/false and graphType
5. Write one short friendly message

If you are unsure, set confidence below 0.7.

CATALOGUE
{catalogue}

PARAMETER RULES
- Vendor: the vendor name as written in the question (e.g. "Regions' Bank Account")
- Dates: ISO "YYYY-MM-DD"
- Status: only Approved, Rejected or Pending
- Level: only L1 or L2
- Limit / top N: only when the question contains the number ("top 5" -> limit 5); otherwise omit it
- Field names are exact and case-sensitive: {fields}

AMOUNT RULES
- Numbers are literal. "k" or "thousand" multiplies by 1000, "lakh" multiplies by 100000
- No unit word means no scaling. Never guess units from typical data ranges
- "above 50000" -> min 50000, minInclusive false; "at least 50000" -> min 50000
- "under 1000" -> max 1000, maxInclusive false; "between A and B" -> min A, max B
- Never add a bound the question does not state

OVERRIDES (take precedence over everything else)
- "credit vs debit", "credit and debit", "journal entry type", "entry type distribution",
  "debit entries vs credit entries" -> countAllJournalEntryTypes. Never getEntriesByStatus
- "approval overview", "approval summary" or "approval status overview" with L1 or L2
  -> getApprovalOverview with level L1 or L2. Never getEntriesByStatus; never pick a status value
- "monthly", "month wise", "trend over time" about amount or value -> amountMonthlyTrend. Never amountStats
- getEntriesByStatus only when the question names approved, rejected or pending on an approval status field

GRAPH RULES
- AGGREGATE operations: graph true, graphType "bar" unless the user asks for line or pie
- Row preview operations (getEntriesByVendor, getEntriesByAmount, getDocumentDetails,
  getReversalDocuments, detectAmountOutliers): graph false, graphType null

MESSAGE RULES
- Short, friendly, describes WHAT is shown, contains no numbers

Reply with ONLY this JSON object (no markdown, no explanation):
{{"intent": "", "message": "", "queryType": "AGGREGATE | SPECIFIC", "helperFunction": "", "parameters": {{}}, "graph": false, "graphType": null, "confidence": 0.0}}"""


def build_system_prompt(catalogue_description: str) -> str:
    from db.models import ENTRY_FIELDS

    return SYSTEM_PROMPT_TEMPLATE.format(catalogue=catalogue_description, fields=", ".join(ENTRY_FIELDS))


def parse_reply(content: Optional[str]) -> Decision:
    """Strip markdown fences and parse the JSON decision."""
    content = (content or "").strip()
    if content.startswith("```"):
        content = re.sub(r"^```(?:json)?\s*", "", content)
        content = re.sub(r"\s*```$", "", content)
    if not content:
        raise ClassificationError("Empty classifier reply")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Classifier reply is not valid JSON: {e}")
    return Decision.from_dict(data)


class LLMClassifier:
    """classify(question, catalogue_description) -> Decision, via one Groq chat completion."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, timeout: Optional[float] = None, client=None):
        self.model = model or GROQ_MODEL
        self.timeout = timeout if timeout is not None else CLASSIFIER_TIMEOUT
        self._client = client
        self._api_key = api_key or GROQ_API_KEY

    def _get_client(self):
        if self._client is None:
            from groq import Groq
            self._client = Groq(api_key=self._api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def classify(self, question: str, catalogue_description: str) -> Decision:
        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": build_system_prompt(catalogue_description)},
                    {"role": "user", "content": question},
                ],
                temperature=0,
                max_tokens=512,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning("classifier_call_failed: model=%s error=%s", self.model, e)
            raise ClassificationError(f"Classifier call failed: {e}", reason=CLASSIFIER_ERROR) from e
        content = response.choices[0].message.content if response.choices else None
        decision = parse_reply(content)
        logger.info(
            "classifier_reply: model=%s operation=%s confidence=%.2f",
            self.model, decision.operation, decision.confidence,
        )
        return decision
