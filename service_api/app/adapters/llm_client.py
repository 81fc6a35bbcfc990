"""
LLM collaborator client for the analyze and fix routes.
"""

import json
from typing import Any, Dict, Optional, TYPE_CHECKING

import httpx

from afkmate_shared.errors import ConfigurationError, ExternalServiceError
from afkmate_shared.logging import get_logger
from ..validation import AnalysisRequest

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from afkmate_shared.metrics import MetricsCollector

ANTHROPIC_VERSION = "2023-06-01"
ANALYSIS_MAX_TOKENS = 4096
FIX_MAX_TOKENS = 2048

SUMMARY_STATUSES = ("safe", "warning", "critical")
SUMMARY_COUNTERS = ("errorsCount", "warningsCount", "logicIssuesCount", "securityIssuesCount")
ISSUE_ARRAYS = ("syntaxErrors", "logicErrors", "securityIssues", "edgeCases", "asyncIssues", "suggestions")


class LLMResponseError(ExternalServiceError):
    """The model answered, but not with the JSON shape we require."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("llm", f"Invalid response: {message}", details)


def extract_json(text: str) -> str:
    """Strip a surrounding markdown code fence, if any."""
    json_string = text.strip()
    if json_string.startswith("```json"):
        json_string = json_string[7:]
    elif json_string.startswith("```"):
        json_string = json_string[3:]
    if json_string.endswith("```"):
        json_string = json_string[:-3]
    return json_string.strip()


def _load_object(text: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(extract_json(text))
    except json.JSONDecodeError as e:
        raise LLMResponseError("model output is not valid JSON", details={"error": str(e)}) from e
    if not isinstance(parsed, dict):
        raise LLMResponseError("model output must be a JSON object")
    return parsed


def parse_analysis_response(text: str) -> Dict[str, Any]:
    """Validate an analysis reply; missing summary counters default to 0."""
    parsed = _load_object(text)

    summary = parsed.get("summary")
    if not isinstance(summary, dict):
        raise LLMResponseError("missing summary object")
    if summary.get("status") not in SUMMARY_STATUSES:
        raise LLMResponseError("summary.status must be 'safe', 'warning', or 'critical'")
    for counter in SUMMARY_COUNTERS:
        value = summary.get(counter)
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            summary[counter] = 0

    for field in ISSUE_ARRAYS:
        if not isinstance(parsed.get(field), list):
            raise LLMResponseError(f"{field} must be an array")

    return parsed


def parse_fix_response(text: str) -> Dict[str, Any]:
    parsed = _load_object(text)
    fixed_code = parsed.get("fixedCode")
    if not fixed_code or not isinstance(fixed_code, str):
        raise LLMResponseError("missing fixedCode")
    return {
        "fixedCode": fixed_code,
        "explanation": parsed.get("explanation") or "Fix applied",
        "confidence": parsed.get("confidence") or "medium",
    }


def build_analysis_prompt(file_name: str, code: str) -> str:
    return (
        "You are a senior code reviewer. Analyse the code below and return ONLY a JSON object with "
        f"a 'summary' object (status one of {', '.join(SUMMARY_STATUSES)}; "
        f"{', '.join(SUMMARY_COUNTERS)}) and the arrays {', '.join(ISSUE_ARRAYS)}.\n\n"
        f"File: {file_name}\n\nCode:\n```\n{code}\n```\n"
    )


def build_fix_prompt(request: AnalysisRequest) -> str:
    issue = request.issue
    parts = [
        "Fix the issue described below. Return ONLY a JSON object with 'fixedCode', "
        "'explanation' and 'confidence' (high, medium or low).",
        f"File: {request.file_name}",
    ]
    if issue is not None:
        parts.append(f"Issue ({issue.severity}, {issue.type}) at line {issue.line}: {issue.message}")
    if request.issue_line_in_file is not None:
        parts.append(f"Line in full file: {request.issue_line_in_file}")
    parts.append(f"Code section:\n```\n{request.input}\n```")
    if request.full_file_context:
        parts.append(f"Full file for context:\n```\n{request.full_file_context}\n```")
    return "\n\n".join(parts)


class LLMClient:
    """Thin Anthropic Messages API client."""

    def __init__(self, api_key: Optional[str], model: str, *, base_url: str = "https://api.anthropic.com",
                 timeout: float = 60.0, metrics: Optional["MetricsCollector"] = None):
        self._api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("api.llm_client")

    async def _complete(self, operation: str, prompt: str, max_tokens: int) -> str:
        if not self._api_key:
            raise ConfigurationError("LLM API key not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/v1/messages",
                    headers={
                        "x-api-key": self._api_key,
                        "anthropic-version": ANTHROPIC_VERSION,
                        "content-type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "max_tokens": max_tokens,
                        "messages": [{"role": "user", "content": prompt}],
                    },
                )
        except httpx.HTTPError as e:
            self.logger.error("LLM HTTP error", operation=operation, error=str(e))
            self._record(operation, "error")
            raise ExternalServiceError("llm", "LLM service unavailable", details={"http_error": str(e)}) from e

        if response.status_code != 200:
            self.logger.error("LLM service error", operation=operation, status_code=response.status_code)
            self._record(operation, "error")
            raise ExternalServiceError(
                "llm",
                f"LLM service error: {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            payload = response.json()
        except ValueError as e:
            self._record(operation, "invalid")
            raise LLMResponseError("LLM service returned a non-JSON body") from e

        blocks = payload.get("content") if isinstance(payload, dict) else None
        text = next(
            (block.get("text") for block in blocks or []
             if isinstance(block, dict) and block.get("type") == "text"),
            None,
        )
        if not text:
            self._record(operation, "invalid")
            raise LLMResponseError("model returned no text response")

        self.logger.debug("LLM raw response", operation=operation, length=len(text))
        return text

    def _record(self, operation: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_llm_request(operation, status)

    async def analyze(self, request: AnalysisRequest) -> Dict[str, Any]:
        text = await self._complete("analyze", build_analysis_prompt(request.file_name, request.input),
                                    ANALYSIS_MAX_TOKENS)
        try:
            result = parse_analysis_response(text)
        except LLMResponseError:
            self._record("analyze", "invalid")
            raise
        self._record("analyze", "ok")
        return result

    async def generate_fix(self, request: AnalysisRequest) -> Dict[str, Any]:
        text = await self._complete("fix", build_fix_prompt(request), FIX_MAX_TOKENS)
        try:
            result = parse_fix_response(text)
        except LLMResponseError:
            self._record("fix", "invalid")
            raise
        self._record("fix", "ok")
        return result
