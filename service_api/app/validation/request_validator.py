"""
Request pre-checks for the API routes.

These are cheap filters that run before any cryptographic work or LLM call.
They are not security boundaries: the token codec and the LLM response
validation make the real decisions.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from afkmate_shared.errors import ValidationError
from afkmate_shared.logging import get_logger
from ..tokens import TOKEN_DELIMITER, TOKEN_MAGIC

logger = get_logger("api.request_validator")

MIN_TOKEN_LENGTH = 20
MAX_TOKEN_LENGTH = 200

MAX_INPUT_LENGTH = 500_000
MIN_INPUT_LENGTH = 1
MAX_FILENAME_LENGTH = 255
MAX_ISSUE_MESSAGE_LENGTH = 1000
DEFAULT_FILENAME = "unknown.txt"

ALLOWED_EXTENSIONS = frozenset({
    "js", "jsx", "ts", "tsx", "mjs", "cjs",
    "py", "pyw",
    "java",
    "go",
    "rs",
    "c", "cpp", "cc", "cxx", "h", "hpp",
    "cs",
    "php",
    "rb",
    "swift",
    "kt", "kts",
    "scala",
    "dart",
    "vue", "svelte",
    "html", "htm",
    "css", "scss", "sass", "less",
    "json", "yaml", "yml", "toml",
    "xml",
    "md", "mdx",
    "sql",
    "sh", "bash", "zsh",
    "dockerfile",
    "tf", "hcl",
})

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"|?*]')
_INJECTION_PATTERNS = (
    re.compile(r"```\s*\n\s*(ignore|forget|disregard|new instruction|system:|assistant:|human:)", re.IGNORECASE),
    re.compile(r"\n\s*(ignore previous|forget everything|disregard above|new task:)", re.IGNORECASE),
)


@dataclass(frozen=True)
class IssueDetails:
    line: int
    message: str
    type: str
    severity: str


@dataclass(frozen=True)
class AnalysisRequest:
    """Sanitized body of an analyze or fix request."""
    input: str
    file_name: str
    mode: str = "analyze"
    issue: Optional[IssueDetails] = None
    full_file_context: Optional[str] = None
    issue_line_in_file: Optional[int] = None


def validate_token_format(token: Any) -> str:
    """Reject obvious garbage before spending an HMAC on it."""
    if not token or not isinstance(token, str):
        raise ValidationError("Token must be a non-empty string")
    if len(token) > MAX_TOKEN_LENGTH:
        raise ValidationError("Token too long")
    if len(token) < MIN_TOKEN_LENGTH:
        raise ValidationError("Token too short")
    if not token.startswith(TOKEN_MAGIC + TOKEN_DELIMITER):
        raise ValidationError("Invalid token format")
    return token


def sanitize_file_name(file_name: str) -> str:
    """Reduce a client-supplied path to a bare, printable file name."""
    name = re.split(r"[/\\]", file_name)[-1]
    name = _CONTROL_CHARS.sub("", name)
    name = _UNSAFE_FILENAME_CHARS.sub("", name)

    if len(name) > MAX_FILENAME_LENGTH:
        base, dot, ext = name.rpartition(".")
        if dot and len(ext) < MAX_FILENAME_LENGTH:
            name = f"{base[:MAX_FILENAME_LENGTH - len(ext) - 1]}.{ext}"
        else:
            name = name[:MAX_FILENAME_LENGTH]

    if not name or name == ".":
        name = DEFAULT_FILENAME
    return name


def sanitize_code_input(code: str) -> str:
    """Strip null bytes. Likely prompt-injection markers are logged, not removed."""
    sanitized = code.replace("\x00", "")
    for pattern in _INJECTION_PATTERNS:
        if pattern.search(sanitized):
            logger.warning("Potential prompt injection attempt detected in input")
            break
    return sanitized


def is_allowed_file_type(file_name: str) -> bool:
    """Extension allow-list check; extensionless files are allowed.

    Offered to clients that want to filter uploads before submitting them.
    The routes accept any file name and do not apply it.
    """
    if "." not in file_name:
        return True
    ext = file_name.rsplit(".", 1)[-1].lower()
    return ext == "" or ext in ALLOWED_EXTENSIONS


def _normalize_issue(issue: Any) -> IssueDetails:
    if not isinstance(issue, dict):
        raise ValidationError("'issue' must be an object")

    line = issue.get("line")
    message = issue.get("message")
    issue_type = issue.get("type")
    severity = issue.get("severity")
    return IssueDetails(
        line=line if isinstance(line, int) and not isinstance(line, bool) else 0,
        message=message[:MAX_ISSUE_MESSAGE_LENGTH] if isinstance(message, str) else "",
        type=issue_type if isinstance(issue_type, str) else "unknown",
        severity=severity if isinstance(severity, str) else "warning",
    )


def validate_analysis_input(body: Any, mode: str = "analyze") -> AnalysisRequest:
    """Validate and sanitize an analyze (or fix) request body."""
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    code = body.get("input")
    if code is None:
        raise ValidationError("Missing required field: 'input'")
    if not isinstance(code, str):
        raise ValidationError("'input' must be a string")
    if len(code) < MIN_INPUT_LENGTH:
        raise ValidationError("Input code is empty")
    if len(code) > MAX_INPUT_LENGTH:
        raise ValidationError(
            f"Input too large: {len(code)} chars (max: {MAX_INPUT_LENGTH})",
            details={"length": len(code), "max_length": MAX_INPUT_LENGTH},
        )

    file_name = DEFAULT_FILENAME
    raw_file_name = body.get("fileName")
    if raw_file_name is not None:
        if not isinstance(raw_file_name, str):
            raise ValidationError("'fileName' must be a string")
        if len(raw_file_name) > MAX_FILENAME_LENGTH:
            raise ValidationError(
                f"fileName too long: {len(raw_file_name)} chars (max: {MAX_FILENAME_LENGTH})"
            )
        file_name = sanitize_file_name(raw_file_name)

    if mode != "fix":
        return AnalysisRequest(input=sanitize_code_input(code), file_name=file_name)

    issue = body.get("issue")
    if issue is None:
        raise ValidationError("Missing required field: 'issue'")

    full_context = body.get("fullFileContext")
    line_in_file = body.get("issueLineInFile")

    return AnalysisRequest(
        input=sanitize_code_input(code),
        file_name=file_name,
        mode="fix",
        issue=_normalize_issue(issue),
        full_file_context=(
            sanitize_code_input(full_context[:MAX_INPUT_LENGTH])
            if isinstance(full_context, str) and full_context else None
        ),
        issue_line_in_file=(
            line_in_file if isinstance(line_in_file, int) and not isinstance(line_in_file, bool) else None
        ),
    )
