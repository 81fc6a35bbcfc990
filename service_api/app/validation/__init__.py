"""
Request validation package.

Cheap structural checks and sanitation applied by the routes before any
token cryptography or LLM call happens.
"""

from .request_validator import (
    AnalysisRequest,
    IssueDetails,
    is_allowed_file_type,
    sanitize_file_name,
    validate_analysis_input,
    validate_token_format,
)

__all__ = [
    "AnalysisRequest",
    "IssueDetails",
    "is_allowed_file_type",
    "sanitize_file_name",
    "validate_analysis_input",
    "validate_token_format",
]
