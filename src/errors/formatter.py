"""Error formatting and grouping utilities.

This module provides:
- TrackPoolError exception class for coded application errors
- Error formatting for CLI and API display
- Grouping of per-line upload rejections into one entry per reason
"""

from dataclasses import dataclass, field

from src.errors.registry import get_error

# Lines listed individually before the remainder is summarized
MAX_LISTED_LINES = 10


@dataclass
class TrackPoolError(Exception):
    """Application error with code, message, and context.

    Attributes:
        code: Error code in E-XXXX format.
        message: Human-readable error message.
        remediation: Action user should take to resolve.
        lines: CSV line numbers the error applies to.
        value: Offending value, if a single one applies.
        is_retryable: Whether the operation can be retried without user action.
        details: Additional context dictionary.
    """

    code: str
    message: str
    remediation: str
    lines: list[int] = field(default_factory=list)
    value: str | None = None
    is_retryable: bool = False
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    @classmethod
    def from_code(cls, code: str, **kwargs: object) -> "TrackPoolError":
        """Create error from registry code with context substitution.

        Args:
            code: Error code in E-XXXX format.
            **kwargs: Context values for message template substitution.
                The keys 'lines', 'value' and 'details' also populate the
                matching fields.

        Returns:
            TrackPoolError instance with formatted message.
        """
        lines = kwargs.get("lines", [])
        if not isinstance(lines, list):
            lines = []
        value = kwargs.get("value")
        if value is not None and not isinstance(value, str):
            value = str(value)
        details = kwargs.get("details", {})
        if not isinstance(details, dict):
            details = {}

        error_def = get_error(code)
        if not error_def:
            return cls(
                code=code,
                message=f"Unknown error: {code}",
                remediation="Contact support.",
                lines=lines,
                value=value,
                details=details,
            )

        message = error_def.message_template
        remediation = error_def.remediation
        template_kwargs = {k: v for k, v in kwargs.items() if k not in ("lines", "details")}
        try:
            message = message.format(**template_kwargs)
            remediation = remediation.format(**template_kwargs)
        except KeyError:
            # Keep template if some placeholders are missing
            pass

        return cls(
            code=error_def.code,
            message=message,
            remediation=remediation,
            lines=lines,
            value=value,
            is_retryable=error_def.is_retryable,
            details=details,
        )


def format_error(error: TrackPoolError, include_remediation: bool = True) -> str:
    """Format error for display to user.

    Args:
        error: The TrackPoolError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Multi-line formatted string suitable for terminal display.
    """
    out = [f"{error.code}: {error.message}"]

    if error.lines:
        if len(error.lines) == 1:
            out.append(f"  Location: Line {error.lines[0]}")
        else:
            listed = ", ".join(str(n) for n in error.lines[:MAX_LISTED_LINES])
            if len(error.lines) > MAX_LISTED_LINES:
                listed += f" (and {len(error.lines) - MAX_LISTED_LINES} more)"
            out.append(f"  Affected lines: {listed}")

    if error.value and len(error.lines) <= 1:
        out.append(f"  Value: {error.value}")

    if include_remediation:
        out.append(f"  Action: {error.remediation}")

    return "\n".join(out)


def group_errors(errors: list[TrackPoolError]) -> list[TrackPoolError]:
    """Group errors by code and message, combining line numbers.

    Example:
        3 "Duplicate" rejections on lines 4, 9 and 12
        -> 1 error with lines=[4, 9, 12]

    Args:
        errors: List of TrackPoolError objects to group.

    Returns:
        Grouped errors in first-seen order, each with sorted unique lines.
    """
    groups: dict[str, TrackPoolError] = {}

    for error in errors:
        key = f"{error.code}|{error.message}"
        if key in groups:
            group = groups[key]
            group.lines.extend(error.lines)
            if group.value != error.value:
                group.value = None
        else:
            groups[key] = TrackPoolError(
                code=error.code,
                message=error.message,
                remediation=error.remediation,
                lines=list(error.lines),
                value=error.value,
                is_retryable=error.is_retryable,
                details=error.details.copy(),
            )

    result = list(groups.values())
    for error in result:
        error.lines = sorted(set(error.lines))

    return result


def format_error_summary(errors: list[TrackPoolError]) -> str:
    """Format a list of errors for display, grouping duplicates."""
    if not errors:
        return "No errors."

    grouped = group_errors(errors)

    if len(grouped) == 1:
        return format_error(grouped[0])

    out = [f"{len(grouped)} error type(s) found:\n"]
    for i, error in enumerate(grouped, 1):
        out.append(f"{i}. {format_error(error)}")
        out.append("")

    return "\n".join(out)
