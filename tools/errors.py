"""
Narrator Error Types — Structured exception hierarchy.

Lets the pipeline tell apart failures that abort a whole narration cycle
(gateway exhausted, unusable reply) from ones that only skip a single
effect (a channel or thread that no longer exists).
"""

from typing import List, Optional


class NarratorError(Exception):
    """Base class for all narrator errors."""
    pass


class GatewayExhausted(NarratorError):
    """Every configured model failed. Aborts the cycle, nothing is posted."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(
            f"All {len(self.errors)} model(s) failed: " + "; ".join(self.errors)
        )


class ReplyParseError(NarratorError):
    """The model reply could not be turned into a directive. Aborts the cycle."""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(message)


class ParseMalformed(ReplyParseError):
    """No JSON object could be extracted from the reply."""
    pass


class SchemaViolation(ReplyParseError):
    """A JSON object was found but a required field is missing or wrong."""

    def __init__(self, field: str, message: str, raw: str = ""):
        self.field = field
        super().__init__(f"{field}: {message}", raw=raw)


class DestinationUnavailable(NarratorError):
    """A channel, forum or thread needed by one effect is missing. Skips that effect only."""

    def __init__(self, what: str, target_id: Optional[str] = None):
        self.what = what
        self.target_id = target_id
        suffix = f" ({target_id})" if target_id else ""
        super().__init__(f"{what} unavailable{suffix}")


class PromptTemplateError(NarratorError):
    """A prompt template uses a placeholder that is not recognized."""

    def __init__(self, template_name: str, placeholder: str):
        self.template_name = template_name
        self.placeholder = placeholder
        super().__init__(
            f"Template '{template_name}' uses unknown placeholder '${{{placeholder}}}'"
        )
