"""Output truncation for stored validation results."""

from typing import Optional

from pinkas.kernel.run_record import ValidationResult


def truncate_text(output: Optional[str], max_bytes: int) -> Optional[str]:
    """Cut output to at most max_bytes of UTF-8, with a trailing marker."""
    if output is None:
        return None
    encoded = output.encode("utf-8")
    if len(encoded) <= max_bytes:
        return output
    kept = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return kept + f"\n\n[... truncated {len(encoded) - max_bytes} bytes]"


def truncate_validation_output(result: ValidationResult, max_bytes: int = 10000) -> ValidationResult:
    """Return a copy of result with every free-form output capped at max_bytes.

    The input model is not modified.
    """
    truncated = result.model_copy(deep=True)
    truncated.failed_step_output = truncate_text(truncated.failed_step_output, max_bytes)
    for phase in truncated.phases or []:
        phase.output = truncate_text(phase.output, max_bytes)
        for step in phase.steps:
            step.output = truncate_text(step.output, max_bytes)
    return truncated
