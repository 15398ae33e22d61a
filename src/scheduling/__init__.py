"""Recurring job expansion package."""

from src.scheduling.expander import (
    detach_occurrence,
    is_detachable,
    occurrences_in_range,
    occurrences_on_date,
    template_list,
    toggle_completion,
)

__all__ = [
    "detach_occurrence",
    "is_detachable",
    "occurrences_in_range",
    "occurrences_on_date",
    "template_list",
    "toggle_completion",
]
