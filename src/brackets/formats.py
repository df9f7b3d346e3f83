"""
Tournament formats and the rules that decide whether a tournament can start.
"""
from typing import Sequence

from .double_elimination import generate_double_elimination_bracket
from .elimination import generate_single_elimination_bracket
from .errors import ValidationError
from .models import BRACKET_KINDS, DOUBLE, SINGLE, Bracket, SeedSet

FORMAT_ALIASES = {
    'single': SINGLE,
    'single-elimination': SINGLE,
    'single_elimination': SINGLE,
    'double': DOUBLE,
    'double-elimination': DOUBLE,
    'double_elimination': DOUBLE,
}

GENERATORS = {
    SINGLE: generate_single_elimination_bracket,
    DOUBLE: generate_double_elimination_bracket,
}


def normalize_format(value) -> str:
    """Map a user supplied format name to 'single' or 'double'."""
    if not isinstance(value, str):
        raise ValidationError('Format must be a string')
    kind = FORMAT_ALIASES.get(value.strip().lower())
    if kind is None:
        raise ValidationError(f"Unknown format '{value}'. Use one of: {', '.join(BRACKET_KINDS)}")
    return kind


def _is_power_of_two(n: int) -> bool:
    return n > 0 and n & (n - 1) == 0


def validate_tournament_config(format_name, participants: Sequence) -> str:
    """
    Check that a tournament with this format and participant list can start.

    Returns the normalized format. Single elimination takes any field of 2 or
    more; double elimination wants a full bracket (a power of two, at least 4).
    """
    kind = normalize_format(format_name)
    count = len(SeedSet(participants))
    if count < 2:
        raise ValidationError('At least 2 participants are required')
    if kind == DOUBLE and (count < 4 or not _is_power_of_two(count)):
        raise ValidationError(
            f'Double elimination requires a power of two of at least 4 participants (got {count})')
    return kind


def generate_bracket(tournament_id: str, seeds, format_name) -> Bracket:
    """Build the bracket for a tournament in the given format."""
    kind = normalize_format(format_name)
    return GENERATORS[kind](tournament_id, seeds)
