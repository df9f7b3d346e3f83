"""
Single elimination bracket generation.
"""
import math
from typing import Callable, List

from . import progression
from .errors import ValidationError
from .models import (
    SINGLE, WINNER, WINNERS,
    Bracket, Bye, Coordinate, Feed, Filled, Link, Match, Pending, Round, SeedSet,
)


def get_round_name(teams_in_round: int, total_teams: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    bracket_size = calculate_bracket_size(num_teams)
    return bracket_size - num_teams


def calculate_winners_rounds(bracket_size: int) -> int:
    if bracket_size < 2:
        return 0
    return int(math.log2(bracket_size))


def pad_seeds(seeds: SeedSet) -> List:
    """
    Seed order with byes appended to fill the bracket.

    Byes always take the trailing positions, so with pairing by adjacent
    positions the last real seeds are the ones that get walkovers.
    """
    return list(seeds) + [None] * calculate_byes(len(seeds))


def build_winners_rounds(seeds: SeedSet,
                         round_name: Callable[[int, int], str] = get_round_name) -> List[Round]:
    """
    Build the winners side: round 0 straight from the padded seeds, then the
    binary reduction down to a single final.

    The winner of match ``p`` in a round feeds slot ``p % 2 + 1`` of match
    ``p // 2`` in the next round. Loser pointers are wired separately for
    double elimination.
    """
    if len(seeds) < 2:
        raise ValidationError('At least 2 participants are required')

    padded = pad_seeds(seeds)
    bracket_size = len(padded)
    total_rounds = calculate_winners_rounds(bracket_size)

    rounds = []
    for r in range(total_rounds):
        teams_in_round = bracket_size >> r
        num_matches = teams_in_round // 2
        last = r == total_rounds - 1
        matches = []
        for p in range(num_matches):
            if r == 0:
                pair = padded[2 * p], padded[2 * p + 1]
                slot1, slot2 = (Filled(s) if s is not None else Bye() for s in pair)
            else:
                slot1 = Pending(Feed(Coordinate(WINNERS, r - 1, 2 * p), WINNER))
                slot2 = Pending(Feed(Coordinate(WINNERS, r - 1, 2 * p + 1), WINNER))
            winner_to = None if last else Link(Coordinate(WINNERS, r + 1, p // 2), p % 2 + 1)
            matches.append(Match(Coordinate(WINNERS, r, p), slot1, slot2, winner_to=winner_to))
        rounds.append(Round(round_name(teams_in_round, bracket_size), matches))
    return rounds


def generate_single_elimination_bracket(tournament_id: str, seeds) -> Bracket:
    """
    Generate a single elimination bracket with walkovers already collapsed.

    The winners final decides the champion; there is no grand final.
    """
    if not isinstance(seeds, SeedSet):
        seeds = SeedSet(seeds)
    bracket = Bracket(tournament_id, SINGLE, build_winners_rounds(seeds))
    progression.advance_byes(bracket)
    return bracket
