"""
Double elimination bracket generation.

In double elimination:
- Winners Bracket: entrants that haven't lost yet
- Losers Bracket: entrants that have lost once in the early winners rounds
- Grand Final: winners bracket champion vs losers bracket champion
- Bracket Reset: if the losers bracket champion wins the Grand Final, a
  second match decides the champion

The winners final loser is not dropped into the losers bracket; it is
eliminated and places third. This keeps the losers final a plain
consolidation round and the losers bracket at ``2 * log2(N) - 3`` rounds.
"""
import math
from typing import List

from . import progression
from .elimination import build_winners_rounds, calculate_bracket_size
from .errors import ValidationError
from .models import (
    DOUBLE, GRAND, LOSER, LOSERS, WINNER,
    Bracket, Coordinate, Feed, Link, Match, Pending, Round, SeedSet,
)

GRAND_FINAL_NAME = "Grand Final"
BRACKET_RESET_NAME = "Bracket Reset"


def get_losers_round_name(round_num: int, total_losers_rounds: int) -> str:
    """Get the name for a losers bracket round (0-indexed)."""
    rounds_from_end = total_losers_rounds - round_num - 1
    if rounds_from_end == 0:
        return "Losers Final"
    elif rounds_from_end == 1:
        return "Losers Semifinal"
    else:
        return f"Losers Round {round_num + 1}"


def get_winners_round_name(teams_in_round: int, bracket_size: int) -> str:
    """Get the name for a winners bracket round."""
    if teams_in_round == 2:
        return "Winners Final"
    elif teams_in_round == 4:
        return "Winners Semifinal"
    elif teams_in_round == 8:
        return "Winners Quarterfinal"
    else:
        return f"Winners Round of {teams_in_round}"


def calculate_losers_bracket_rounds(bracket_size: int) -> int:
    """
    Calculate number of rounds in losers bracket.

    For N entrants (power of 2) the winners bracket has log2(N) rounds. The
    losers bracket opens with the round 1 losers pairing off, then takes one
    intake round and one consolidation round for every winners round except
    the first and the final.
    """
    if bracket_size < 4:
        return 0
    winners_rounds = int(math.log2(bracket_size))
    return 2 * winners_rounds - 3


def drop_order(winners_round: int, num_matches: int) -> List[int]:
    """
    Which winners match drops its loser into each intake position.

    Odd winners rounds drop in reverse order, even ones with their halves
    swapped, so an entrant does not meet the opponent they just lost to.
    """
    positions = list(range(num_matches))
    if num_matches < 2:
        return positions
    if winners_round % 2 == 1:
        return positions[::-1]
    half = num_matches // 2
    return positions[half:] + positions[:half]


def _build_losers_rounds(winners: List[Round], bracket_size: int) -> List[Round]:
    total = calculate_losers_bracket_rounds(bracket_size)
    rounds = []
    for j in range(total):
        matches = []
        if j == 0:
            # Round 1 losers pair off: W1-M1 vs W1-M2, W1-M3 vs W1-M4, ...
            for p in range(bracket_size // 4):
                slots = []
                for q in (2 * p, 2 * p + 1):
                    source = winners[0].matches[q]
                    source.loser_to = Link(Coordinate(LOSERS, 0, p), q % 2 + 1)
                    slots.append(Pending(Feed(source.coordinate, LOSER)))
                matches.append(Match(Coordinate(LOSERS, 0, p), *slots))
        elif j % 2 == 1:
            # Intake: dropped losers (slot 1) against previous survivors (slot 2)
            w_round = (j + 1) // 2
            dropping = winners[w_round].matches
            for p, q in enumerate(drop_order(w_round, len(dropping))):
                coordinate = Coordinate(LOSERS, j, p)
                dropping[q].loser_to = Link(coordinate, 1)
                previous = Coordinate(LOSERS, j - 1, p)
                rounds[j - 1].matches[p].winner_to = Link(coordinate, 2)
                matches.append(Match(
                    coordinate,
                    Pending(Feed(dropping[q].coordinate, LOSER)),
                    Pending(Feed(previous, WINNER)),
                ))
        else:
            # Consolidation: survivors only
            feeding = rounds[j - 1].matches
            for p in range(len(feeding) // 2):
                coordinate = Coordinate(LOSERS, j, p)
                slots = []
                for q in (2 * p, 2 * p + 1):
                    feeding[q].winner_to = Link(coordinate, q % 2 + 1)
                    slots.append(Pending(Feed(feeding[q].coordinate, WINNER)))
                matches.append(Match(coordinate, *slots))
        rounds.append(Round(get_losers_round_name(j, total), matches))
    return rounds


def _build_grand_rounds(winners_final: Match, losers_final: Match) -> List[Round]:
    grand_final = Coordinate(GRAND, 0, 0)
    bracket_reset = Coordinate(GRAND, 1, 0)
    winners_final.winner_to = Link(grand_final, 1)
    losers_final.winner_to = Link(grand_final, 2)
    gf = Match(
        grand_final,
        Pending(Feed(winners_final.coordinate, WINNER)),
        Pending(Feed(losers_final.coordinate, WINNER)),
        winner_to=Link(bracket_reset, 2),
        loser_to=Link(bracket_reset, 1),
    )
    br = Match(
        bracket_reset,
        Pending(Feed(grand_final, LOSER)),
        Pending(Feed(grand_final, WINNER)),
    )
    return [Round(GRAND_FINAL_NAME, [gf]), Round(BRACKET_RESET_NAME, [br])]


def generate_double_elimination_bracket(tournament_id: str, seeds) -> Bracket:
    """
    Generate a double elimination bracket.

    Needs a bracket size of at least 4. Participant counts that are not a
    power of two still build (walkovers collapse on both sides), though the
    tournament rules only accept powers of two.
    """
    if not isinstance(seeds, SeedSet):
        seeds = SeedSet(seeds)
    bracket_size = calculate_bracket_size(len(seeds))
    if bracket_size < 4:
        raise ValidationError('Double elimination requires at least 3 participants')

    winners = build_winners_rounds(seeds, get_winners_round_name)
    losers = _build_losers_rounds(winners, bracket_size)
    grand = _build_grand_rounds(winners[-1].matches[0], losers[-1].matches[0])

    bracket = Bracket(tournament_id, DOUBLE, winners, losers, grand)
    progression.advance_byes(bracket)
    return bracket
