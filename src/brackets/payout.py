"""
Final placements and prize distribution for a finished bracket.
"""
import logging
import re
from typing import Dict, List, Optional

from .errors import NotFoundError, StateError, ValidationError
from .models import DOUBLE, LOSERS, WINNERS, Bracket, now_iso

logger = logging.getLogger(__name__)

PAYOUTS = 'payouts'

# Percent of the prize pool per finishing place
DEFAULT_PAYOUT_TABLE = {1: 60.0, 2: 25.0, '3-4': 7.5}

_RANGE_RE = re.compile(r'^\s*(\d+)\s*(?:-\s*(\d+))?\s*$')


def parse_prize_pool(value) -> float:
    """Accept a number or a display string such as '$1,000.50'."""
    if value is None or value == '':
        return 0.0
    if isinstance(value, bool):
        raise ValidationError('Prize pool must be a number')
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        cleaned = re.sub(r'[^0-9.]', '', str(value))
        try:
            amount = float(cleaned)
        except ValueError:
            amount = 0.0
    if amount < 0:
        raise ValidationError('Prize pool must not be negative')
    return amount


def parse_payout_table(table: Optional[Dict]) -> Dict[int, float]:
    """
    Expand a payout table into a percentage per place.

    Keys are places (``1``, ``"2"``) or inclusive ranges (``"3-4"``); a range's
    percentage applies to each place in it.
    """
    if table is None:
        table = DEFAULT_PAYOUT_TABLE
    if not isinstance(table, dict):
        raise ValidationError('Payout table must be a mapping of place to percentage')

    percentages = {}
    for key, value in table.items():
        found = _RANGE_RE.match(str(key))
        if not found:
            raise ValidationError(f'Invalid payout place: {key!r}')
        first = int(found.group(1))
        last = int(found.group(2) or first)
        if first < 1 or last < first:
            raise ValidationError(f'Invalid payout place: {key!r}')
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f'Payout for place {key} must be a number')
        if value < 0:
            raise ValidationError(f'Payout for place {key} must not be negative')
        for place in range(first, last + 1):
            percentages[place] = percentages.get(place, 0.0) + float(value)

    if sum(percentages.values()) > 100 + 1e-9:
        raise ValidationError('Payout table adds up to more than 100%')
    return percentages


def _round_losers(rounds, index: int) -> List[str]:
    return [m.loser_id for m in rounds[index].matches if m.loser_id is not None]


def placement_groups(bracket: Bracket) -> List[List[str]]:
    """
    Finishers grouped by the place they share, best first.

    Entrants knocked out in the same round share a place range. Walkovers
    produce no loser and so never place.
    """
    champion = bracket.champion
    if champion is None:
        raise StateError(f'Bracket {bracket.tournament_id} is not finished')

    winners = bracket.rounds[WINNERS]
    if bracket.kind == DOUBLE:
        reset = bracket.bracket_reset
        final = reset if reset.is_decided else bracket.grand_final
        losers = bracket.rounds[LOSERS]
        groups = [[champion], [final.loser_id]]
        groups.append([bracket.winners_final.loser_id] + _round_losers(losers, len(losers) - 1))
        for j in range(len(losers) - 2, -1, -1):
            groups.append(_round_losers(losers, j))
    else:
        groups = [[champion], [bracket.winners_final.loser_id]]
        for r in range(len(winners) - 2, -1, -1):
            groups.append(_round_losers(winners, r))

    return [[seed for seed in group if seed is not None] for group in groups]


def compute_payout(bracket: Bracket, prize_pool=0, table: Optional[Dict] = None) -> dict:
    total = parse_prize_pool(prize_pool)
    percentages = parse_payout_table(table)

    placements = []
    awards = []
    place = 1
    for group in placement_groups(bracket):
        if not group:
            continue
        share = sum(percentages.get(p, 0.0) for p in range(place, place + len(group))) / len(group)
        for seed in group:
            placements.append({'place': place, 'seedId': seed})
            amount = round(total * share / 100, 2)
            if amount > 0:
                awards.append({'place': place, 'seedId': seed, 'amount': amount})
        place += len(group)

    return {
        'tournamentId': bracket.tournament_id,
        'total': total,
        'champion': bracket.champion,
        'placements': placements,
        'awards': awards,
        'timestamp': now_iso(),
    }


class PayoutFinalizer:
    """Computes the payout once per tournament and keeps it."""

    def __init__(self, repository, store):
        self.repository = repository
        self.store = store

    def get(self, tournament_id: str) -> dict:
        payout = self.repository.get(PAYOUTS, tournament_id)
        if payout is None:
            raise NotFoundError(f'No payout for tournament {tournament_id}')
        return payout

    def finalize(self, tournament_id: str, prize_pool=0, table: Optional[Dict] = None) -> dict:
        """
        Return the tournament payout, computing and storing it the first time.

        Once stored, later calls return it unchanged whatever they pass.
        """
        existing = self.repository.get(PAYOUTS, tournament_id)
        if existing is not None:
            return existing

        bracket = self.store.get(tournament_id)
        if not bracket.is_complete:
            raise StateError(f'Bracket {tournament_id} is not finished')

        payout = compute_payout(bracket, prize_pool, table)
        stored, created = self.repository.insert_if_absent(PAYOUTS, tournament_id, payout)
        if created:
            logger.info("Finalized %s: champion %s, %s paid out", tournament_id,
                        payout['champion'], payout['total'])
        return stored
