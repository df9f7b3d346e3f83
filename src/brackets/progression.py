"""
Match progression: the state machine behind report, override, edit and reset.

All operations mutate the bracket they are given in place. Callers that need
all-or-nothing semantics (the store) hand in a private copy and discard it when
an operation raises.

Results move forward along each match's winner/loser links. Both directions
of travel use an explicit worklist rather than recursion:

- propagation fills downstream slots and auto-resolves bye pairings, which can
  chain through several rounds;
- invalidation walks the same links from a cleared result, reverting every
  slot it filled back to Pending and clearing any result built on it.
"""
import logging
from collections import deque
from typing import Optional

from .errors import StateError, ValidationError
from .models import (
    BYE, EDITED, GRAND, PENDING, READY, REPORTED, WINNER,
    Bracket, Bye, Coordinate, Feed, Filled, Match, Pending,
)

logger = logging.getLogger(__name__)


def _check_score(value, name: str):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f'{name} must be a number')
    if value < 0:
        raise ValidationError(f'{name} must not be negative')


def _check_scores(score1, score2, required: bool = True):
    for value, name in ((score1, 'score1'), (score2, 'score2')):
        if value is None:
            if required:
                raise ValidationError(f'{name} is required')
            continue
        _check_score(value, name)


def _require_participants(match: Match):
    if not match.is_resolved:
        raise StateError(f"Match {match.id} is still waiting on an earlier result")
    if match.seeds == (None, None):
        raise StateError(f"Match {match.id} has no participants")


def _walkover_seed(match: Match) -> Optional[str]:
    seed1, seed2 = match.seeds
    return seed1 if seed1 is not None else seed2


def _score_winner(match: Match, score1, score2) -> Optional[str]:
    if score1 == score2:
        return None
    seed1, seed2 = match.seeds
    return seed1 if score1 > score2 else seed2


def _record(match: Match, winner: Optional[str], score1, score2, state: str):
    match.winner_id = winner
    match.loser_id = match.other_seed(winner) if winner is not None else None
    match.score1 = score1
    match.score2 = score2
    match.state = state


def _slot_state(match: Match) -> str:
    return READY if match.is_resolved else PENDING


def _feeds_forward(match: Match) -> bool:
    """The grand final only feeds the bracket reset when the losers champion wins it."""
    if match.side == GRAND and match.round == 0:
        return match.winner_id is not None and match.winner_id == match.slot2.seed
    return True


def _settle(match: Match) -> bool:
    """
    Recompute the state of a match whose slots just changed.

    Returns True if the match auto-resolved as a walkover and its outcome must
    be propagated.
    """
    if match.state != PENDING or not match.is_resolved:
        return False
    if match.has_bye:
        # Filled vs bye: the participant advances. Bye vs bye: nobody does.
        _record(match, _walkover_seed(match), None, None, BYE)
        return True
    match.state = READY
    return False


def _propagate(bracket: Bracket, origin: Match):
    """Fill downstream slots from a decided match, following bye chains."""
    queue = deque([origin.coordinate])
    while queue:
        current = bracket.match(queue.popleft())
        if not _feeds_forward(current):
            continue
        for role, link in current.links():
            seed = current.winner_id if role == WINNER else current.loser_id
            feed = Feed(current.coordinate, role)
            slot = Filled(seed, feed) if seed is not None else Bye(feed)
            target = bracket.match(link.match)
            existing = target.slot(link.slot)
            if existing == slot:
                continue
            assert isinstance(existing, Pending) and existing.source == feed, \
                f"{target.id} slot {link.slot} is not waiting on {current.id}"
            target.set_slot(link.slot, slot)
            if _settle(target):
                queue.append(target.coordinate)


def _invalidate_downstream(bracket: Bracket, origin: Match):
    """
    Revert every slot filled from ``origin``'s result, transitively.

    ``origin`` itself keeps its slots and result; the caller decides what to do
    with it. Every match reached downstream has its result cleared and drops
    back to pending.
    """
    queue = deque([origin.coordinate])
    seen = set()
    while queue:
        coordinate = queue.popleft()
        if coordinate in seen:
            continue
        seen.add(coordinate)
        current = bracket.match(coordinate)
        for role, link in current.links():
            target = bracket.match(link.match)
            slot = target.slot(link.slot)
            if isinstance(slot, Pending):
                continue
            assert slot.source == Feed(current.coordinate, role), \
                f"{target.id} slot {link.slot} was not filled by {current.id}"
            target.set_slot(link.slot, Pending(slot.source))
            queue.append(target.coordinate)
        if current is not origin:
            if current.is_decided:
                logger.info("Cleared result of %s (depended on %s)", current.id, origin.id)
            current.clear_result()
            current.state = PENDING


def advance_byes(bracket: Bracket):
    """Settle the opening round: ready the full pairings, resolve walkovers."""
    for match in bracket.rounds['winners'][0].matches:
        if _settle(match):
            _propagate(bracket, match)


def report(bracket: Bracket, coordinate: Coordinate, score1, score2,
           winner_override: Optional[str] = None, actor_id: Optional[str] = None) -> Match:
    """Record the result of a playable match and advance its participants."""
    match = bracket.match(coordinate)
    _require_participants(match)
    _check_scores(score1, score2)
    walkover = match.state == BYE and not match.has_score
    if match.state != READY and not walkover:
        raise StateError(f"Match {match.id} is already {match.state}; use override, edit or reset")

    if match.has_bye:
        winner = _walkover_seed(match)
        if winner_override is not None and winner_override != winner:
            raise ValidationError(f"{winner} wins match {match.id} by walkover")
    elif winner_override is not None:
        if winner_override not in match.seeds:
            raise ValidationError('Winner must be one of the match participants')
        winner = winner_override
    else:
        winner = _score_winner(match, score1, score2)
        if winner is None:
            raise StateError(f"Scores for match {match.id} are tied; provide a winner override")

    _record(match, winner, score1, score2, REPORTED)
    _propagate(bracket, match)
    logger.info("Match %s reported by %s: winner %s", match.id, actor_id or 'system', winner)
    return match


def override(bracket: Bracket, coordinate: Coordinate, winner_id: str,
             score1=None, score2=None, actor_id: Optional[str] = None) -> Match:
    """
    Force the winner of a match, whatever the scores say.

    When a different winner was already propagated, everything downstream that
    consumed the old result is reset before the new winner moves forward.
    """
    if not winner_id:
        raise ValidationError('winnerId is required')
    match = bracket.match(coordinate)
    _require_participants(match)
    _check_scores(score1, score2, required=False)
    if match.has_bye:
        if winner_id != _walkover_seed(match):
            raise ValidationError(f"{_walkover_seed(match)} wins match {match.id} by walkover")
    elif winner_id not in match.seeds:
        raise ValidationError('Winner must be one of the match participants')

    previous = match.winner_id
    if previous is not None and previous != winner_id:
        _invalidate_downstream(bracket, match)
    if previous != winner_id:
        # Old scores describe the old outcome
        kept1, kept2 = None, None
    else:
        kept1, kept2 = match.score1, match.score2
    _record(match, winner_id,
            score1 if score1 is not None else kept1,
            score2 if score2 is not None else kept2,
            REPORTED)
    _propagate(bracket, match)
    logger.info("Match %s overridden by %s: winner %s (was %s)",
                match.id, actor_id or 'system', winner_id, previous)
    return match


def edit(bracket: Bracket, coordinate: Coordinate, score1, score2,
         actor_id: Optional[str] = None) -> Match:
    """Correct the scores of a reported match without changing its winner."""
    match = bracket.match(coordinate)
    if match.state not in (REPORTED, EDITED):
        raise StateError(f"Match {match.id} is {match.state}; only reported matches can be edited")
    _check_scores(score1, score2)
    if not match.has_bye:
        # A tie does not contradict a winner that was decided by override
        new_winner = _score_winner(match, score1, score2) or match.winner_id
        if new_winner != match.winner_id:
            raise StateError('Winner would change; use override or reset')
    match.score1 = score1
    match.score2 = score2
    match.state = EDITED
    logger.info("Match %s scores edited by %s", match.id, actor_id or 'system')
    return match


def reset(bracket: Bracket, coordinate: Coordinate, actor_id: Optional[str] = None) -> Match:
    """
    Clear a match result and everything that was computed from it.

    Matches with nothing recorded are left as they are. Walkovers keep their
    winner (it is fixed by the bye) and only lose recorded scores.
    """
    match = bracket.match(coordinate)
    if not match.is_decided:
        return match
    if match.has_bye:
        match.score1 = None
        match.score2 = None
        match.state = BYE
        return match

    _invalidate_downstream(bracket, match)
    match.clear_result()
    match.state = _slot_state(match)
    logger.info("Match %s reset by %s", match.id, actor_id or 'system')
    return match


def champion(bracket: Bracket) -> Optional[str]:
    """The tournament winner, or None while the bracket is still being played."""
    return bracket.champion


def is_complete(bracket: Bracket) -> bool:
    return bracket.champion is not None
