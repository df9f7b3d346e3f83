"""
Tournament operations used by the web layer: start, play, finish, watch.
"""
import logging
import time
from typing import List, Optional

from . import progression
from .broadcast import BracketStream, UpdateBroadcaster
from .errors import ConflictError
from .models import Bracket, parse_match_id
from .payout import PayoutFinalizer
from .store import BracketStore

logger = logging.getLogger(__name__)


class TournamentService:
    def __init__(self, store: BracketStore, finalizer: PayoutFinalizer,
                 broadcaster: UpdateBroadcaster, max_attempts: int = 4,
                 base_delay: float = 0.05, heartbeat_seconds: float = 15):
        self.store = store
        self.finalizer = finalizer
        self.broadcaster = broadcaster
        self.max_attempts = max(1, int(max_attempts))
        self.base_delay = base_delay
        self.heartbeat_seconds = heartbeat_seconds

    def start(self, tournament_id: str, seeds, format_name) -> Bracket:
        return self.store.create(tournament_id, seeds, format_name)

    def get_bracket(self, tournament_id: str) -> Bracket:
        return self.store.get(tournament_id)

    def list_matches(self, tournament_id: str) -> List[dict]:
        """All matches, winners side first. Empty before the tournament starts."""
        bracket = self.store.find(tournament_id)
        if bracket is None:
            return []
        return [m.to_dict() for m in bracket.iter_matches()]

    def _mutate(self, tournament_id: str, match_id: str, operation,
                expected_version: Optional[int] = None):
        """
        Run a progression operation against the stored bracket.

        With an explicit ``expected_version`` the caller owns conflict
        handling and gets a single attempt. Otherwise the current version is
        read and conflicts are retried with exponential backoff.
        """
        coordinate = parse_match_id(match_id)
        if expected_version is not None:
            return self.store.apply_mutation(tournament_id, coordinate, expected_version, operation)

        for attempt in range(self.max_attempts):
            version = self.store.get(tournament_id).version
            try:
                return self.store.apply_mutation(tournament_id, coordinate, version, operation)
            except ConflictError:
                if attempt == self.max_attempts - 1:
                    raise
                delay = self.base_delay * 2 ** attempt
                logger.warning("Conflict updating %s on %s (attempt %d), retrying in %.2fs",
                               match_id, tournament_id, attempt + 1, delay)
                time.sleep(delay)

    def report(self, tournament_id: str, match_id: str, score1, score2,
               winner_override: Optional[str] = None, actor_id: Optional[str] = None,
               expected_version: Optional[int] = None):
        operation = _call(progression.report, score1, score2,
                          winner_override=winner_override, actor_id=actor_id)
        return self._mutate(tournament_id, match_id, operation, expected_version)

    def override(self, tournament_id: str, match_id: str, winner_id: str,
                 score1=None, score2=None, actor_id: Optional[str] = None,
                 expected_version: Optional[int] = None):
        operation = _call(progression.override, winner_id, score1, score2, actor_id=actor_id)
        return self._mutate(tournament_id, match_id, operation, expected_version)

    def edit(self, tournament_id: str, match_id: str, score1, score2,
             actor_id: Optional[str] = None, expected_version: Optional[int] = None):
        operation = _call(progression.edit, score1, score2, actor_id=actor_id)
        return self._mutate(tournament_id, match_id, operation, expected_version)

    def reset(self, tournament_id: str, match_id: str, actor_id: Optional[str] = None,
              expected_version: Optional[int] = None):
        operation = _call(progression.reset, actor_id=actor_id)
        return self._mutate(tournament_id, match_id, operation, expected_version)

    def finalize(self, tournament_id: str, prize_pool=0, table=None) -> dict:
        return self.finalizer.finalize(tournament_id, prize_pool, table)

    def get_payout(self, tournament_id: str) -> dict:
        return self.finalizer.get(tournament_id)

    def open_stream(self, tournament_id: str) -> BracketStream:
        """Stream for an existing bracket (NotFoundError otherwise)."""
        self.store.get(tournament_id)
        return BracketStream(
            self.broadcaster,
            tournament_id,
            lambda: self.store.get(tournament_id).to_dict(),
            heartbeat_seconds=self.heartbeat_seconds,
        )

    def shutdown(self):
        if not self.broadcaster.closed:
            self.broadcaster.close()


def _call(operation, *args, **kwargs):
    """Adapt a progression operation to the store's ``(bracket, coordinate)`` callback."""
    def apply(bracket, coordinate):
        return operation(bracket, coordinate, *args, **kwargs)
    return apply
