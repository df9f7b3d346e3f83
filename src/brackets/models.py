"""
Bracket data model: seeds, slots, matches, rounds and brackets.

Matches point at each other through bracket-relative coordinates instead of
object references, so a bracket converts to and from plain dicts (the stored
document and the JSON snapshot are the same shape).
"""
import re
from datetime import datetime
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from .errors import NotFoundError, ValidationError

SINGLE = 'single'
DOUBLE = 'double'
BRACKET_KINDS = (SINGLE, DOUBLE)

WINNERS = 'winners'
LOSERS = 'losers'
GRAND = 'grand'
SIDES = (WINNERS, LOSERS, GRAND)

# Which outcome of a source match feeds a slot
WINNER = 'winner'
LOSER = 'loser'

PENDING = 'pending'
READY = 'ready'
BYE = 'bye'
REPORTED = 'reported'
EDITED = 'edited'
DECIDED_STATES = (BYE, REPORTED, EDITED)

GRAND_FINAL_ID = 'GF'
BRACKET_RESET_ID = 'BR'

_MATCH_ID_RE = re.compile(r'^([WL])(\d+)-M(\d+)$')
_SIDE_PREFIX = {WINNERS: 'W', LOSERS: 'L'}


def now_iso() -> str:
    return datetime.now().isoformat()


class Coordinate(NamedTuple):
    """Position of a match inside its bracket (0-based round and position)."""
    side: str
    round: int
    position: int

    @property
    def match_id(self) -> str:
        if self.side == GRAND:
            return GRAND_FINAL_ID if self.round == 0 else BRACKET_RESET_ID
        return f"{_SIDE_PREFIX[self.side]}{self.round + 1}-M{self.position + 1}"


def parse_match_id(match_id) -> Coordinate:
    """Turn a match id such as 'W1-M2', 'L3-M1', 'GF' or 'BR' into a coordinate."""
    match_id = str(match_id)
    if match_id == GRAND_FINAL_ID:
        return Coordinate(GRAND, 0, 0)
    if match_id == BRACKET_RESET_ID:
        return Coordinate(GRAND, 1, 0)
    found = _MATCH_ID_RE.match(match_id)
    if not found:
        raise NotFoundError(f"Unknown match '{match_id}'")
    side = WINNERS if found.group(1) == 'W' else LOSERS
    round_num = int(found.group(2))
    position = int(found.group(3))
    if round_num < 1 or position < 1:
        raise NotFoundError(f"Unknown match '{match_id}'")
    return Coordinate(side, round_num - 1, position - 1)


class Feed(NamedTuple):
    """The outcome (winner or loser) of a source match that feeds a slot."""
    match: Coordinate
    role: str

    def to_dict(self) -> dict:
        return {'matchId': self.match.match_id, 'role': self.role}

    @classmethod
    def from_dict(cls, data: dict) -> 'Feed':
        return cls(parse_match_id(data['matchId']), data['role'])


class Link(NamedTuple):
    """Forward pointer: the match and slot number (1 or 2) that consume a result."""
    match: Coordinate
    slot: int

    def to_dict(self) -> dict:
        return {'matchId': self.match.match_id, 'slot': self.slot}

    @classmethod
    def from_dict(cls, data: dict) -> 'Link':
        return cls(parse_match_id(data['matchId']), int(data['slot']))


class Slot:
    """One side of a match. Use the Filled, Bye and Pending variants."""

    kind = None

    def __init__(self, source: Optional[Feed] = None):
        self.source = source

    @property
    def seed(self) -> Optional[str]:
        return None

    @property
    def is_resolved(self) -> bool:
        return True

    def __eq__(self, other):
        return (type(self) is type(other)
                and self.seed == other.seed
                and self.source == other.source)

    def __repr__(self):
        return f"{type(self).__name__}(seed={self.seed}, source={self.source})"

    def to_dict(self) -> dict:
        data = {'type': self.kind}
        if self.seed is not None:
            data['seedId'] = self.seed
        if self.source is not None:
            data['source'] = self.source.to_dict()
        return data

    @staticmethod
    def from_dict(data: dict) -> 'Slot':
        source = Feed.from_dict(data['source']) if data.get('source') else None
        kind = data.get('type')
        if kind == Filled.kind:
            return Filled(data['seedId'], source)
        if kind == Bye.kind:
            return Bye(source)
        if kind == Pending.kind:
            return Pending(source)
        raise ValueError(f"Unknown slot type: {kind!r}")


class Filled(Slot):
    """A slot holding a participant."""

    kind = 'filled'

    def __init__(self, seed: str, source: Optional[Feed] = None):
        super().__init__(source)
        self._seed = seed

    @property
    def seed(self) -> Optional[str]:
        return self._seed


class Bye(Slot):
    """An empty slot: the other side wins by walkover."""

    kind = 'bye'


class Pending(Slot):
    """A slot waiting on the outcome of an earlier match."""

    kind = 'pending'

    def __init__(self, source: Feed):
        if source is None:
            raise ValueError("Pending slot needs a source match")
        super().__init__(source)

    @property
    def is_resolved(self) -> bool:
        return False


class Match:
    def __init__(self, coordinate: Coordinate, slot1: Slot, slot2: Slot,
                 winner_to: Optional[Link] = None, loser_to: Optional[Link] = None):
        self.coordinate = coordinate
        self.slot1 = slot1
        self.slot2 = slot2
        self.winner_to = winner_to
        self.loser_to = loser_to
        self.state = PENDING
        self.score1 = None
        self.score2 = None
        self.winner_id = None
        self.loser_id = None

    @property
    def id(self) -> str:
        return self.coordinate.match_id

    @property
    def side(self) -> str:
        return self.coordinate.side

    @property
    def round(self) -> int:
        return self.coordinate.round

    @property
    def position(self) -> int:
        return self.coordinate.position

    def slot(self, number: int) -> Slot:
        return self.slot1 if number == 1 else self.slot2

    def set_slot(self, number: int, slot: Slot):
        if number == 1:
            self.slot1 = slot
        else:
            self.slot2 = slot

    @property
    def seeds(self) -> Tuple[Optional[str], Optional[str]]:
        return self.slot1.seed, self.slot2.seed

    @property
    def is_resolved(self) -> bool:
        """Both slots are known (participant or bye)."""
        return self.slot1.is_resolved and self.slot2.is_resolved

    @property
    def has_bye(self) -> bool:
        return isinstance(self.slot1, Bye) or isinstance(self.slot2, Bye)

    @property
    def is_decided(self) -> bool:
        return self.state in DECIDED_STATES

    @property
    def has_score(self) -> bool:
        return self.score1 is not None or self.score2 is not None

    def other_seed(self, seed: str) -> Optional[str]:
        seed1, seed2 = self.seeds
        return seed2 if seed == seed1 else seed1

    def links(self) -> Iterator[Tuple[str, Link]]:
        """Yield (role, link) for each forward pointer this match has."""
        if self.winner_to is not None:
            yield WINNER, self.winner_to
        if self.loser_to is not None:
            yield LOSER, self.loser_to

    def clear_result(self):
        self.score1 = None
        self.score2 = None
        self.winner_id = None
        self.loser_id = None

    def __repr__(self):
        return (f"Match(id={self.id}, state={self.state}, slot1={self.slot1}, "
                f"slot2={self.slot2}, winner={self.winner_id})")

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'side': self.side,
            'round': self.round,
            'position': self.position,
            'slot1': self.slot1.to_dict(),
            'slot2': self.slot2.to_dict(),
            'state': self.state,
        }
        optional = (
            ('score1', self.score1),
            ('score2', self.score2),
            ('winnerId', self.winner_id),
            ('loserId', self.loser_id),
            ('winnerTo', self.winner_to.to_dict() if self.winner_to else None),
            ('loserTo', self.loser_to.to_dict() if self.loser_to else None),
        )
        for key, value in optional:
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Match':
        match = cls(
            Coordinate(data['side'], int(data['round']), int(data['position'])),
            Slot.from_dict(data['slot1']),
            Slot.from_dict(data['slot2']),
            winner_to=Link.from_dict(data['winnerTo']) if data.get('winnerTo') else None,
            loser_to=Link.from_dict(data['loserTo']) if data.get('loserTo') else None,
        )
        match.state = data.get('state', PENDING)
        match.score1 = data.get('score1')
        match.score2 = data.get('score2')
        match.winner_id = data.get('winnerId')
        match.loser_id = data.get('loserId')
        return match


class Round:
    def __init__(self, name: str, matches: List[Match]):
        self.name = name
        self.matches = matches

    def __repr__(self):
        return f"Round(name={self.name}, matches={len(self.matches)})"

    def to_dict(self) -> dict:
        return {'name': self.name, 'matches': [m.to_dict() for m in self.matches]}

    @classmethod
    def from_dict(cls, data: dict) -> 'Round':
        return cls(data.get('name', ''), [Match.from_dict(m) for m in data.get('matches', [])])


class Bracket:
    """All rounds of one tournament. Structure is fixed once generated."""

    def __init__(self, tournament_id: str, kind: str, winners: List[Round],
                 losers: Optional[List[Round]] = None, grand: Optional[List[Round]] = None,
                 version: int = 1, created_at: Optional[str] = None,
                 updated_at: Optional[str] = None):
        self.tournament_id = tournament_id
        self.kind = kind
        self.rounds: Dict[str, List[Round]] = {
            WINNERS: winners,
            LOSERS: losers or [],
            GRAND: grand or [],
        }
        self.version = version
        self.created_at = created_at or now_iso()
        self.updated_at = updated_at or self.created_at

    def match(self, coordinate: Coordinate) -> Match:
        side, round_num, position = coordinate
        rounds = self.rounds.get(side, [])
        if not (0 <= round_num < len(rounds)) or not (0 <= position < len(rounds[round_num].matches)):
            raise NotFoundError(f"Unknown match '{coordinate.match_id}' in tournament {self.tournament_id}")
        return rounds[round_num].matches[position]

    def find_match(self, match_id: str) -> Match:
        return self.match(parse_match_id(match_id))

    def iter_matches(self) -> Iterator[Match]:
        for side in SIDES:
            for rnd in self.rounds[side]:
                yield from rnd.matches

    @property
    def winners_final(self) -> Match:
        return self.rounds[WINNERS][-1].matches[0]

    @property
    def grand_final(self) -> Optional[Match]:
        grand = self.rounds[GRAND]
        return grand[0].matches[0] if grand else None

    @property
    def bracket_reset(self) -> Optional[Match]:
        grand = self.rounds[GRAND]
        return grand[1].matches[0] if len(grand) > 1 else None

    @property
    def champion(self) -> Optional[str]:
        """Tournament winner once the bracket is terminal, else None."""
        if self.kind == SINGLE:
            final = self.winners_final
            return final.winner_id if final.is_decided else None
        grand_final, reset = self.grand_final, self.bracket_reset
        if reset is not None and reset.is_decided and reset.winner_id:
            return reset.winner_id
        if grand_final.is_decided and grand_final.winner_id is not None \
                and grand_final.winner_id == grand_final.slot1.seed:
            return grand_final.winner_id
        return None

    @property
    def is_complete(self) -> bool:
        return self.champion is not None

    def touch(self):
        self.updated_at = now_iso()

    def copy(self) -> 'Bracket':
        return Bracket.from_dict(self.to_dict())

    def __repr__(self):
        return (f"Bracket(tournament_id={self.tournament_id}, kind={self.kind}, "
                f"version={self.version})")

    def to_dict(self) -> dict:
        return {
            'tournamentId': self.tournament_id,
            'kind': self.kind,
            'version': self.version,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
            'champion': self.champion,
            'rounds': {side: [r.to_dict() for r in self.rounds[side]] for side in SIDES},
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Bracket':
        rounds = data.get('rounds', {})
        return cls(
            data['tournamentId'],
            data['kind'],
            [Round.from_dict(r) for r in rounds.get(WINNERS, [])],
            [Round.from_dict(r) for r in rounds.get(LOSERS, [])],
            [Round.from_dict(r) for r in rounds.get(GRAND, [])],
            version=int(data.get('version', 1)),
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
        )


class SeedSet:
    """Ordered, deduplicated participant ids. Order decides initial placement."""

    def __init__(self, seeds):
        if seeds is None or isinstance(seeds, (str, bytes, dict)):
            raise ValidationError('Seeds must be a list of participant ids')
        ordered = []
        seen = set()
        for seed in seeds:
            if not isinstance(seed, str) or not seed.strip():
                raise ValidationError(f'Invalid participant id: {seed!r}')
            if seed in seen:
                continue
            seen.add(seed)
            ordered.append(seed)
        self.seeds = ordered

    def __len__(self):
        return len(self.seeds)

    def __iter__(self):
        return iter(self.seeds)

    def __getitem__(self, index):
        return self.seeds[index]

    def __repr__(self):
        return f"SeedSet(seeds={self.seeds})"
