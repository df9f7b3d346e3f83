"""
Tests for the match state machine: report, override, edit and reset.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from brackets import progression
from brackets.double_elimination import generate_double_elimination_bracket
from brackets.elimination import generate_single_elimination_bracket
from brackets.errors import NotFoundError, StateError, ValidationError
from brackets.models import BYE, EDITED, PENDING, READY, REPORTED, Pending, parse_match_id


def seeds(n):
    return [f"team{i}" for i in range(1, n + 1)]


def play(bracket, match_id, score1, score2, **kwargs):
    return progression.report(bracket, parse_match_id(match_id), score1, score2, **kwargs)


@pytest.fixture
def eight():
    return generate_single_elimination_bracket('t', seeds(8))


class TestReport:
    """Tests for reporting results."""

    def test_higher_score_wins(self, eight):
        match = play(eight, 'W1-M1', 21, 15)
        assert match.state == REPORTED
        assert match.winner_id == 'team1'
        assert match.loser_id == 'team2'
        assert (match.score1, match.score2) == (21, 15)

    def test_winner_fills_next_round(self, eight):
        play(eight, 'W1-M2', 10, 21)
        target = eight.find_match('W2-M1')
        assert target.slot2.seed == 'team4'
        assert target.state == PENDING

    def test_next_round_ready_when_both_fed(self, eight):
        play(eight, 'W1-M1', 2, 1)
        play(eight, 'W1-M2', 2, 1)
        assert eight.find_match('W2-M1').state == READY

    def test_override_winner_on_report(self, eight):
        match = play(eight, 'W1-M1', 5, 5, winner_override='team2')
        assert match.winner_id == 'team2'

    def test_tie_without_override_fails(self, eight):
        with pytest.raises(StateError):
            play(eight, 'W1-M1', 5, 5)
        assert eight.find_match('W1-M1').state == READY

    def test_override_must_be_participant(self, eight):
        with pytest.raises(ValidationError):
            play(eight, 'W1-M1', 1, 2, winner_override='team7')

    def test_pending_match_rejected(self, eight):
        with pytest.raises(StateError):
            play(eight, 'W2-M1', 1, 0)

    def test_already_reported_rejected(self, eight):
        play(eight, 'W1-M1', 1, 0)
        with pytest.raises(StateError):
            play(eight, 'W1-M1', 2, 0)

    @pytest.mark.parametrize('score1,score2', [
        (None, 1), ('3', 1), (True, 0), (-1, 2), (1, [2]),
    ])
    def test_malformed_scores(self, eight, score1, score2):
        with pytest.raises(ValidationError):
            play(eight, 'W1-M1', score1, score2)

    def test_float_scores_accepted(self, eight):
        match = play(eight, 'W1-M1', 1.5, 0.5)
        assert match.winner_id == 'team1'

    def test_unknown_match(self, eight):
        with pytest.raises(NotFoundError):
            play(eight, 'W9-M1', 1, 0)

    def test_walkover_can_be_scored_once(self):
        bracket = generate_single_elimination_bracket('t', seeds(3))
        match = play(bracket, 'W1-M2', 1, 0)
        assert match.state == REPORTED
        assert match.winner_id == 'team3'
        with pytest.raises(StateError):
            play(bracket, 'W1-M2', 1, 0)

    def test_walkover_winner_is_fixed(self):
        bracket = generate_single_elimination_bracket('t', seeds(3))
        with pytest.raises(ValidationError):
            play(bracket, 'W1-M2', 0, 0, winner_override='team1')

    def test_bye_vs_bye_has_no_participants(self):
        bracket = generate_single_elimination_bracket('t', seeds(5))
        with pytest.raises(StateError):
            play(bracket, 'W1-M4', 1, 0)

    def test_report_after_walkover_fills_bye_round(self):
        """n = 6: the W1-M3 winner walks over the W1-M4 double bye."""
        bracket = generate_single_elimination_bracket('t', seeds(6))
        w2m2 = bracket.find_match('W2-M2')
        assert w2m2.state == PENDING
        play(bracket, 'W1-M3', 0, 2)
        assert w2m2.state == BYE
        assert w2m2.winner_id == 'team6'
        assert bracket.winners_final.slot2.seed == 'team6'


class TestReset:
    """Tests for reset and its downstream cascade."""

    def test_reset_clears_result(self, eight):
        play(eight, 'W1-M1', 2, 1)
        match = progression.reset(eight, parse_match_id('W1-M1'))
        assert match.state == READY
        assert match.winner_id is None
        assert match.score1 is None and match.score2 is None
        assert isinstance(eight.find_match('W2-M1').slot1, Pending)

    def test_reset_cascades(self, eight):
        """Report A, report the next match fed by A, reset A: the next match is cleared."""
        play(eight, 'W1-M1', 2, 1)
        play(eight, 'W1-M2', 2, 1)
        play(eight, 'W2-M1', 2, 1)
        progression.reset(eight, parse_match_id('W1-M1'))
        w2m1 = eight.find_match('W2-M1')
        assert w2m1.state == PENDING
        assert w2m1.winner_id is None
        assert w2m1.slot2.seed == 'team3'
        assert isinstance(eight.winners_final.slot1, Pending)

    def test_reset_cascade_reaches_the_final(self, eight):
        for match_id in ('W1-M1', 'W1-M2', 'W1-M3', 'W1-M4', 'W2-M1', 'W2-M2', 'W3-M1'):
            play(eight, match_id, 2, 1)
        assert eight.champion == 'team1'
        progression.reset(eight, parse_match_id('W1-M2'))
        assert eight.champion is None
        assert eight.winners_final.state == PENDING
        assert eight.winners_final.slot2.seed == 'team5'
        assert eight.find_match('W2-M2').state == REPORTED

    def test_no_stale_filled_slots_after_reset(self, eight):
        for match_id in ('W1-M1', 'W1-M2', 'W2-M1'):
            play(eight, match_id, 2, 1)
        progression.reset(eight, parse_match_id('W1-M1'))
        for match in eight.iter_matches():
            for slot in (match.slot1, match.slot2):
                if slot.source is not None and slot.source.match == ('winners', 0, 0):
                    assert isinstance(slot, Pending)

    def test_reset_undecided_is_noop(self, eight):
        match = progression.reset(eight, parse_match_id('W1-M1'))
        assert match.state == READY
        match = progression.reset(eight, parse_match_id('W2-M1'))
        assert match.state == PENDING

    def test_reset_walkover_keeps_winner(self):
        bracket = generate_single_elimination_bracket('t', seeds(3))
        play(bracket, 'W1-M2', 4, 0)
        match = progression.reset(bracket, parse_match_id('W1-M2'))
        assert match.state == BYE
        assert match.winner_id == 'team3'
        assert match.score1 is None
        assert bracket.winners_final.slot2.seed == 'team3'

    def test_reset_in_double_clears_losers_side(self):
        bracket = generate_double_elimination_bracket('t', ['a', 'b', 'c', 'd'])
        play(bracket, 'W1-M1', 2, 1)
        play(bracket, 'W1-M2', 2, 1)
        play(bracket, 'L1-M1', 2, 1)
        progression.reset(bracket, parse_match_id('W1-M1'))
        l1 = bracket.find_match('L1-M1')
        assert l1.state == PENDING
        assert l1.winner_id is None
        assert isinstance(l1.slot1, Pending)
        assert isinstance(bracket.grand_final.slot2, Pending)


class TestOverride:
    """Tests for forcing winners."""

    def test_override_ready_match(self, eight):
        match = progression.override(eight, parse_match_id('W1-M1'), 'team2')
        assert match.state == REPORTED
        assert match.winner_id == 'team2'
        assert eight.find_match('W2-M1').slot1.seed == 'team2'

    def test_override_requires_winner(self, eight):
        with pytest.raises(ValidationError):
            progression.override(eight, parse_match_id('W1-M1'), None)

    def test_override_requires_participant(self, eight):
        with pytest.raises(ValidationError):
            progression.override(eight, parse_match_id('W1-M1'), 'team5')

    def test_override_pending_match_fails(self, eight):
        with pytest.raises(StateError):
            progression.override(eight, parse_match_id('W2-M1'), 'team1')

    def test_override_changes_winner_and_cascades(self, eight):
        play(eight, 'W1-M1', 2, 1)
        play(eight, 'W1-M2', 2, 1)
        play(eight, 'W2-M1', 2, 1)
        match = progression.override(eight, parse_match_id('W1-M1'), 'team2', 1, 3)
        assert match.winner_id == 'team2'
        assert (match.score1, match.score2) == (1, 3)
        w2m1 = eight.find_match('W2-M1')
        assert w2m1.seeds == ('team2', 'team3')
        assert w2m1.state == READY
        assert w2m1.winner_id is None
        assert isinstance(eight.winners_final.slot1, Pending)

    def test_override_same_winner_keeps_downstream(self, eight):
        play(eight, 'W1-M1', 2, 1)
        play(eight, 'W1-M2', 2, 1)
        play(eight, 'W2-M1', 2, 1)
        match = progression.override(eight, parse_match_id('W1-M1'), 'team1')
        assert (match.score1, match.score2) == (2, 1)
        assert eight.find_match('W2-M1').state == REPORTED

    def test_override_drops_stale_scores_on_winner_change(self, eight):
        play(eight, 'W1-M1', 2, 1)
        match = progression.override(eight, parse_match_id('W1-M1'), 'team2')
        assert match.score1 is None and match.score2 is None

    def test_override_grand_final_back_to_winners_champion(self):
        bracket = generate_double_elimination_bracket('t', ['a', 'b', 'c', 'd'])
        for match_id in ('W1-M1', 'W1-M2', 'L1-M1', 'W2-M1'):
            play(bracket, match_id, 2, 1)
        play(bracket, 'GF', 0, 2)
        assert bracket.bracket_reset.state == READY
        progression.override(bracket, parse_match_id('GF'), 'a')
        assert bracket.champion == 'a'
        assert bracket.bracket_reset.state == PENDING
        assert isinstance(bracket.bracket_reset.slot1, Pending)

    def test_override_grand_final_to_losers_champion(self):
        bracket = generate_double_elimination_bracket('t', ['a', 'b', 'c', 'd'])
        for match_id in ('W1-M1', 'W1-M2', 'L1-M1', 'W2-M1'):
            play(bracket, match_id, 2, 1)
        play(bracket, 'GF', 2, 0)
        assert bracket.champion == 'a'
        progression.override(bracket, parse_match_id('GF'), 'b')
        assert bracket.champion is None
        assert bracket.bracket_reset.seeds == ('a', 'b')


class TestEdit:
    """Tests for score corrections."""

    def test_edit_keeps_winner(self, eight):
        play(eight, 'W1-M1', 2, 1)
        match = progression.edit(eight, parse_match_id('W1-M1'), 5, 0)
        assert match.state == EDITED
        assert (match.score1, match.score2) == (5, 0)
        assert match.winner_id == 'team1'

    def test_edit_that_changes_winner_fails(self, eight):
        play(eight, 'W1-M1', 2, 1)
        with pytest.raises(StateError):
            progression.edit(eight, parse_match_id('W1-M1'), 0, 5)
        match = eight.find_match('W1-M1')
        assert match.state == REPORTED
        assert (match.score1, match.score2) == (2, 1)

    def test_edit_tie_keeps_winner(self, eight):
        play(eight, 'W1-M1', 3, 3, winner_override='team2')
        match = progression.edit(eight, parse_match_id('W1-M1'), 4, 4)
        assert match.winner_id == 'team2'

    def test_edit_unreported_fails(self, eight):
        with pytest.raises(StateError):
            progression.edit(eight, parse_match_id('W1-M1'), 1, 0)

    def test_edit_twice(self, eight):
        play(eight, 'W1-M1', 2, 1)
        progression.edit(eight, parse_match_id('W1-M1'), 3, 1)
        match = progression.edit(eight, parse_match_id('W1-M1'), 4, 1)
        assert match.state == EDITED
        assert match.score1 == 4

    def test_edit_validates_scores(self, eight):
        play(eight, 'W1-M1', 2, 1)
        with pytest.raises(ValidationError):
            progression.edit(eight, parse_match_id('W1-M1'), -1, 0)


class TestTerminalState:
    """Tests for champion detection."""

    def test_champion_single(self):
        bracket = generate_single_elimination_bracket('t', ['a', 'b'])
        assert progression.champion(bracket) is None
        assert not progression.is_complete(bracket)
        play(bracket, 'W1-M1', 3, 1)
        assert progression.champion(bracket) == 'a'
        assert progression.is_complete(bracket)
