"""Match results and per-participant tallies.

Scoring is the fixed Swiss rule: 3 points for a win, 1 for a draw, 0 for a
loss. Byes are counted but score nothing.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .errors import ValidationError
from .models import MatchOutcome, MatchResult, Participant

WIN_POINTS = 3
DRAW_POINTS = 1
LOSS_POINTS = 0


def calculate_points(wins: int, draws: int) -> int:
    return wins * WIN_POINTS + draws * DRAW_POINTS


@dataclass(frozen=True)
class MatchRecord:
    """A match as produced by manual entry or an external export."""

    round_number: int
    player1_id: int
    outcome: MatchOutcome
    player2_id: Optional[int] = None
    table_number: Optional[int] = None

    @classmethod
    def from_dict(cls, data):
        if data.get('player1_id') is None:
            raise ValidationError('Every match needs a player1_id', field='player1_id')
        return cls(
            round_number=int(data['round_number']),
            player1_id=data['player1_id'],
            player2_id=data.get('player2_id'),
            table_number=data.get('table_number'),
            outcome=MatchOutcome(data['outcome']),
        )


@dataclass(frozen=True)
class Tally:
    wins: int = 0
    losses: int = 0
    draws: int = 0
    byes: int = 0

    @property
    def points(self) -> int:
        return calculate_points(self.wins, self.draws)


def aggregate_results(matches: Iterable, roster: Iterable[int]) -> Dict[int, Tally]:
    """Fold ``matches`` into a :class:`Tally` per roster participant id.

    ``matches`` may be :class:`MatchResult` rows or :class:`MatchRecord`
    values; only ``player1_id``, ``player2_id`` and ``outcome`` are read.
    Ids outside ``roster`` are ignored. The result keeps roster order.
    """
    counts = OrderedDict((pid, [0, 0, 0, 0]) for pid in roster)  # wins, losses, draws, byes

    def bump(pid, idx):
        if pid is not None and pid in counts:
            counts[pid][idx] += 1

    for m in matches:
        outcome = MatchOutcome(m.outcome)
        p1, p2 = m.player1_id, m.player2_id
        if outcome is MatchOutcome.PLAYER1_WINS:
            bump(p1, 0)
            bump(p2, 1)
        elif outcome is MatchOutcome.PLAYER2_WINS:
            bump(p2, 0)
            bump(p1, 1)
        elif outcome is MatchOutcome.DRAW:
            bump(p1, 2)
            bump(p2, 2)
        elif outcome is MatchOutcome.BYE:
            bump(p1, 3)
        elif outcome is MatchOutcome.DOUBLE_LOSS:
            bump(p1, 1)
            bump(p2, 1)

    return OrderedDict((pid, Tally(*c)) for pid, c in counts.items())


def matches_by_round(matches: Iterable) -> "OrderedDict[int, List]":
    """Group matches by round, each round ordered by table number."""
    rounds = OrderedDict()
    ordered = sorted(
        matches,
        key=lambda m: (m.round_number, m.table_number is None, m.table_number or 0),
    )
    for m in ordered:
        rounds.setdefault(m.round_number, []).append(m)
    return rounds


def _row(t, record):
    return MatchResult(
        tournament_id=t.id,
        round_number=record.round_number,
        table_number=record.table_number,
        player1_id=record.player1_id,
        player2_id=record.player2_id,
        outcome=record.outcome,
    )


def _is_positive_int(value):
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def record_match(session, t, round_number, player1_id, outcome, player2_id=None, table_number=None):
    """Validate and store a manually entered match."""
    try:
        outcome = MatchOutcome(outcome)
    except ValueError:
        raise ValidationError(f'Unknown match outcome: {outcome}', field='outcome')
    if player1_id is None:
        raise ValidationError('Player 1 is required', field='player1_id')
    if not _is_positive_int(round_number):
        raise ValidationError('Round number must be a positive integer', field='round_number')
    if table_number is not None and not _is_positive_int(table_number):
        raise ValidationError('Table number must be a positive integer', field='table_number')
    if outcome is MatchOutcome.BYE and player2_id is not None:
        raise ValidationError('A bye has no opponent', field='player2_id')
    if outcome is not MatchOutcome.BYE and player2_id is None:
        raise ValidationError('Opponent is required unless the match is a bye', field='player2_id')
    if player2_id is not None and player2_id == player1_id:
        raise ValidationError('A player cannot face themselves', field='player2_id')

    ids = {pid for pid in (player1_id, player2_id) if pid is not None}
    found = session.query(Participant.id).filter(
        Participant.tournament_id == t.id, Participant.id.in_(ids)
    ).count()
    if found != len(ids):
        raise ValidationError('Players must be participants of this tournament', field='player1_id')

    row = _row(t, MatchRecord(
        round_number=round_number,
        player1_id=player1_id,
        player2_id=player2_id,
        table_number=table_number,
        outcome=outcome,
    ))
    session.add(row)
    session.commit()
    return row


def import_matches(session, t, records: Iterable[MatchRecord]) -> List[MatchResult]:
    """Store externally produced match records as they are."""
    rows = [_row(t, r) for r in records]
    session.add_all(rows)
    session.commit()
    return rows


def tournament_matches(session, t) -> List[MatchResult]:
    return (
        session.query(MatchResult)
        .filter_by(tournament_id=t.id)
        .order_by(MatchResult.round_number, MatchResult.table_number, MatchResult.id)
        .all()
    )
