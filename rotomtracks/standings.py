from dataclasses import asdict, dataclass, replace
from typing import Iterable, List, Optional

from .errors import ValidationError
from .models import AggregatedResult, MatchResult, Participant
from .results import aggregate_results

# Waitlisted players never took part; dropped players keep their results.
RANKED_STATUSES = ('registered', 'checked_in', 'dropped')


# --- Swiss round recommendations (per player count) ---
def recommended_rounds(n_players: int) -> int:
    if n_players <= 8: return 3
    if n_players <= 16: return 4
    if n_players <= 32: return 5
    if n_players <= 64: return 6
    if n_players <= 128: return 7
    if n_players <= 256: return 8
    if n_players <= 512: return 9
    return 10


@dataclass(frozen=True)
class Standing:
    participant_id: int
    player_name: str
    player_id: Optional[str]
    wins: int = 0
    losses: int = 0
    draws: int = 0
    byes: int = 0
    points: int = 0
    reported_standing: Optional[int] = None
    final_standing: Optional[int] = None

    def to_dict(self):
        row = asdict(self)
        del row['reported_standing']
        return row


def _sort_key(s: Standing):
    return (-s.points, -s.wins, s.losses)


def rank_standings(entries: Iterable[Standing]) -> List[Standing]:
    """Order standings and assign dense 1-based ``final_standing`` values.

    A ``reported_standing`` within ``1..len(entries)`` is kept as is. The
    other entries sort by points (desc), wins (desc), losses (asc); anything
    still tied keeps input order. They fill the free standings from the top,
    and reported values that do not fit take whatever is left at the bottom.
    The result is ordered by ``final_standing``.
    """
    entries = list(entries)
    size = len(entries)
    reported = sorted(
        (e for e in entries if e.reported_standing is not None),
        key=lambda e: e.reported_standing,
    )
    computed = sorted((e for e in entries if e.reported_standing is None), key=_sort_key)

    slots = {}
    leftover = []
    for e in reported:
        if 1 <= e.reported_standing <= size and e.reported_standing not in slots:
            slots[e.reported_standing] = e
        else:
            leftover.append(e)
    free = (n for n in range(1, size + 1) if n not in slots)
    for e, rank in zip(computed + leftover, free):
        slots[rank] = e
    return [replace(slots[rank], final_standing=rank) for rank in sorted(slots)]


def _roster(t, session):
    return (
        session.query(Participant)
        .filter(Participant.tournament_id == t.id, Participant.status.in_(RANKED_STATUSES))
        .order_by(Participant.registration_date, Participant.id)
        .all()
    )


def compute_standings(t, session) -> List[Standing]:
    """Recompute and persist the full standings of tournament ``t``.

    The stored snapshot is replaced as a whole; it is never patched.
    """
    participants = _roster(t, session)
    matches = session.query(MatchResult).filter_by(tournament_id=t.id).all()
    tallies = aggregate_results(matches, [p.id for p in participants])

    entries = []
    for p in participants:
        tally = tallies[p.id]
        entries.append(Standing(
            participant_id=p.id,
            player_name=p.player_name,
            player_id=p.player_id,
            wins=tally.wins,
            losses=tally.losses,
            draws=tally.draws,
            byes=tally.byes,
            points=tally.points,
            reported_standing=p.reported_standing,
        ))
    ranked = rank_standings(entries)

    session.query(AggregatedResult).filter_by(tournament_id=t.id).delete()
    for s in ranked:
        session.add(AggregatedResult(
            tournament_id=t.id,
            participant_id=s.participant_id,
            wins=s.wins,
            losses=s.losses,
            draws=s.draws,
            byes=s.byes,
            points=s.points,
            final_standing=s.final_standing,
        ))
    session.commit()
    return ranked


def standings_snapshot(t, session) -> List[dict]:
    rows = (
        session.query(AggregatedResult, Participant)
        .join(Participant, AggregatedResult.participant_id == Participant.id)
        .filter(AggregatedResult.tournament_id == t.id)
        .order_by(AggregatedResult.final_standing)
        .all()
    )
    return [{
        'participant_id': p.id,
        'player_name': p.player_name,
        'player_id': p.player_id,
        'wins': r.wins,
        'losses': r.losses,
        'draws': r.draws,
        'byes': r.byes,
        'points': r.points,
        'final_standing': r.final_standing,
    } for r, p in rows]


def set_reported_standings(session, t, standings):
    """Store externally reported final standings, ``{participant_id: standing}``.

    Values must be unique and fit within the ranked roster.
    """
    ranked = {
        p.id: p for p in session.query(Participant).filter(
            Participant.tournament_id == t.id, Participant.status.in_(RANKED_STATUSES)
        )
    }
    missing = set(standings) - set(ranked)
    if missing:
        raise ValidationError('Unknown or unranked participants for this tournament',
                              field='standings', details={'missing': sorted(missing)})
    if any(isinstance(v, bool) or not isinstance(v, int) or not 1 <= v <= len(ranked)
           for v in standings.values() if v is not None):
        raise ValidationError(
            f'Reported standings must be between 1 and {len(ranked)}',
            field='standings', details={'max_standing': len(ranked)},
        )
    merged = {pid: p.reported_standing for pid, p in ranked.items()}
    merged.update(standings)
    values = [v for v in merged.values() if v is not None]
    if len(values) != len(set(values)):
        raise ValidationError('Reported standings must be unique', field='standings')
    for pid, value in standings.items():
        ranked[pid].reported_standing = value
    session.commit()
