"""Registration admission for tournaments.

Admission is an ordered decision: registration must be open, the tournament
must still be upcoming, and a bounded tournament must have a free slot. The
first failing check decides the denial reason.

``current_players`` is never written from a value read into Python. Every
change is a conditional ``UPDATE`` so the store itself refuses to go past
``max_players`` when several registrations race for the last slot.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Type

from sqlalchemy import or_, update

from .errors import (
    AdmissionDenied,
    ConcurrencyConflict,
    InvalidTransition,
    RegistrationClosed,
    TournamentFull,
    TournamentNotUpcoming,
)
from .models import Participant, Tournament

REGISTRATION_CLOSED = RegistrationClosed.reason
TOURNAMENT_NOT_UPCOMING = TournamentNotUpcoming.reason
TOURNAMENT_FULL = TournamentFull.reason

_DENIALS = {
    REGISTRATION_CLOSED: RegistrationClosed,
    TOURNAMENT_NOT_UPCOMING: TournamentNotUpcoming,
    TOURNAMENT_FULL: TournamentFull,
}


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self):
        return self.allowed

    @property
    def error(self) -> Optional[Type[AdmissionDenied]]:
        return _DENIALS.get(self.reason)


def check_admission(t: Tournament) -> AdmissionDecision:
    if not t.registration_open:
        return AdmissionDecision(False, REGISTRATION_CLOSED)
    if t.status != 'upcoming':
        return AdmissionDecision(False, TOURNAMENT_NOT_UPCOMING)
    # no limit means unbounded
    if t.max_players is not None and (t.current_players or 0) >= t.max_players:
        return AdmissionDecision(False, TOURNAMENT_FULL)
    return AdmissionDecision(True)


def can_register(t: Tournament) -> bool:
    return check_admission(t).allowed


def ensure_admissible(t: Tournament) -> None:
    decision = check_admission(t)
    if not decision:
        raise decision.error(details={
            'tournament_id': t.id,
            'status': t.status,
            'current_players': t.current_players,
            'max_players': t.max_players,
        })


def _has_free_slot():
    return or_(
        Tournament.max_players.is_(None),
        Tournament.current_players < Tournament.max_players,
    )


def _increment(session, t: Tournament, *conditions) -> bool:
    stmt = (
        update(Tournament)
        .where(Tournament.id == t.id, *conditions)
        .values(current_players=Tournament.current_players + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount == 1


def admit_participant(session, t: Tournament, participant: Participant) -> Participant:
    """Claim a slot and insert ``participant`` as one transaction.

    Raises the gate's denial when the tournament is closed, started or full.
    Raises ``ConcurrencyConflict`` when the pre-check passed but the slot was
    taken before the conditional update ran.
    """
    ensure_admissible(t)
    claimed = _increment(
        session, t,
        Tournament.registration_open.is_(True),
        Tournament.status == 'upcoming',
        _has_free_slot(),
    )
    if not claimed:
        session.rollback()
        session.refresh(t)
        decision = check_admission(t)
        if not decision and decision.reason != TOURNAMENT_FULL:
            raise decision.error(details={'tournament_id': t.id, 'status': t.status})
        raise ConcurrencyConflict(
            'Tournament filled while the registration was being processed',
            {'tournament_id': t.id, 'max_players': t.max_players},
        )
    participant.tournament_id = t.id
    participant.status = 'registered'
    participant.holds_slot = True
    session.add(participant)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(t)
    return participant


def claim_slot(session, t: Tournament) -> None:
    """Take a slot for a participant leaving the waitlist.

    Does not commit; the caller commits together with the status change.
    """
    if not _increment(session, t, _has_free_slot()):
        session.rollback()
        session.refresh(t)
        raise TournamentFull(
            'Tournament is at capacity. Cannot move participant from waitlist.',
            {'tournament_id': t.id, 'max_players': t.max_players},
        )


def _decrement(session, t: Tournament) -> None:
    session.execute(
        update(Tournament)
        .where(Tournament.id == t.id, Tournament.current_players > 0)
        .values(current_players=Tournament.current_players - 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )


def give_back_slot(session, participant: Participant) -> bool:
    """Return ``participant``'s slot without committing.

    Guarded on ``holds_slot`` so a slot is never returned twice.
    """
    result = session.execute(
        update(Participant)
        .where(Participant.id == participant.id, Participant.holds_slot.is_(True))
        .values(holds_slot=False, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    _decrement(session, participant.tournament)
    return True


def release_slot(session, participant: Participant) -> bool:
    """Decrement ``current_players`` for a dropped participant.

    Dropping does not free a slot on its own; organizers call this once the
    place should be reused. Returns ``False`` if the slot was already free.
    """
    if participant.status != 'dropped':
        raise InvalidTransition(
            participant.status, 'release_slot',
            'Only dropped participants can release their slot',
        )
    released = give_back_slot(session, participant)
    session.commit()
    session.refresh(participant)
    session.refresh(participant.tournament)
    return released


def capacity_info(t: Tournament) -> dict:
    current = t.current_players or 0
    has_limit = t.max_players is not None
    if has_limit:
        spots_left = max(t.max_players - current, 0)
        # a zero limit is always full
        percentage = current / t.max_players * 100 if t.max_players else 100.0
        text = f"{current}/{t.max_players} players"
    else:
        spots_left = None
        percentage = 0.0
        text = f"{current} players"
    return {
        'current': current,
        'max': t.max_players,
        'has_limit': has_limit,
        'is_full': has_limit and current >= t.max_players,
        'spots_left': spots_left,
        'capacity_percentage': percentage,
        'capacity_text': text,
    }
