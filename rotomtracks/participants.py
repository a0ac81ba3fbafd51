"""Participant registration and status transitions.

    registered --> checked_in
    waitlist   --> registered      (claims a slot)
    registered | checked_in | waitlist --> dropped

``dropped`` is terminal. The row stays so historical standings keep it.
"""

from datetime import datetime

from sqlalchemy import func, or_, update

from .capacity import TOURNAMENT_FULL, admit_participant, check_admission, claim_slot, give_back_slot
from .errors import (
    ConcurrencyConflict,
    DuplicateRegistration,
    InvalidTransition,
    ReferentialConflict,
    ValidationError,
)
from .models import AggregatedResult, MatchResult, Participant, PARTICIPANT_STATUSES, REGISTRATION_SOURCES
from .validation import validate_registration_form

PARTICIPANT_TRANSITIONS = {
    'registered': frozenset({'checked_in', 'dropped'}),
    'checked_in': frozenset({'dropped'}),
    'waitlist': frozenset({'registered', 'dropped'}),
    'dropped': frozenset(),
}


def can_transition(current, requested):
    return requested in PARTICIPANT_TRANSITIONS.get(current, frozenset())


def register_participant(session, t, player_name, player_id=None, user_id=None,
                         birth_date=None, email=None, phone=None, source='online',
                         allow_waitlist=False):
    """Register a player, returning the new :class:`Participant`.

    A full tournament raises ``TournamentFull`` unless ``allow_waitlist`` is
    set, in which case the player joins the waitlist. Losing the race for the
    last slot always falls back to a waitlist entry.
    """
    errors = validate_registration_form({'player_name': player_name, 'player_id': player_id})
    if errors:
        field, message = next(iter(errors.items()))
        raise ValidationError(message, field=field, details=errors)
    if source not in REGISTRATION_SOURCES:
        raise ValidationError(f'Unknown registration source: {source}', field='source')
    player_id = str(player_id) if player_id not in (None, '') else None

    duplicate = session.query(Participant).filter_by(tournament_id=t.id)
    clauses = []
    if user_id is not None:
        clauses.append(Participant.user_id == user_id)
    if player_id is not None:
        clauses.append(Participant.player_id == player_id)
    if clauses and duplicate.filter(or_(*clauses)).first():
        raise DuplicateRegistration(
            'Already registered in this tournament',
            field='user_id' if user_id is not None else 'player_id',
            details={'user_id': user_id, 'player_id': player_id},
        )

    def build():
        return Participant(
            tournament_id=t.id,
            user_id=user_id,
            player_name=player_name.strip(),
            player_id=player_id,
            birth_date=birth_date,
            email=email,
            phone=phone,
            registration_source=source,
            registration_date=datetime.utcnow(),
        )

    decision = check_admission(t)
    if not decision and decision.reason == TOURNAMENT_FULL and allow_waitlist:
        return _add_to_waitlist(session, build())
    try:
        return admit_participant(session, t, build())
    except ConcurrencyConflict:
        # lost the last slot to a concurrent registration
        return _add_to_waitlist(session, build())


def _add_to_waitlist(session, participant):
    participant.status = 'waitlist'
    participant.holds_slot = False
    session.add(participant)
    session.commit()
    return participant


def transition_participant(session, participant, new_status):
    """Move ``participant`` to ``new_status`` or raise ``InvalidTransition``."""
    current = participant.status
    if new_status not in PARTICIPANT_STATUSES or not can_transition(current, new_status):
        raise InvalidTransition(current, new_status)

    values = {'status': new_status, 'updated_at': datetime.utcnow()}
    if current == 'waitlist' and new_status == 'registered':
        claim_slot(session, participant.tournament)
        values['holds_slot'] = True

    result = session.execute(
        update(Participant)
        .where(Participant.id == participant.id, Participant.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        session.refresh(participant)
        raise ConcurrencyConflict(
            'Participant status changed concurrently',
            {'participant_id': participant.id, 'current_status': participant.status},
        )
    session.commit()
    session.refresh(participant)
    return participant


def check_in(session, participant):
    return transition_participant(session, participant, 'checked_in')


def promote_from_waitlist(session, participant):
    return transition_participant(session, participant, 'registered')


def drop_participant(session, participant):
    return transition_participant(session, participant, 'dropped')


def has_recorded_results(session, participant):
    q = session.query(MatchResult).filter(
        (MatchResult.player1_id == participant.id) | (MatchResult.player2_id == participant.id)
    )
    return session.query(q.exists()).scalar()


def remove_participant(session, participant):
    """Hard delete a participant that never played a recorded match."""
    if has_recorded_results(session, participant):
        raise ReferentialConflict(
            'Cannot remove, has recorded results',
            {'participant_id': participant.id},
        )
    give_back_slot(session, participant)
    session.query(AggregatedResult).filter_by(participant_id=participant.id).delete()
    session.delete(participant)
    session.commit()


def registration_stats(session, t):
    counts = dict(
        session.query(Participant.status, func.count(Participant.id))
        .filter(Participant.tournament_id == t.id)
        .group_by(Participant.status)
        .all()
    )
    stats = {status: counts.get(status, 0) for status in PARTICIPANT_STATUSES}
    stats['total'] = sum(counts.values())
    return stats
