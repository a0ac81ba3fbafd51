from datetime import datetime

from sqlalchemy import update

from .errors import ConcurrencyConflict, InvalidTransition, ValidationError
from .models import Tournament, TOURNAMENT_STATUSES
from .validation import MESSAGES, validate_tournament_form

TOURNAMENT_TRANSITIONS = {
    'upcoming': frozenset({'ongoing', 'cancelled'}),
    'ongoing': frozenset({'completed', 'cancelled'}),
    'completed': frozenset(),
    'cancelled': frozenset(),
}


def _parse_datetime(value):
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def create_tournament(session, data, organizer_id=None, today=None):
    errors = validate_tournament_form(data, today=today)
    if errors:
        field, message = next(iter(errors.items()))
        raise ValidationError(message, field=field, details=errors)
    official_id = data['official_id'].strip()
    if session.query(Tournament).filter_by(official_id=official_id).first():
        raise ValidationError(MESSAGES['tournament_id_exists'], field='official_id')
    max_players = data.get('max_players')
    t = Tournament(
        official_id=official_id,
        name=data['name'].strip(),
        tournament_type=data['tournament_type'],
        city=data['city'].strip(),
        state=(data.get('state') or '').strip() or None,
        country=data['country'].strip(),
        start_date=_parse_datetime(data.get('start_date')),
        end_date=_parse_datetime(data.get('end_date')),
        max_players=int(max_players) if max_players not in (None, '') else None,
        registration_open=bool(data.get('registration_open', True)),
        description=(data.get('description') or '').strip() or None,
        organizer_id=organizer_id,
        status='upcoming',
        current_players=0,
    )
    session.add(t)
    session.commit()
    return t


def set_tournament_status(session, t, new_status):
    current = t.status
    if new_status not in TOURNAMENT_STATUSES or new_status not in TOURNAMENT_TRANSITIONS.get(current, ()):
        raise InvalidTransition(current, new_status)
    values = {'status': new_status, 'updated_at': datetime.utcnow()}
    if new_status != 'upcoming':
        # registration window ends once the event starts or is called off
        values['registration_open'] = False
    result = session.execute(
        update(Tournament)
        .where(Tournament.id == t.id, Tournament.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        raise ConcurrencyConflict('Tournament status changed concurrently', {'tournament_id': t.id})
    session.commit()
    session.refresh(t)
    return t


def set_registration_open(session, t, is_open):
    if is_open and t.status != 'upcoming':
        raise InvalidTransition(t.status, 'registration_open',
                                'Registration can only be opened for upcoming tournaments')
    t.registration_open = bool(is_open)
    session.commit()
    return t
