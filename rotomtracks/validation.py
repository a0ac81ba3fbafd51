"""Identifier and form validation.

Tournament identifiers follow ``YY-MM-NNNNNN`` (two digit year, month 01-12,
six digit zero padded sequence). Player identifiers are canonical decimal
integers between 1 and 9999999.

The ``validate_*`` functions never raise; callers turn a ``False`` (or a
non-empty error dict) into a user facing message.
"""

import re
from datetime import date, datetime
from typing import Dict, Optional, Tuple

from .errors import ValidationError

TOURNAMENT_ID_RE = re.compile(r'^([0-9]{2})-([0-9]{2})-([0-9]{6})$')
PLAYER_ID_RE = re.compile(r'^[0-9]{1,8}$')

PLAYER_ID_MIN = 1
PLAYER_ID_MAX = 9999999
SEQUENCE_MIN = 1
SEQUENCE_MAX = 999999

MESSAGES = {
    'player_id_invalid': 'Player ID must be a number between 1 and 9999999',
    'player_id_required': 'Player ID is required',
    'tournament_id_invalid': 'Tournament ID must follow format YY-MM-NNNNNN (e.g., 25-02-000001)',
    'tournament_id_required': 'Tournament ID is required',
    'tournament_id_exists': 'A tournament with this ID already exists',
}

# Field length limits shared by forms and the workflow modules.
LIMITS = {
    'name': (3, 255),
    'city': (2, 100),
    'country': (2, 100),
    'state': (0, 100),
    'description': (0, 1000),
    'players': (4, 1000),
    'player_name': (2, 255),
    'organization_name': (3, 255),
    'experience_description': (50, 2000),
    'address': (0, 500),
    'admin_notes': (0, 1000),
}


def validate_tournament_id(value) -> bool:
    return parse_tournament_id(value) is not None


def parse_tournament_id(value) -> Optional[Tuple[int, int, int]]:
    """Return ``(year, month, sequence)`` for a valid id, else ``None``."""
    if not isinstance(value, str):
        return None
    m = TOURNAMENT_ID_RE.fullmatch(value)
    if not m:
        return None
    year, month, sequence = (int(part) for part in m.groups())
    if not 1 <= month <= 12:
        return None
    if not SEQUENCE_MIN <= sequence <= SEQUENCE_MAX:
        return None
    return year, month, sequence


def generate_tournament_id(when, sequence: int) -> str:
    """Build a tournament id from a date and a per-month sequence number.

    The sequence comes from a monotonic per-month counter owned by the
    caller; no uniqueness check happens here.
    """
    if isinstance(sequence, bool) or not isinstance(sequence, int):
        raise ValidationError('Sequence must be an integer', field='sequence')
    if not SEQUENCE_MIN <= sequence <= SEQUENCE_MAX:
        raise ValidationError(
            f'Sequence must be between {SEQUENCE_MIN} and {SEQUENCE_MAX}',
            field='sequence',
        )
    return f"{when.year % 100:02d}-{when.month:02d}-{sequence:06d}"


def validate_player_id(value) -> bool:
    if not isinstance(value, str) or not PLAYER_ID_RE.fullmatch(value):
        return False
    num = int(value)
    if num < PLAYER_ID_MIN or num > PLAYER_ID_MAX:
        return False
    # no superfluous leading zeros
    return str(num) == value


def format_player_id(value: str) -> str:
    """Dotted display form: ``1234567`` -> ``12.34.567``."""
    if not validate_player_id(value):
        return value
    if len(value) <= 2:
        return value
    if len(value) <= 4:
        return f"{value[:2]}.{value[2:]}"
    return f"{value[:2]}.{value[2:4]}.{value[4:]}"


def _text(data, key):
    value = data.get(key)
    if value is None:
        return ''
    return str(value).strip()


def _as_date(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        return None


def validate_tournament_form(data, today: Optional[date] = None) -> Dict[str, str]:
    """Validate tournament creation data, returning ``{field: message}``."""
    from .models import TOURNAMENT_TYPES  # lazy import to avoid circular reference

    errors = {}
    today = today or date.today()

    name = _text(data, 'name')
    lo, hi = LIMITS['name']
    if len(name) < lo:
        errors['name'] = f'Tournament name must be at least {lo} characters long'
    elif len(name) > hi:
        errors['name'] = f'Tournament name must be at most {hi} characters long'

    ttype = _text(data, 'tournament_type')
    if not ttype:
        errors['tournament_type'] = 'Tournament type is required'
    elif ttype not in TOURNAMENT_TYPES:
        errors['tournament_type'] = f'Unknown tournament type: {ttype}'

    official_id = _text(data, 'official_id')
    if not official_id:
        errors['official_id'] = MESSAGES['tournament_id_required']
    elif not validate_tournament_id(official_id):
        errors['official_id'] = MESSAGES['tournament_id_invalid']

    for key, label in (('city', 'City'), ('country', 'Country')):
        lo, hi = LIMITS[key]
        value = _text(data, key)
        if len(value) < lo:
            errors[key] = f'{label} must be at least {lo} characters long'
        elif len(value) > hi:
            errors[key] = f'{label} must be at most {hi} characters long'

    if len(_text(data, 'state')) > LIMITS['state'][1]:
        errors['state'] = f"State must be at most {LIMITS['state'][1]} characters long"
    if len(_text(data, 'description')) > LIMITS['description'][1]:
        errors['description'] = f"Description must be at most {LIMITS['description'][1]} characters long"

    start = _as_date(data.get('start_date'))
    if data.get('start_date') in (None, ''):
        errors['start_date'] = 'Start date is required'
    elif start is None:
        errors['start_date'] = 'Start date is not a valid date'
    elif start < today:
        errors['start_date'] = 'Start date cannot be in the past'

    if data.get('end_date') not in (None, ''):
        end = _as_date(data.get('end_date'))
        if end is None:
            errors['end_date'] = 'End date is not a valid date'
        elif start is not None and end < start:
            errors['end_date'] = 'End date cannot be before start date'

    max_players = data.get('max_players')
    if max_players not in (None, ''):
        lo, hi = LIMITS['players']
        try:
            max_players = int(max_players)
        except (TypeError, ValueError):
            max_players = None
        if max_players is None or not lo <= max_players <= hi:
            errors['max_players'] = f'Maximum players must be between {lo} and {hi}'

    return errors


def validate_registration_form(data) -> Dict[str, str]:
    errors = {}
    lo, hi = LIMITS['player_name']
    name = _text(data, 'player_name')
    if len(name) < lo:
        errors['player_name'] = f'Player name must be at least {lo} characters long'
    elif len(name) > hi:
        errors['player_name'] = f'Player name must be at most {hi} characters long'

    player_id = data.get('player_id')
    if player_id not in (None, '') and not validate_player_id(str(player_id)):
        errors['player_id'] = MESSAGES['player_id_invalid']
    return errors
