"""Organizer role upgrade requests reviewed by an admin.

    pending --> under_review --> approved | rejected
    pending --> approved | rejected

``approved`` and ``rejected`` are final. Admin notes can be edited in any
status and never move ``reviewed_at``.
"""

from datetime import datetime

from sqlalchemy import update

from .errors import ConcurrencyConflict, DuplicateOrganizerRequest, InvalidTransition, ValidationError
from .models import OrganizerRequest, User
from .validation import LIMITS

ORGANIZER_REQUEST_TRANSITIONS = {
    'pending': frozenset({'under_review', 'approved', 'rejected'}),
    'under_review': frozenset({'approved', 'rejected'}),
    'approved': frozenset(),
    'rejected': frozenset(),
}
REVIEWED_STATUSES = frozenset({'approved', 'rejected'})
OPEN_STATUSES = ('pending', 'under_review')


def _check_length(key, value, label, required=False):
    lo, hi = LIMITS[key]
    value = (value or '').strip()
    if not value and not required:
        return None
    if len(value) < lo:
        raise ValidationError(f'{label} must be at least {lo} characters long', field=key)
    if len(value) > hi:
        raise ValidationError(f'{label} must be at most {hi} characters long', field=key)
    return value


def submit_organizer_request(session, user, organization_name, business_email=None,
                             phone_number=None, address=None, league_url=None,
                             experience_description=None):
    name = _check_length('organization_name', organization_name, 'Organization name', required=True)
    experience = _check_length('experience_description', experience_description,
                               'Experience description')
    address = _check_length('address', address, 'Address')

    existing = (
        session.query(OrganizerRequest)
        .filter(OrganizerRequest.user_id == user.id, OrganizerRequest.status.in_(OPEN_STATUSES))
        .first()
    )
    if existing:
        raise DuplicateOrganizerRequest(
            'You already have an open organizer request',
            field='user_id',
            details={'existing_status': existing.status, 'request_id': existing.id},
        )
    if user.role in ('organizer', 'admin'):
        raise ValidationError('User already has organizer permissions', field='user_id')

    req = OrganizerRequest(
        user_id=user.id,
        organization_name=name,
        business_email=(business_email or '').strip() or None,
        phone_number=(phone_number or '').strip() or None,
        address=address,
        league_url=(league_url or '').strip() or None,
        experience_description=experience,
        status='pending',
        requested_at=datetime.utcnow(),
    )
    session.add(req)
    session.commit()
    return req


def review_organizer_request(session, req, new_status, reviewer_id=None, admin_notes=None, now=None):
    """Move ``req`` to ``new_status``.

    Re-entering the current status is allowed and only updates notes. The
    first move into approved or rejected stamps ``reviewed_at``.
    """
    current = req.status
    if new_status != current and new_status not in ORGANIZER_REQUEST_TRANSITIONS.get(current, ()):
        raise InvalidTransition(current, new_status)
    if admin_notes is not None:
        admin_notes = _validated_notes(admin_notes)

    now = now or datetime.utcnow()
    values = {'status': new_status, 'updated_at': now}
    if admin_notes is not None:
        values['admin_notes'] = admin_notes
    if new_status in REVIEWED_STATUSES and req.reviewed_at is None:
        values['reviewed_at'] = now
        values['reviewed_by_id'] = reviewer_id

    result = session.execute(
        update(OrganizerRequest)
        .where(OrganizerRequest.id == req.id, OrganizerRequest.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        raise ConcurrencyConflict('Organizer request changed concurrently', {'request_id': req.id})

    if new_status == 'approved' and current != 'approved':
        user = session.get(User, req.user_id)
        if user is not None and user.role == 'player':
            user.role = 'organizer'
    session.commit()
    session.refresh(req)
    return req


def update_admin_notes(session, req, admin_notes):
    req.admin_notes = _validated_notes(admin_notes)
    req.updated_at = datetime.utcnow()
    session.commit()
    return req


def _validated_notes(notes):
    hi = LIMITS['admin_notes'][1]
    notes = notes.strip() if notes else ''
    if len(notes) > hi:
        raise ValidationError(
            f'Admin notes cannot exceed {hi} characters',
            field='admin_notes',
            details={'max_length': hi, 'current_length': len(notes)},
        )
    return notes or None


def approve(session, req, reviewer_id=None, admin_notes=None):
    return review_organizer_request(session, req, 'approved', reviewer_id, admin_notes)


def reject(session, req, reviewer_id=None, admin_notes=None):
    return review_organizer_request(session, req, 'rejected', reviewer_id, admin_notes)


def start_review(session, req, reviewer_id=None, admin_notes=None):
    return review_organizer_request(session, req, 'under_review', reviewer_id, admin_notes)
