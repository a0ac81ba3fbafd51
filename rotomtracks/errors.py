"""Exceptions raised by the tournament engine."""


class RotomTracksException(Exception):
    """Base exception for all RotomTracks errors.

    ``code`` is the machine readable error kind returned by the HTTP layer.
    """

    code = 'error'

    def __init__(self, message=None, details=None):
        super().__init__(message or self.__doc__.strip().splitlines()[0])
        self.details = details or {}

    @property
    def message(self):
        return str(self)


# ---------- Validation ----------

class ValidationError(RotomTracksException):
    """Malformed identifier or out-of-range value."""

    code = 'VALIDATION_ERROR'

    def __init__(self, message=None, field=None, details=None):
        super().__init__(message, details)
        self.field = field


class DuplicateRegistration(ValidationError):
    """Player is already registered in this tournament."""

    code = 'DUPLICATE_REGISTRATION'


class DuplicateOrganizerRequest(ValidationError):
    """User already has an open organizer request."""

    code = 'DUPLICATE_ORGANIZER_REQUEST'


# ---------- Admission ----------

class AdmissionDenied(RotomTracksException):
    """Registration was denied."""

    reason = None


class RegistrationClosed(AdmissionDenied):
    """Registration is closed for this tournament."""

    code = 'REGISTRATION_CLOSED'
    reason = 'registration_closed'


class TournamentNotUpcoming(AdmissionDenied):
    """Registration is only available for upcoming tournaments."""

    code = 'TOURNAMENT_NOT_UPCOMING'
    reason = 'tournament_not_upcoming'


class TournamentFull(AdmissionDenied):
    """Tournament is at capacity."""

    code = 'TOURNAMENT_FULL'
    reason = 'tournament_full'


# ---------- State machines ----------

class InvalidTransition(RotomTracksException):
    """Requested status change is not permitted from the current status."""

    code = 'INVALID_TRANSITION'

    def __init__(self, current, requested, message=None):
        super().__init__(
            message or f"Cannot change status from '{current}' to '{requested}'",
            {'current_status': current, 'requested_status': requested},
        )
        self.current = current
        self.requested = requested


class ReferentialConflict(RotomTracksException):
    """Cannot remove, has recorded results."""

    code = 'REFERENTIAL_CONFLICT'


class ConcurrencyConflict(RotomTracksException):
    """The record changed while the update was being applied."""

    code = 'CONCURRENCY_CONFLICT'
