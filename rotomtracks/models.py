from .app import db
from datetime import datetime
import enum
from sqlalchemy import CheckConstraint, UniqueConstraint

# Tournament categories with their recommended player bounds and round counts
TOURNAMENT_TYPE_CONFIG = {
    'TCG Prerelease': {'min_players': 4, 'max_players': 64, 'default_rounds': 4},
    'TCG League Challenge': {'min_players': 4, 'max_players': 32, 'default_rounds': 4},
    'TCG League Cup': {'min_players': 8, 'max_players': 128, 'default_rounds': 6},
    'VGC Premier Event': {'min_players': 8, 'max_players': 256, 'default_rounds': 7},
    'GO Premier Event': {'min_players': 8, 'max_players': 128, 'default_rounds': 6},
}
TOURNAMENT_TYPES = tuple(TOURNAMENT_TYPE_CONFIG)

TOURNAMENT_STATUSES = ('upcoming', 'ongoing', 'completed', 'cancelled')
PARTICIPANT_STATUSES = ('registered', 'checked_in', 'waitlist', 'dropped')
REGISTRATION_SOURCES = ('online', 'manual', 'import')
ORGANIZER_REQUEST_STATUSES = ('pending', 'under_review', 'approved', 'rejected')
USER_ROLES = ('player', 'organizer', 'admin')


def is_valid_player_count(count, tournament_type):
    """Check a player count against the bounds of a tournament category."""
    cfg = TOURNAMENT_TYPE_CONFIG.get(tournament_type)
    if cfg is None:
        return False
    return cfg['min_players'] <= count <= cfg['max_players']


class MatchOutcome(str, enum.Enum):
    PLAYER1_WINS = 'player1_wins'
    PLAYER2_WINS = 'player2_wins'
    DRAW = 'draw'
    BYE = 'bye'
    DOUBLE_LOSS = 'double_loss'


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='player')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Tournament(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    official_id = db.Column(db.String(12), unique=True, nullable=True)  # YY-MM-NNNNNN
    name = db.Column(db.String(255), nullable=False)
    tournament_type = db.Column(db.String(50), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100), nullable=True)
    country = db.Column(db.String(100), nullable=False)
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='upcoming')
    max_players = db.Column(db.Integer, nullable=True)  # None means unbounded
    # Only changed through conditional updates in capacity.py
    current_players = db.Column(db.Integer, nullable=False, default=0)
    registration_open = db.Column(db.Boolean, nullable=False, default=True)
    description = db.Column(db.Text, nullable=True)
    organizer_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organizer = db.relationship('User', foreign_keys=[organizer_id])

    __table_args__ = (
        CheckConstraint('current_players >= 0', name='ck_current_players_non_negative'),
        CheckConstraint(
            'max_players IS NULL OR current_players <= max_players',
            name='ck_current_players_within_max',
        ),
    )

    @property
    def location(self):
        parts = [self.city, self.state, self.country]
        return ', '.join(p for p in parts if p)

    def to_dict(self):
        return {
            'id': self.id,
            'official_id': self.official_id,
            'name': self.name,
            'tournament_type': self.tournament_type,
            'city': self.city,
            'state': self.state,
            'country': self.country,
            'location': self.location,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'status': self.status,
            'max_players': self.max_players,
            'current_players': self.current_players,
            'registration_open': self.registration_open,
            'description': self.description,
            'organizer_id': self.organizer_id,
        }


class Participant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    player_name = db.Column(db.String(255), nullable=False)
    player_id = db.Column(db.String(7), nullable=True)
    birth_date = db.Column(db.Date, nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='registered')
    # True while this entry is counted in tournament.current_players
    holds_slot = db.Column(db.Boolean, nullable=False, default=False)
    registration_date = db.Column(db.DateTime, default=datetime.utcnow)
    registration_source = db.Column(db.String(20), nullable=False, default='online')
    # Final standing supplied by an authoritative external report
    reported_standing = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tournament = db.relationship(
        'Tournament',
        backref=db.backref('participants', cascade='all, delete-orphan')
    )
    user = db.relationship('User', foreign_keys=[user_id])

    __table_args__ = (UniqueConstraint('tournament_id', 'user_id', name='_tournament_user_uc'),)

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'user_id': self.user_id,
            'player_name': self.player_name,
            'player_id': self.player_id,
            'birth_date': self.birth_date.isoformat() if self.birth_date else None,
            'status': self.status,
            'holds_slot': self.holds_slot,
            'registration_date': self.registration_date.isoformat() if self.registration_date else None,
            'registration_source': self.registration_source,
            'reported_standing': self.reported_standing,
        }


class MatchResult(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    round_number = db.Column(db.Integer, nullable=False)
    table_number = db.Column(db.Integer, nullable=True)
    player1_id = db.Column(db.Integer, db.ForeignKey('participant.id'), nullable=False)
    player2_id = db.Column(db.Integer, db.ForeignKey('participant.id'), nullable=True)  # None means BYE
    outcome = db.Column(
        db.Enum(MatchOutcome, values_callable=lambda e: [m.value for m in e],
                native_enum=False, validate_strings=True),
        nullable=False,
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tournament = db.relationship(
        'Tournament',
        backref=db.backref('matches', cascade='all, delete-orphan')
    )
    player1 = db.relationship('Participant', foreign_keys=[player1_id])
    player2 = db.relationship('Participant', foreign_keys=[player2_id])

    def to_dict(self):
        return {
            'id': self.id,
            'round_number': self.round_number,
            'table_number': self.table_number,
            'player1_id': self.player1_id,
            'player2_id': self.player2_id,
            'outcome': self.outcome.value,
        }


class AggregatedResult(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournament.id'), nullable=False)
    participant_id = db.Column(db.Integer, db.ForeignKey('participant.id'), nullable=False, unique=True)
    wins = db.Column(db.Integer, nullable=False, default=0)
    losses = db.Column(db.Integer, nullable=False, default=0)
    draws = db.Column(db.Integer, nullable=False, default=0)
    byes = db.Column(db.Integer, nullable=False, default=0)
    points = db.Column(db.Integer, nullable=False, default=0)
    final_standing = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tournament = db.relationship(
        'Tournament',
        backref=db.backref('results', cascade='all, delete-orphan')
    )
    participant = db.relationship('Participant')

    __table_args__ = (
        UniqueConstraint('tournament_id', 'final_standing', name='_tournament_standing_uc'),
    )


class OrganizerRequest(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    organization_name = db.Column(db.String(255), nullable=False)
    business_email = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    league_url = db.Column(db.String(500), nullable=True)
    experience_description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='pending')
    admin_notes = db.Column(db.Text, nullable=True)
    requested_at = db.Column(db.DateTime, default=datetime.utcnow)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', foreign_keys=[user_id])
    reviewed_by = db.relationship('User', foreign_keys=[reviewed_by_id])

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'organization_name': self.organization_name,
            'business_email': self.business_email,
            'phone_number': self.phone_number,
            'address': self.address,
            'league_url': self.league_url,
            'experience_description': self.experience_description,
            'status': self.status,
            'admin_notes': self.admin_notes,
            'requested_at': self.requested_at.isoformat() if self.requested_at else None,
            'reviewed_at': self.reviewed_at.isoformat() if self.reviewed_at else None,
            'reviewed_by_id': self.reviewed_by_id,
        }


class SiteLog(db.Model):
    __bind_key__ = 'logs'
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(200), nullable=False)
    result = db.Column(db.String(200), nullable=False)
    error = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)
    user_id = db.Column(db.Integer, nullable=True)
    # no foreign keys across databases


class TournamentLog(db.Model):
    __bind_key__ = 'logs'
    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(200), nullable=False)
    result = db.Column(db.String(200), nullable=False)
    error = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)
    user_id = db.Column(db.Integer, nullable=True)
