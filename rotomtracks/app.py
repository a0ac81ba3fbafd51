from flask import (
    Flask,
    abort,
    jsonify,
    request,
)
from flask_sqlalchemy import SQLAlchemy
from datetime import date, datetime
import os
import click

from sqlalchemy import inspect, text

from .errors import (
    AdmissionDenied,
    ConcurrencyConflict,
    DuplicateOrganizerRequest,
    DuplicateRegistration,
    InvalidTransition,
    ReferentialConflict,
    RotomTracksException,
    TournamentFull,
    ValidationError,
)


db = SQLAlchemy()

# HTTP status per error kind; the most specific class wins
ERROR_STATUS = [
    (DuplicateRegistration, 409),
    (DuplicateOrganizerRequest, 409),
    (ValidationError, 400),
    (TournamentFull, 409),
    (AdmissionDenied, 400),
    (InvalidTransition, 409),
    (ReferentialConflict, 409),
    (ConcurrencyConflict, 409),
]


def error_status(exc):
    for cls, status in ERROR_STATUS:
        if isinstance(exc, cls):
            return status
    return 500


def create_app():
    app = Flask(__name__)
    db_file = os.environ.get('ROTOM_DB_PATH', 'rotomtracks.db')
    log_db_file = os.environ.get('ROTOM_LOG_DB_PATH', db_file.replace('.db', '_logs.db'))
    app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{db_file}'
    app.config['SQLALCHEMY_BINDS'] = {
        'logs': f'sqlite:///{log_db_file}',
    }
    # concurrent writers wait on the SQLite lock instead of failing
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {'connect_args': {'timeout': 30}}
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.environ.get('FLASK_SECRET', 'dev-secret-change-me')
    app.json.sort_keys = False

    db.init_app(app)

    # Older databases predate the slot bookkeeping and reported standings
    # columns. Add whatever is missing so existing installations keep working
    # without a manual migration.
    with app.app_context():
        inspector = inspect(db.engine)
        tables = inspector.get_table_names()
        if 'participant' in tables:
            columns = [c['name'] for c in inspector.get_columns('participant')]
            if 'holds_slot' not in columns:
                db.session.execute(text('ALTER TABLE participant ADD COLUMN holds_slot BOOLEAN DEFAULT 0'))
                # everyone admitted before the column existed was counted
                db.session.execute(text(
                    "UPDATE participant SET holds_slot = CASE WHEN status IN ('registered', 'checked_in') "
                    "THEN 1 ELSE 0 END"
                ))
                db.session.commit()
            if 'reported_standing' not in columns:
                db.session.execute(text('ALTER TABLE participant ADD COLUMN reported_standing INTEGER'))
                db.session.commit()
            if 'registration_source' not in columns:
                db.session.execute(text("ALTER TABLE participant ADD COLUMN registration_source VARCHAR(20) DEFAULT 'online'"))
                db.session.execute(text("UPDATE participant SET registration_source='online' WHERE registration_source IS NULL"))
                db.session.commit()
        if 'tournament' in tables:
            columns = [c['name'] for c in inspector.get_columns('tournament')]
            if 'registration_open' not in columns:
                db.session.execute(text('ALTER TABLE tournament ADD COLUMN registration_open BOOLEAN DEFAULT 1'))
                db.session.execute(text('UPDATE tournament SET registration_open=1 WHERE registration_open IS NULL'))
                db.session.commit()
            if 'current_players' not in columns:
                db.session.execute(text('ALTER TABLE tournament ADD COLUMN current_players INTEGER DEFAULT 0'))
                if 'participant' in tables:
                    db.session.execute(text(
                        'UPDATE tournament SET current_players = (SELECT COUNT(*) FROM participant '
                        'WHERE participant.tournament_id = tournament.id AND participant.holds_slot = 1)'
                    ))
                else:
                    db.session.execute(text('UPDATE tournament SET current_players=0 WHERE current_players IS NULL'))
                db.session.commit()

    from .models import (
        User,
        Tournament,
        Participant,
        OrganizerRequest,
        SiteLog,
        TournamentLog,
        TOURNAMENT_STATUSES,
    )
    from . import capacity, participants, results, standings, tournaments, organizer_requests
    from .results import MatchRecord

    # ---------- CLI ----------
    @app.cli.command('db-init')
    def db_init():
        db.create_all()
        print("Database initialized.")

    @app.cli.command('recompute-standings')
    @click.argument('tournament_id', type=int)
    def recompute_standings(tournament_id):
        t = db.session.get(Tournament, tournament_id)
        if not t:
            print(f"Tournament {tournament_id} not found")
            return
        ranked = standings.compute_standings(t, db.session)
        for s in ranked:
            print(f"{s.final_standing:>4}  {s.player_name:<30} {s.points:>3} pts  "
                  f"{s.wins}-{s.losses}-{s.draws} ({s.byes} byes)")
        print(f"Standings recomputed for {t.name}: {len(ranked)} players.")

    # ---------- Helpers ----------
    def acting_user_id():
        raw = request.headers.get('X-User-Id')
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            abort(400)

    def log_site(action, result, error=None):
        log = SiteLog(action=action, result=result, error=error, user_id=acting_user_id())
        db.session.add(log)
        db.session.commit()

    def log_tournament(tid, action, result, error=None):
        log = TournamentLog(tournament_id=tid, action=action, result=result, error=error,
                            user_id=acting_user_id())
        db.session.add(log)
        db.session.commit()

    def get_tournament(tid):
        t = db.session.get(Tournament, tid)
        if not t:
            abort(404)
        return t

    def get_participant(tid, pid):
        p = db.session.get(Participant, pid)
        if not p or p.tournament_id != tid:
            abort(404)
        return p

    def get_organizer_request(rid):
        req = db.session.get(OrganizerRequest, rid)
        if not req:
            abort(404)
        return req

    def payload():
        return request.get_json(silent=True) or {}

    def parse_date(value):
        if value in (None, ''):
            return None
        try:
            return date.fromisoformat(str(value))
        except ValueError:
            raise ValidationError('Birth date must be an ISO date', field='birth_date')

    @app.errorhandler(RotomTracksException)
    def handle_domain_error(exc):
        db.session.rollback()
        action = request.endpoint or 'request'
        tid = (request.view_args or {}).get('tid')
        if tid is not None:
            log_tournament(tid, action, 'failure', f'{exc.code}: {exc}')
        log_site(action, 'failure', f'{exc.code}: {exc}')
        body = {'error': exc.code, 'message': str(exc), 'details': exc.details}
        if getattr(exc, 'field', None):
            body['field'] = exc.field
        if isinstance(exc, AdmissionDenied):
            body['reason'] = exc.reason
        return jsonify(body), error_status(exc)

    # ---------- Routes ----------
    @app.route('/api/health')
    def health():
        db.session.execute(text('SELECT 1'))
        return jsonify(status='ok', timestamp=datetime.utcnow().isoformat())

    @app.route('/api/tournaments', methods=['GET'])
    def list_tournaments():
        q = db.session.query(Tournament)
        status = request.args.get('status')
        if status:
            if status not in TOURNAMENT_STATUSES:
                raise ValidationError(f'Unknown tournament status: {status}', field='status')
            q = q.filter(Tournament.status == status)
        ttype = request.args.get('type')
        if ttype:
            q = q.filter(Tournament.tournament_type == ttype)
        for key in ('city', 'country'):
            value = request.args.get(key)
            if value:
                q = q.filter(db.func.lower(getattr(Tournament, key)) == value.lower())
        term = (request.args.get('q') or '').strip().lower()
        rows = q.order_by(Tournament.start_date, Tournament.id).all()
        if term:
            rows = [t for t in rows if term in f"{t.name} {t.city} {t.country}".lower()]
        return jsonify(tournaments=[t.to_dict() for t in rows])

    @app.route('/api/tournaments', methods=['POST'])
    def create_tournament():
        t = tournaments.create_tournament(db.session, payload(), organizer_id=acting_user_id())
        log_tournament(t.id, 'create', 'success')
        log_site('create_tournament', 'success', f'id={t.id}')
        return jsonify(tournament=t.to_dict()), 201

    @app.route('/api/tournaments/<int:tid>')
    def view_tournament(tid):
        t = get_tournament(tid)
        decision = capacity.check_admission(t)
        return jsonify(
            tournament=t.to_dict(),
            capacity=capacity.capacity_info(t),
            can_register=decision.allowed,
            registration_denied_reason=decision.reason,
            recommended_rounds=standings.recommended_rounds(t.current_players or 0),
        )

    @app.route('/api/tournaments/<int:tid>/status', methods=['POST'])
    def update_tournament_status(tid):
        t = get_tournament(tid)
        data = payload()
        if 'status' in data:
            tournaments.set_tournament_status(db.session, t, data['status'])
            log_tournament(tid, 'status', 'success', f'status={t.status}')
        if 'registration_open' in data:
            tournaments.set_registration_open(db.session, t, bool(data['registration_open']))
            log_tournament(tid, 'registration_open', 'success', f'open={t.registration_open}')
        return jsonify(tournament=t.to_dict())

    @app.route('/api/tournaments/<int:tid>/register', methods=['GET'])
    def registration_info(tid):
        t = get_tournament(tid)
        decision = capacity.check_admission(t)
        return jsonify(
            tournament=t.to_dict(),
            registration_stats=participants.registration_stats(db.session, t),
            can_register=decision.allowed,
            reason=decision.reason,
        )

    @app.route('/api/tournaments/<int:tid>/register', methods=['POST'])
    def register(tid):
        t = get_tournament(tid)
        data = payload()
        user_id = acting_user_id()
        player_name = data.get('player_name')
        if not player_name and user_id is not None:
            user = db.session.get(User, user_id)
            player_name = user.name if user else None
        p = participants.register_participant(
            db.session, t,
            player_name=player_name or '',
            player_id=data.get('player_id'),
            user_id=user_id,
            birth_date=parse_date(data.get('birth_date')),
            email=data.get('email'),
            phone=data.get('phone'),
            source=data.get('source', 'online'),
            allow_waitlist=bool(data.get('allow_waitlist')),
        )
        log_tournament(tid, 'register', p.status, f'participant_id={p.id}')
        log_site('register', 'success', f'participant_id={p.id}')
        if p.status == 'waitlist':
            message = 'Tournament is full. You have been added to the waitlist.'
        else:
            message = 'Registration successful.'
        return jsonify(participant=p.to_dict(), status=p.status, message=message), 201

    @app.route('/api/tournaments/<int:tid>/participants')
    def list_participants(tid):
        t = get_tournament(tid)
        q = db.session.query(Participant).filter_by(tournament_id=t.id)
        status = request.args.get('status')
        if status:
            q = q.filter_by(status=status)
        rows = q.order_by(Participant.registration_date, Participant.id).all()
        return jsonify(participants=[p.to_dict() for p in rows])

    @app.route('/api/tournaments/<int:tid>/participants/<int:pid>', methods=['PATCH'])
    def update_participant(tid, pid):
        get_tournament(tid)
        p = get_participant(tid, pid)
        data = payload()
        if 'status' not in data:
            raise ValidationError('Status is required', field='status')
        old = p.status
        participants.transition_participant(db.session, p, data['status'])
        log_tournament(tid, 'participant_status', 'success', f'participant_id={pid} {old}->{p.status}')
        return jsonify(participant=p.to_dict())

    @app.route('/api/tournaments/<int:tid>/participants/<int:pid>/release-slot', methods=['POST'])
    def release_participant_slot(tid, pid):
        t = get_tournament(tid)
        p = get_participant(tid, pid)
        released = capacity.release_slot(db.session, p)
        log_tournament(tid, 'release_slot', 'success' if released else 'noop', f'participant_id={pid}')
        return jsonify(released=released, capacity=capacity.capacity_info(t))

    @app.route('/api/tournaments/<int:tid>/participants/<int:pid>', methods=['DELETE'])
    def delete_participant(tid, pid):
        get_tournament(tid)
        p = get_participant(tid, pid)
        participants.remove_participant(db.session, p)
        log_tournament(tid, 'remove_participant', 'success', f'participant_id={pid}')
        return jsonify(deleted=pid)

    @app.route('/api/tournaments/<int:tid>/matches', methods=['GET'])
    def list_matches(tid):
        t = get_tournament(tid)
        rounds = results.matches_by_round(results.tournament_matches(db.session, t))
        return jsonify(rounds=[
            {'round_number': number, 'matches': [m.to_dict() for m in ms]}
            for number, ms in rounds.items()
        ])

    @app.route('/api/tournaments/<int:tid>/matches', methods=['POST'])
    def add_matches(tid):
        t = get_tournament(tid)
        data = payload()
        if 'matches' in data:
            try:
                records = [MatchRecord.from_dict(m) for m in data['matches']]
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise ValidationError(f'Malformed match record: {exc}', field='matches')
            rows = results.import_matches(db.session, t, records)
            log_tournament(tid, 'import_matches', 'success', f'count={len(rows)}')
            return jsonify(matches=[m.to_dict() for m in rows]), 201
        m = results.record_match(
            db.session, t,
            round_number=data.get('round_number'),
            player1_id=data.get('player1_id'),
            player2_id=data.get('player2_id'),
            table_number=data.get('table_number'),
            outcome=data.get('outcome'),
        )
        log_tournament(tid, 'record_match', 'success', f'match_id={m.id}')
        return jsonify(match=m.to_dict()), 201

    @app.route('/api/tournaments/<int:tid>/standings', methods=['GET'])
    def view_standings(tid):
        t = get_tournament(tid)
        return jsonify(standings=standings.standings_snapshot(t, db.session))

    @app.route('/api/tournaments/<int:tid>/standings', methods=['POST'])
    def recompute_tournament_standings(tid):
        t = get_tournament(tid)
        reported = payload().get('reported_standings')
        if reported:
            try:
                reported = {int(k): v for k, v in reported.items()}
            except (AttributeError, ValueError):
                raise ValidationError('Reported standings must map participant ids to standings',
                                      field='reported_standings')
            standings.set_reported_standings(db.session, t, reported)
        ranked = standings.compute_standings(t, db.session)
        log_tournament(tid, 'standings', 'recomputed', f'players={len(ranked)}')
        return jsonify(standings=[s.to_dict() for s in ranked])

    @app.route('/api/organizer-requests', methods=['POST'])
    def submit_organizer_request():
        user_id = acting_user_id()
        user = db.session.get(User, user_id) if user_id is not None else None
        if not user:
            abort(401)
        data = payload()
        req = organizer_requests.submit_organizer_request(
            db.session, user,
            organization_name=data.get('organization_name'),
            business_email=data.get('business_email'),
            phone_number=data.get('phone_number'),
            address=data.get('address'),
            league_url=data.get('league_url'),
            experience_description=data.get('experience_description'),
        )
        log_site('organizer_request', 'submitted', f'id={req.id}')
        return jsonify(request=req.to_dict()), 201

    @app.route('/api/admin/organizer-requests')
    def list_organizer_requests():
        q = db.session.query(OrganizerRequest)
        status = request.args.get('status')
        if status:
            q = q.filter_by(status=status)
        rows = q.order_by(OrganizerRequest.requested_at.desc(), OrganizerRequest.id.desc()).all()
        return jsonify(requests=[r.to_dict() for r in rows])

    @app.route('/api/admin/organizer-requests/<int:rid>')
    def view_organizer_request(rid):
        return jsonify(request=get_organizer_request(rid).to_dict())

    @app.route('/api/admin/organizer-requests/<int:rid>', methods=['PATCH'])
    def review_organizer_request(rid):
        req = get_organizer_request(rid)
        data = payload()
        previous = req.status
        status = data.get('status') or previous
        organizer_requests.review_organizer_request(
            db.session, req, status,
            reviewer_id=acting_user_id(),
            admin_notes=data.get('admin_notes'),
        )
        action = 'notes_added' if status == previous else 'status_changed'
        log_site(f'organizer_request_{action}', 'success', f'id={rid} {previous}->{req.status}')
        return jsonify(request=req.to_dict())

    @app.route('/api/admin/organizer-requests/<int:rid>/notes', methods=['PUT'])
    def update_organizer_request_notes(rid):
        req = get_organizer_request(rid)
        organizer_requests.update_admin_notes(db.session, req, payload().get('admin_notes'))
        log_site('organizer_request_notes_added', 'success', f'id={rid}')
        return jsonify(request=req.to_dict())

    return app
