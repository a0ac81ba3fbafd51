import sqlite3

from sqlalchemy import inspect, text

from rotomtracks.app import create_app, db


def _old_database(db_path):
    conn = sqlite3.connect(db_path)
    conn.execute(
        """
        CREATE TABLE tournament (
            id INTEGER PRIMARY KEY,
            official_id VARCHAR(12),
            name VARCHAR(255) NOT NULL,
            tournament_type VARCHAR(50) NOT NULL,
            city VARCHAR(100) NOT NULL,
            country VARCHAR(100) NOT NULL,
            status VARCHAR(20) NOT NULL,
            max_players INTEGER
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE participant (
            id INTEGER PRIMARY KEY,
            tournament_id INTEGER NOT NULL,
            player_name VARCHAR(255) NOT NULL,
            status VARCHAR(20) NOT NULL
        )
        """
    )
    conn.execute(
        "INSERT INTO tournament (id, name, tournament_type, city, country, status, max_players) "
        "VALUES (1, 'League Cup', 'TCG League Cup', 'Madrid', 'Spain', 'upcoming', 8)"
    )
    conn.executemany(
        "INSERT INTO participant (id, tournament_id, player_name, status) VALUES (?, 1, ?, ?)",
        [(1, 'Ash Ketchum', 'registered'), (2, 'Gary Oak', 'waitlist'), (3, 'Misty', 'checked_in')],
    )
    conn.commit()
    conn.close()


def test_tournament_columns_added(tmp_path, monkeypatch):
    db_path = tmp_path / "pre.db"
    _old_database(db_path)
    monkeypatch.setenv("ROTOM_DB_PATH", str(db_path))
    monkeypatch.setenv("ROTOM_LOG_DB_PATH", str(tmp_path / "logs.db"))

    app = create_app()
    with app.app_context():
        inspector = inspect(db.engine)
        cols = [c['name'] for c in inspector.get_columns('tournament')]
        assert 'registration_open' in cols
        assert 'current_players' in cols
        row = db.session.execute(text('SELECT registration_open, current_players FROM tournament')).one()
        assert tuple(row) == (1, 2)
        db.session.remove()


def test_participant_columns_added(tmp_path, monkeypatch):
    db_path = tmp_path / "pre.db"
    _old_database(db_path)
    monkeypatch.setenv("ROTOM_DB_PATH", str(db_path))
    monkeypatch.setenv("ROTOM_LOG_DB_PATH", str(tmp_path / "logs.db"))

    app = create_app()
    with app.app_context():
        inspector = inspect(db.engine)
        cols = [c['name'] for c in inspector.get_columns('participant')]
        for name in ('holds_slot', 'reported_standing', 'registration_source'):
            assert name in cols
        rows = db.session.execute(text(
            'SELECT id, holds_slot, registration_source FROM participant ORDER BY id'
        )).all()
        assert [tuple(r) for r in rows] == [(1, 1, 'online'), (2, 0, 'online'), (3, 1, 'online')]
        db.session.remove()


def test_fresh_database_untouched(tmp_path, monkeypatch):
    monkeypatch.setenv("ROTOM_DB_PATH", str(tmp_path / "new.db"))
    monkeypatch.setenv("ROTOM_LOG_DB_PATH", str(tmp_path / "logs.db"))

    app = create_app()
    with app.app_context():
        assert 'tournament' not in inspect(db.engine).get_table_names()
        db.create_all()
        tables = inspect(db.engine).get_table_names()
        for name in ('tournament', 'participant', 'match_result', 'aggregated_result', 'organizer_request'):
            assert name in tables
        assert 'site_log' in inspect(db.engines['logs']).get_table_names()
        db.session.remove()
