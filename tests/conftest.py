import os
import sys
from datetime import datetime, timedelta

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from rotomtracks.app import create_app, db
from rotomtracks.models import Tournament, User


@pytest.fixture
def app(tmp_path, monkeypatch):
    # use temporary SQLite databases for testing
    monkeypatch.setenv("ROTOM_DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("ROTOM_LOG_DB_PATH", str(tmp_path / "test_logs.db"))
    application = create_app()
    application.config['TESTING'] = True
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_tournament(session):
    counter = {'seq': 0}

    def factory(**overrides):
        counter['seq'] += 1
        fields = dict(
            official_id=f"30-01-{counter['seq']:06d}",
            name='League Cup',
            tournament_type='TCG League Cup',
            city='Madrid',
            country='Spain',
            start_date=datetime.utcnow() + timedelta(days=7),
            status='upcoming',
            registration_open=True,
            current_players=0,
        )
        fields.update(overrides)
        t = Tournament(**fields)
        session.add(t)
        session.commit()
        return t

    return factory


@pytest.fixture
def make_user(session):
    def factory(name='Ash Ketchum', email=None, role='player'):
        u = User(name=name, email=email, role=role)
        session.add(u)
        session.commit()
        return u

    return factory
