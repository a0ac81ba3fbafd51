#!/usr/bin/env python
"""Populate the development database with demo tournaments, results and requests."""
from __future__ import annotations

import argparse
from datetime import datetime, timedelta
from typing import Sequence

from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rotomtracks.app import create_app, db
from rotomtracks import models
from rotomtracks.errors import AdmissionDenied
from rotomtracks.organizer_requests import approve, start_review, submit_organizer_request
from rotomtracks.participants import check_in, register_participant
from rotomtracks.results import MatchRecord, import_matches
from rotomtracks.standings import compute_standings
from rotomtracks.tournaments import set_tournament_status
from rotomtracks.validation import generate_tournament_id

PLAYER_DETAILS = [
    ("Lena Hart", "1000001"),
    ("Noah Kim", "1000002"),
    ("Eli Turner", "1000003"),
    ("Zara Brooks", "1000004"),
    ("Theo White", "1000005"),
    ("Maya Singh", "1000006"),
    ("Riley Chen", "1000007"),
    ("Sofia Martins", "1000008"),
    ("Jonah Price", "1000009"),
    ("Aria Wells", "1000010"),
]


def create_user(name: str, email: str, role: str = "player") -> models.User:
    user = models.User.query.filter_by(email=email).first()
    if user is None:
        user = models.User(name=name, email=email, role=role)
        db.session.add(user)
        db.session.commit()
    return user


def ensure_tournament(sequence: int, name: str, ttype: str, days_from_now: int,
                      max_players: int | None) -> tuple[models.Tournament, bool]:
    start = datetime.utcnow() + timedelta(days=days_from_now)
    official_id = generate_tournament_id(start, sequence)
    t = models.Tournament.query.filter_by(official_id=official_id).first()
    if t is not None:
        return t, False
    t = models.Tournament(
        official_id=official_id,
        name=name,
        tournament_type=ttype,
        city="Madrid",
        country="Spain",
        start_date=start,
        max_players=max_players,
        status="upcoming",
        registration_open=True,
        current_players=0,
    )
    db.session.add(t)
    db.session.commit()
    return t, True


def register_all(t: models.Tournament, details: Sequence[tuple[str, str]]) -> list[models.Participant]:
    entries = []
    for name, player_id in details:
        try:
            entries.append(register_participant(db.session, t, name, player_id=player_id,
                                                source="manual", allow_waitlist=True))
        except AdmissionDenied as exc:
            print(f"Skipped {name}: {exc}")
    return entries


def play_rounds(t: models.Tournament, entries: Sequence[models.Participant], rounds: int) -> None:
    records = []
    for number in range(1, rounds + 1):
        # rotate the list so each round pairs different opponents
        shift = number - 1
        order = list(entries[shift:]) + list(entries[:shift])
        for table, i in enumerate(range(0, len(order) - 1, 2), start=1):
            p1, p2 = order[i], order[i + 1]
            outcome = models.MatchOutcome.DRAW if (i + number) % 5 == 0 else (
                models.MatchOutcome.PLAYER1_WINS if (p1.id + number) % 2 else models.MatchOutcome.PLAYER2_WINS
            )
            records.append(MatchRecord(round_number=number, table_number=table,
                                       player1_id=p1.id, player2_id=p2.id, outcome=outcome))
        if len(order) % 2:
            records.append(MatchRecord(round_number=number, player1_id=order[-1].id,
                                       outcome=models.MatchOutcome.BYE))
    import_matches(db.session, t, records)


def build_sample_world(reset: bool = False) -> None:
    if reset:
        db.drop_all()
        db.create_all()
    create_user("Admin User", "admin@example.com", role="admin")
    organizer = create_user("Morgan Reid", "morgan@example.com", role="organizer")
    applicant = create_user("Kira Lopez", "kira@example.com")
    hopeful = create_user("Asher Patel", "asher@example.com")

    cup, created = ensure_tournament(1, "Madrid League Cup", "TCG League Cup", 14, 8)
    if created:
        cup.organizer_id = organizer.id
        db.session.commit()
        register_all(cup, PLAYER_DETAILS)

    challenge, created = ensure_tournament(2, "Madrid League Challenge", "TCG League Challenge", 1, None)
    if created:
        entries = register_all(challenge, PLAYER_DETAILS[:7])
        for entry in entries[:5]:
            check_in(db.session, entry)
        set_tournament_status(db.session, challenge, "ongoing")
        play_rounds(challenge, entries, 3)
        set_tournament_status(db.session, challenge, "completed")
        ranked = compute_standings(challenge, db.session)
        print(f"{challenge.name}: {ranked[0].player_name} finished first with {ranked[0].points} points")

    if not models.OrganizerRequest.query.filter_by(user_id=applicant.id).first():
        req = submit_organizer_request(
            db.session, applicant, "Lopez Card Club",
            business_email="club@example.com",
            experience_description="Hosted prerelease events and weekly leagues at our store since 2021.",
        )
        start_review(db.session, req)
        approve(db.session, req, admin_notes="Store visit confirmed")
    if not models.OrganizerRequest.query.filter_by(user_id=hopeful.id).first():
        submit_organizer_request(db.session, hopeful, "Patel Pokemon League")

    print("Database populated with demo content.")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="drop and recreate the database before loading data")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        db.create_all()
        build_sample_world(reset=args.reset)


if __name__ == "__main__":
    main()
