# scripts/seed.py
from __future__ import annotations

import os
import zoneinfo
from datetime import UTC, datetime, timedelta

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from app.core.errors import SchedulingError
from app.core.logging import configure_logging
from app.core.settings import settings
from app.db import SessionLocal, engine
from app.deps import Principal, Role
from app.engine import SchedulingEngine
from app.models.availability import AvailabilityKind
from app.models.registration import CourseRegistration, RegistrationStatus
from app.services.notifier import LogNotifier
from app.utils.tz import day_of_week

# ---------------- Configuráveis por ENV ----------------
SEED_TZ = zoneinfo.ZoneInfo(os.getenv("SEED_TZ", settings.SCHEDULE_TZ))
SEED_DAYS = int(os.getenv("SEED_DAYS", "10"))

# ---------------- Dados de Exemplo ----------------
TUTORS_DATA = [
    {"id": "tutor-ana", "subject": "matematica"},
    {"id": "tutor-bruno", "subject": "portugues"},
    {"id": "tutor-carla", "subject": "fisica"},
]

STUDENTS_DATA = ["aluno-alice", "aluno-bruno", "aluno-clara", "aluno-diego", "aluno-eduarda"]

# (dayOfWeek 0=domingo, início, fim)
RECURRING_WINDOWS = [
    (1, "09:00", "12:00"),  # segunda
    (3, "09:00", "12:00"),  # quarta
    (5, "09:00", "12:00"),  # sexta
    (2, "14:00", "17:00"),  # terça
    (4, "14:00", "17:00"),  # quinta
]


def check_tables_exist(db: Session) -> bool:
    required = {"availability_windows", "tutor_sessions", "course_registrations"}
    return required <= set(inspect(db.get_bind()).get_table_names())


def ensure_registrations(db: Session) -> None:
    created = 0
    for tutor in TUTORS_DATA:
        for student_id in STUDENTS_DATA:
            exists = db.execute(
                select(CourseRegistration.id).where(
                    CourseRegistration.student_id == student_id,
                    CourseRegistration.tutor_id == tutor["id"],
                    CourseRegistration.subject_id == tutor["subject"],
                )
            ).scalar_one_or_none()
            if exists:
                continue
            db.add(
                CourseRegistration(
                    student_id=student_id,
                    tutor_id=tutor["id"],
                    subject_id=tutor["subject"],
                    status=RegistrationStatus.ACTIVE,
                )
            )
            created += 1
    db.commit()
    print(f"[Seed] {created} matrículas criadas.")


def ensure_availability(eng: SchedulingEngine) -> None:
    created = 0
    for tutor in TUTORS_DATA:
        who = Principal(tutor["id"], Role.TUTOR)
        for dow, start, end in RECURRING_WINDOWS:
            try:
                eng.declare_availability(
                    who,
                    {
                        "kind": AvailabilityKind.RECURRING,
                        "day_of_week": dow,
                        "start_time": start,
                        "end_time": end,
                        "max_slots": 3,
                    },
                )
                created += 1
            except SchedulingError as e:
                # rodar o seed duas vezes esbarra nas janelas já existentes
                print(f"[Seed] Janela ignorada ({tutor['id']} {dow} {start}): {e.kind}")
    print(f"[Seed] {created} janelas de disponibilidade criadas.")


def ensure_sessions(eng: SchedulingEngine, days: int) -> None:
    print("[Seed] Gerando sessões...")
    windows = {dow: start for dow, start, _ in RECURRING_WINDOWS}
    today = datetime.now(SEED_TZ).date()
    created = 0
    for offset in range(1, days + 1):
        d = today + timedelta(days=offset)
        start_hhmm = windows.get(day_of_week(d))
        if not start_hhmm:
            continue
        hour = int(start_hhmm[:2])
        starts = datetime(d.year, d.month, d.day, hour, tzinfo=SEED_TZ).astimezone(UTC)
        for tutor in TUTORS_DATA:
            try:
                s = eng.open_session(
                    Principal(tutor["id"], Role.TUTOR),
                    {
                        "subject_id": tutor["subject"],
                        "title": f"Plantão de {tutor['subject']}",
                        "starts_at": starts,
                        "ends_at": starts + timedelta(hours=1),
                        "session_type": "ONLINE",
                        "meeting_link": f"https://meet.example.com/{tutor['id']}",
                        "max_participants": 3,
                    },
                )
            except SchedulingError as e:
                print(f"[Seed] Sessão ignorada ({tutor['id']} {d}): {e.kind}")
                continue
            created += 1
            student = STUDENTS_DATA[offset % len(STUDENTS_DATA)]
            eng.book_appointment(Principal(student, Role.STUDENT), s.id)
    print(f"[Seed] {created} sessões criadas.")


def main():
    configure_logging(json=settings.LOG_JSON, level=settings.LOG_LEVEL)
    print("[Seed] Iniciando seed do banco de dados...")
    with SessionLocal() as db:
        if not check_tables_exist(db):
            print("[Seed] Erro: as tabelas ainda não foram criadas.")
            print("[Seed] Execute as migrações antes: alembic upgrade head")
            return
        ensure_registrations(db)

    eng = SchedulingEngine(SessionLocal, notifier=LogNotifier())
    ensure_availability(eng)
    ensure_sessions(eng, SEED_DAYS)

    print("\n[Seed] Concluído!")
    print("-------------------------------------------------")
    print(f"Banco: {engine.url.render_as_string(hide_password=True)}")
    print("Tutores: " + ", ".join(t["id"] for t in TUTORS_DATA))
    print("Alunos:  " + ", ".join(STUDENTS_DATA))
    print("-------------------------------------------------")


if __name__ == "__main__":
    main()
