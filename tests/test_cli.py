# tests/test_cli.py
import re

import pytest

from clinic_backend import services
from clinic_backend.cli import main


@pytest.fixture
def db_url(database):
    return str(database.url)


def test_init_list_book_and_agenda(db_url, capsys):
    assert main(["--db", db_url, "init"]) == 0
    clinic_id = re.search(r"Demo clinic: (\S+)", capsys.readouterr().out).group(1)

    doctor = next(d for d in services.list_doctors_flat(clinic_id) if d["available_from_week_day"] == 1)
    patient = services.list_patients_flat(clinic_id)[0]

    args = ["--db", db_url, "book", "--clinic-id", clinic_id, "--doctor-id", doctor["id"], "--patient-id", patient["id"]]
    assert main(args + ["--start", "2026-01-12T09:00"]) == 0
    assert "Appointment booked (pending)" in capsys.readouterr().out

    assert main(args + ["--start", "2026-01-12T09:15"]) == 1
    assert "SlotConflict" in capsys.readouterr().out

    assert main(["--db", db_url, "agenda", "--clinic-id", clinic_id, "--doctor-id", doctor["id"], "--day", "2026-01-12"]) == 0
    assert "09:00-09:30 | pending" in capsys.readouterr().out

    assert main(["--db", db_url, "slots", "--clinic-id", clinic_id, "--doctor-id", doctor["id"], "--day", "2026-01-12"]) == 0
    assert "09:00," not in capsys.readouterr().out


def test_cancel_unknown_appointment(db_url, capsys):
    assert main(["--db", db_url, "cancel", "--appointment-id", "missing", "--user-id", "nobody"]) == 1
    assert "NotFound" in capsys.readouterr().out
