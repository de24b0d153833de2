from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# SQLite file in the project root unless DATABASE_URL says otherwise
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "clinic.sqlite"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "0") == "1"  # "1" to log every query

# Every appointment lasts this long; the length is not stored per row
APPOINTMENT_DURATION_MINUTES = int(os.getenv("APPOINTMENT_DURATION_MINUTES", "30"))

# Calendars are kept in wall-clock time of this zone
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")

# In production: set it in the environment
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
