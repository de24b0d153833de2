"""
Clinic backend: appointment scheduling core.

Structure:
- config.py         : settings from the environment (.env)
- db.py             : SQLAlchemy engine and sessions
- models.py         : ORM models and enums (clinics, doctors, patients, appointments)
- availability.py   : doctors' weekly availability window
- conflict_index.py : per-doctor index of booked intervals
- lifecycle.py      : appointment status machine
- tenancy.py        : clinic memberships and the acting user
- storage.py        : storage interface used by the booking core
- booking.py        : booking engine (book, confirm, cancel, free slots)
- services.py       : use cases on the default database
- seed.py           : demo data
- cli.py            : command line
- api_main.py       : HTTP API (FastAPI)
"""
