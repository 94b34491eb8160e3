#!/usr/bin/env python3
"""
Run migrations (same process, same DATABASE_URL), then uvicorn.
Ensures tables exist before the app and the sweeps start.
"""
import os
import sys

from artisan_booking.core.config import settings

# 1) Wait for DB
if settings.DATABASE_URL.startswith("postgres"):
    from wait_for_db import wait_for_db
    wait_for_db(settings.DATABASE_URL)

# 2) Run migrations using the same settings as the app
from alembic.config import Config
from alembic import command

alembic_cfg = Config(os.path.join(os.path.dirname(__file__), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# 3) Start uvicorn (replace current process)
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "artisan_booking.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
