"""Root conftest: loads .env.test before any module imports."""
from __future__ import annotations

import os
from pathlib import Path

_env_test = Path(__file__).resolve().parent / ".env.test"
if _env_test.exists():
    for line in _env_test.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip())

# settings are required at import time; keep the suite importable without .env.test
for _key, _value in {
    "POSTGRES_USER": "dm",
    "POSTGRES_PASSWORD": "dm",
    "POSTGRES_DB": "dm_test",
    "JWT_SECRET": "test-secret-key-with-at-least-32-bytes",
    "FANOUT_BACKEND": "local",
}.items():
    os.environ.setdefault(_key, _value)
