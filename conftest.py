"""Global pytest configuration."""

import os

# Settings read the environment at import time of the tests; pin it first.
# A throwaway SQLite database, and no API key so the stub model is selected.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.pop("OPENAI_API_KEY", None)
