"""Allow ``python -m prealembic``."""

from prealembic.cli.app import app

app()
