"""
``prealembic`` command line interface (typer + rich).
"""
