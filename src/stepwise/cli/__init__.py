"""stepwise command line (Typer + Rich).

Entry point: ``stepwise = stepwise.cli.app:app``.
"""
