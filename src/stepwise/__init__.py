"""
Stepwise - resumable installation wizard engine.

Packages:
    stepwise.core           errors, logging, settings
    stepwise.orchestration  step registry, progress tracker, step runner
    stepwise.install        built-in install steps, migrations, wizard facade
    stepwise.api            FastAPI transport
    stepwise.cli            Typer command line
"""

__version__ = "0.1.0"
