"""API routers package.

Each router module owns one API area and delegates to
``stepwise.install.InstallWizard`` for behaviour.
"""
