"""
FastAPI application exposing the club services.
"""

__all__ = ["app", "create_app"]


def __getattr__(name):
    if name in {"app", "create_app"}:
        from . import app as _module

        return getattr(_module, name)
    raise AttributeError(f"module 'clubspace.api' has no attribute '{name}'")
