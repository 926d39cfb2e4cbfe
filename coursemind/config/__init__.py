"""Configuration package: environment-driven :class:`Settings`."""

from coursemind.config.settings import Settings

__all__ = ["Settings"]
