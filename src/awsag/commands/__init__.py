"""Command modules for awsag."""

from . import config, operations, templates

__all__ = ["config", "operations", "templates"]
