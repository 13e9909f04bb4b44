"""Setuptools build hooks for torch-varstore."""

from __future__ import annotations

from setuptools import setup

# Metadata lives in pyproject.toml; the package is pure Python, so the default
# ``bdist_wheel`` produces a ``py3-none-any`` wheel.
setup()
