"""Centralised version and naming information for plotpipe.

Packaging metadata (pyproject.toml reads APP_VERSION) and the CLI both read
from here so the version string lives in one place.
"""

APP_NAME: str = "plotpipe"
APP_VERSION: str = "0.3.0"
APP_DESCRIPTION: str = "Render plot specifications to images through a supervised Kaleido process."

__all__ = [
    "APP_NAME",
    "APP_VERSION",
    "APP_DESCRIPTION",
]
