"""Build metadata exposed at runtime.

APP_VERSION comes from the APP_VERSION environment variable, falling back to
the installed distribution's version. GIT_COMMIT is set in CI only.
"""

import os
from importlib.metadata import PackageNotFoundError, version

DISTRIBUTION_NAME = "mahjong-ledger-stats"


def _installed_version() -> str:
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "dev"


APP_VERSION: str = os.environ.get("APP_VERSION") or _installed_version()
GIT_COMMIT: str = os.environ.get("GIT_COMMIT", "unknown")
