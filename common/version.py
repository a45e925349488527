# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import os
from importlib import metadata

DISTRIBUTION_NAME = "pid-credential-agent"

commit_hash = os.getenv("COMMIT_HASH", "no hash")


def get_version() -> str:
    """Version of the installed distribution, overridable with VERSION for container builds"""
    version = os.getenv("VERSION")
    if not version:
        try:
            version = metadata.version(DISTRIBUTION_NAME)
        except metadata.PackageNotFoundError:
            version = "no version"
    return f"{version} ({commit_hash})"
