# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT
import os
import platform
import subprocess

__version__ = "0.1.0"


def get_git_hash() -> str:
    git_hash = os.getenv("GIT_HASH", "").strip()
    if git_hash:
        return git_hash
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S607
            cwd=os.path.dirname(__file__),
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired):
        return "unknown"
    if result.returncode == 0:
        return result.stdout.strip()
    return "unknown"


def get_build_info() -> str:
    return f"Version: {__version__}, GitHash: {get_git_hash()}, PythonVersion: {platform.python_version()}, BuildTime: {os.getenv('BUILD_TIME', 'unknown')}"
