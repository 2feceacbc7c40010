# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import base64
import json
import re
from typing import Any

DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

DURATION_PART_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")


class StringTransformer:
    """
    String transformation operations.
    """

    @staticmethod
    def camel_to_snake(name: str) -> str:
        """
        Convert camelCase string to snake_case.
        """

        s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
        return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()

    @staticmethod
    def duration_to_seconds(value: str) -> float:
        """
        Convert a Go style duration ("20m", "1h30m", "90s", "500ms") or a plain number of seconds to seconds.

        Raises:
            ValueError: If the value is not a duration
        """
        text = value.strip()
        try:
            return float(text)
        except ValueError:
            pass

        if not text or DURATION_PART_PATTERN.sub("", text):
            raise ValueError(f"Invalid duration '{value}', expected e.g. 20m, 1h30m or 90s")

        return sum(float(amount) * DURATION_UNITS[unit] for amount, unit in DURATION_PART_PATTERN.findall(text))

    @staticmethod
    def to_text(value: Any) -> str:
        """
        Render a JSON value the way it would appear in a workflow output.
        """
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (dict, list)):
            return json.dumps(value, separators=(",", ":"))
        return str(value)

    @staticmethod
    def decode_jwt_claims(token: str) -> dict[str, Any]:
        """
        Decode the claims of a JWT without verifying its signature.

        Raises:
            ValueError: If the token is not a JWT
        """
        parts = token.split(".")
        if len(parts) != 3:  # noqa: PLR2004
            raise ValueError("Invalid JWT token format")  # noqa: EM101

        payload = parts[1]
        padding = len(payload) % 4
        if padding:
            payload += "=" * (4 - padding)

        try:
            claims = json.loads(base64.urlsafe_b64decode(payload))
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid JWT payload: {e}") from e

        if not isinstance(claims, dict):
            raise ValueError("Invalid JWT payload: claims are not an object")  # noqa: EM101
        return claims
