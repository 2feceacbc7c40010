# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import logging
import time
from typing import Any

from azure.core.credentials import AccessToken, TokenCredential

from arm_template_deployment.static.transformers import StringTransformer

DEFAULT_TOKEN_LIFETIME_SECONDS = 60 * 60


class StaticTokenCredential(TokenCredential):
    """A credential that always hands out one pre-issued access token."""

    def __init__(self, token: str, expiry: int | None = None):
        if not token:
            raise ValueError("Token cannot be None or empty")

        self._token = token
        self.logger = logging.getLogger(__name__)
        self.expiry = expiry if expiry is not None else self._read_expiry(token)

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        self.logger.debug(f"Static token credential - getting token for scopes: {scopes}")
        return AccessToken(self._token, self.expiry)

    def get_expire(self) -> int:
        return self.expiry

    def _read_expiry(self, token: str) -> int:
        """Take the expiry from the exp claim, one hour from now if the token carries none."""
        try:
            return int(StringTransformer.decode_jwt_claims(token)["exp"])
        except (KeyError, TypeError, ValueError) as e:
            self.logger.debug(f"Could not read exp claim from static token, assuming one hour lifetime: {e}")
            return int(time.time()) + DEFAULT_TOKEN_LIFETIME_SECONDS
