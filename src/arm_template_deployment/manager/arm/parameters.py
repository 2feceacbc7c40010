# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import json
import logging
from enum import Enum
from typing import Any

from arm_template_deployment.operations.operation_interfaces import (
    InvalidParameterSyntaxError,
    ParameterLoader,
    TemplateParseError,
    TemplateReadError,
)

# ---------------------------------------------------------------------------- #
# -------------------------- PARAMETER CONSTANTS ----------------------------- #
# ---------------------------------------------------------------------------- #

JSON_SUFFIX = ".json"
WRAPPED_PARAMETERS_KEY = "parameters"

# Characters with the Unicode Quotation_Mark property
QUOTATION_MARKS = frozenset(
    "\"'«»‘’‚‛“”„‟"
    "‹›⹂「」『』〝〞〟"
    "﹁﹂﹃﹄＂＇｢｣"
)


class LexerState(Enum):
    """States of the inline parameter lexer."""

    NORMAL = "normal"
    IN_QUOTE = "inQuote"


class ArmParameterLoader(ParameterLoader):
    """Concrete implementation of ParameterLoader for ARM templates and parameter files."""

    def __init__(self, logger: logging.Logger | None = None):
        """
        Initialize the parameter loader.

        Args:
            logger: Optional logger instance. If None, creates a default logger.
        """
        self.logger = logger or logging.getLogger(__name__)

    def load_json(self, path: str) -> dict[str, Any]:
        self.logger.debug(f"Reading JSON file {path}")
        try:
            with open(path, encoding="utf-8") as file:
                content = file.read()
        except OSError as e:
            error_msg = f"Failed to read file '{path}': {e}"
            self.logger.error(error_msg)
            raise TemplateReadError(error_msg) from e

        return self._parse_object(content, path)

    def load_template(self, location: str) -> dict[str, Any]:
        if location.lstrip().startswith("{"):
            self.logger.debug("Parsing inline template")
            return self._parse_object(location, "inline template")
        return self.load_json(location)

    def load_parameters(self, location: str) -> dict[str, Any]:
        if not location or not location.strip():
            return {}

        if location.strip().endswith(JSON_SUFFIX):
            return self._load_parameters_json(location.strip())

        return self.parse_inline_parameters(location)

    def merge(self, base: dict[str, Any] | None, override: dict[str, Any] | None) -> dict[str, Any]:
        merged = dict(base or {})
        for name, value in (override or {}).items():
            if name in merged:
                self.logger.debug(f"Overriding parameter {name}")
            merged[name] = value
        return merged

    def parse_inline_parameters(self, text: str) -> dict[str, Any]:
        """
        Parse whitespace separated KEY=VALUE pairs into a parameter set.

        Values may be quoted to protect embedded whitespace; all quotation marks are removed from values.

        Raises:
            InvalidParameterSyntaxError: If a pair has no '=' or an empty key
        """
        parameters: dict[str, Any] = {}
        for pair in self.split_pairs(text):
            key, separator, raw_value = pair.partition("=")
            if not separator or not key:
                raise InvalidParameterSyntaxError(f"Found invalid pair, expected KEY=VALUE got {pair}")

            value = "".join(c for c in raw_value if c not in QUOTATION_MARKS).strip()
            parameters[key] = {"value": value}

        self.logger.debug(f"Parsed {len(parameters)} inline parameters: {sorted(parameters)}")
        return parameters

    @staticmethod
    def split_pairs(text: str) -> list[str]:
        """
        Split text on whitespace, keeping quoted sections together.

        A quote is closed only by the same character that opened it.
        """
        fields: list[str] = []
        current: list[str] = []
        state = LexerState.NORMAL
        open_quote = ""

        for c in text:
            match state:
                case LexerState.IN_QUOTE:
                    current.append(c)
                    if c == open_quote:
                        state = LexerState.NORMAL
                        open_quote = ""

                case LexerState.NORMAL if c in QUOTATION_MARKS:
                    current.append(c)
                    state = LexerState.IN_QUOTE
                    open_quote = c

                case LexerState.NORMAL if c.isspace():
                    if current:
                        fields.append("".join(current))
                        current = []

                case _:
                    current.append(c)

        if current:
            fields.append("".join(current))

        return fields

    # ---------------------------------------------------------------------------- #

    def _load_parameters_json(self, path: str) -> dict[str, Any]:
        """Load a parameter file, unwrapping a top-level 'parameters' key if present."""
        self.logger.debug(f"Parsing parameter json {path}")
        document = self.load_json(path)

        # Parameter files exported from the portal wrap the set in a "parameters" key
        if WRAPPED_PARAMETERS_KEY in document:
            parameters = document[WRAPPED_PARAMETERS_KEY]
            if not isinstance(parameters, dict):
                raise TemplateParseError(f"Invalid parameters in '{path}': expected a JSON object under '{WRAPPED_PARAMETERS_KEY}'")
            return parameters

        return document

    def _parse_object(self, content: str, source: str) -> dict[str, Any]:
        """Parse JSON text that must hold an object."""
        try:
            document = json.loads(content)
        except json.JSONDecodeError as e:
            error_msg = f"Invalid JSON in {source}: {e}"
            self.logger.error(error_msg)
            raise TemplateParseError(error_msg) from e

        if not isinstance(document, dict):
            raise TemplateParseError(f"Invalid JSON in {source}: expected an object but got {type(document).__name__}")

        return document
