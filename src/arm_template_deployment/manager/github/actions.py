# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import logging
import os
import sys
import uuid
from collections.abc import Mapping
from typing import TextIO

GITHUB_OUTPUT_VARIABLE = "GITHUB_OUTPUT"


class GitHubActions:
    """
    Writes outputs and workflow commands for the GitHub Actions runner.
    """

    def __init__(self, environ: Mapping[str, str] | None = None, stream: TextIO | None = None, logger: logging.Logger | None = None):
        """
        Initialize the workflow command writer.

        Args:
            environ: Environment to look up GITHUB_OUTPUT in, defaults to os.environ
            stream: Stream workflow commands are printed to, defaults to stdout
            logger: Optional logger instance. If None, creates a default logger.
        """
        self.environ = os.environ if environ is None else environ
        self.stream = stream or sys.stdout
        self.logger = logger or logging.getLogger(__name__)

    def set_output(self, name: str, value: str) -> None:
        """
        Set an output of the action.

        Appends to the GITHUB_OUTPUT file when the runner provides one, otherwise prints the legacy set-output command.
        """
        self.logger.debug(f"Setting output {name}")
        output_file = self.environ.get(GITHUB_OUTPUT_VARIABLE, "")
        if not output_file:
            self._write_command(f"::set-output name={name}::{self.escape_data(value)}")
            return

        with open(output_file, "a", encoding="utf-8") as file:
            if "\n" in value or "\r" in value:
                delimiter = f"ghadelimiter_{uuid.uuid4()}"
                file.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
            else:
                file.write(f"{name}={value}\n")

    def set_outputs(self, outputs: Mapping[str, str]) -> None:
        for name, value in outputs.items():
            self.set_output(name, value)

    def add_mask(self, value: str) -> None:
        """Ask the runner to mask a secret in all later log lines."""
        if value:
            self._write_command(f"::add-mask::{self.escape_data(value)}")

    def write_error(self, message: str) -> None:
        """Report an error annotation for the current step."""
        self._write_command(f"::error::{self.escape_data(message)}")

    @staticmethod
    def escape_data(value: str) -> str:
        return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")

    def _write_command(self, command: str) -> None:
        self.stream.write(f"{command}\n")
        self.stream.flush()
