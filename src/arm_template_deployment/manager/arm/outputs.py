# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import logging
from collections.abc import Mapping
from typing import Any

import dacite

from arm_template_deployment.operations.operation_interfaces import DeploymentOutput, OutputDecodeError, OutputParser
from arm_template_deployment.static.transformers import StringTransformer


class ArmOutputParser(OutputParser):
    """Concrete implementation of OutputParser for ARM deployment outputs."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def flatten(self, raw: Any) -> dict[str, DeploymentOutput]:
        if raw is None:
            return {}

        if not isinstance(raw, Mapping):
            raise OutputDecodeError(f"Failed to parse the template outputs, expected an object but got {type(raw).__name__}")

        outputs = {}
        for name, entry in raw.items():
            if not isinstance(entry, Mapping) or not isinstance(entry.get("type"), str) or "value" not in entry:
                raise OutputDecodeError(f"Failed to parse the template output '{name}', expected an object with type and value but got {entry!r}")

            try:
                outputs[name] = dacite.from_dict(
                    data_class=DeploymentOutput,
                    data={"type": entry["type"], "value": StringTransformer.to_text(entry["value"])},
                    config=dacite.Config(cast=[str]),
                )
            except dacite.DaciteError as e:
                raise OutputDecodeError(f"Failed to parse the template output '{name}': {e}") from e

        self.logger.debug(f"Parsed {len(outputs)} template outputs: {sorted(outputs)}")
        return outputs
