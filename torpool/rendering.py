from __future__ import annotations

import logging
from pathlib import Path
from string import Template
from typing import Any, Mapping

LOGGER = logging.getLogger("TorPool.Rendering")


class ConfigRenderError(RuntimeError):
    """Raised when a configuration template cannot be rendered or written."""


class ConfigRenderer:
    """Render ``${name}`` templates and write the result over the target file.

    List-valued settings are expanded by the owning service into a block of
    lines before rendering, so templates only ever substitute scalars.
    """

    def __init__(self, logger: logging.Logger = LOGGER) -> None:
        self._logger = logger

    def render(self, template_path: Path, parameters: Mapping[str, Any]) -> str:
        try:
            source = template_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigRenderError(
                f"Unable to read template {template_path}: {exc}"
            ) from exc

        values = {key: "" if value is None else str(value) for key, value in parameters.items()}
        try:
            return Template(source).substitute(values)
        except KeyError as exc:
            raise ConfigRenderError(
                f"Template {template_path} references unknown parameter {exc.args[0]!r}"
            ) from exc
        except ValueError as exc:
            raise ConfigRenderError(f"Template {template_path} is malformed: {exc}") from exc

    def write(self, output_path: Path, text: str) -> None:
        # Plain overwrite; a failure mid-write can leave a partial file behind.
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ConfigRenderError(f"Unable to write {output_path}: {exc}") from exc

    def render_to(
        self,
        template_path: Path,
        output_path: Path,
        parameters: Mapping[str, Any],
    ) -> str:
        text = self.render(template_path, parameters)
        self.write(output_path, text)
        self._logger.debug("rendered %s -> %s", template_path, output_path)
        return text


def block(lines) -> str:
    """Join pre-formatted configuration lines into one substitution value."""

    return "\n".join(lines)
