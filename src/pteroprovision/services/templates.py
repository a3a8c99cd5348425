"""Template rendering for unit files and nginx sites."""

from typing import Any, Dict, Optional

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from pteroprovision.errors import ProvisionError


class TemplateService:
    """Renders packaged Jinja2 templates from an explicit key/value map.

    Rendering happens fully in memory; a missing key raises before anything
    is written to disk.
    """

    def __init__(self, filesystem_service, environment: Optional[Environment] = None):
        self.filesystem_service = filesystem_service
        self.environment = environment or Environment(
            loader=PackageLoader("pteroprovision", "templates"),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            return self.environment.get_template(template_name).render(**context)
        except TemplateError as exc:
            raise ProvisionError(f"Could not render template '{template_name}': {exc}") from exc

    def render_to_file(self, template_name: str, context: Dict[str, Any], path: str, mode: int = 0o644):
        content = self.render(template_name, context)
        self.filesystem_service.write_file(path, content, mode=mode)
        return content
