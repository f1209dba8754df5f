"""
Manifest and result page rendering.

Templates use literal placeholders ({name}, {version}, {id}, {url} for the
installer manifest; {url}, {expiration} for the result page). Each
placeholder is substituted once, in a fixed order, with no escaping.
"""

import logging
from pathlib import Path

from manifest_generator.core.exceptions import ConfigurationError
from manifest_generator.core.models import AppMetadata, ExpirationPolicy, InstallLink

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "resources"

MANIFEST_TEMPLATE = "manifest.plist"
RESULT_TEMPLATE = "result.html"
ERROR_PAGE = "error.html"


def substitute(template: str, replacements: list[tuple[str, str]]) -> str:
    """
    Replace the first occurrence of each placeholder, in list order.

    A value that itself contains a later placeholder is seen by the later
    substitution like any other text.
    """
    text = template
    for placeholder, value in replacements:
        text = text.replace(placeholder, value, 1)
    return text


def render_manifest(template: str, metadata: AppMetadata, package_url: str) -> str:
    """
    Render the installer manifest.

    Args:
        template: Manifest template text
        metadata: Extracted application metadata (absent values render empty)
        package_url: Public URL of the uploaded package

    Returns:
        Manifest text ready for publication
    """
    return substitute(
        template,
        [
            ("{name}", metadata.display_name or ""),
            ("{version}", metadata.version or ""),
            ("{id}", metadata.bundle_id or ""),
            ("{url}", package_url),
        ],
    )


def render_result_page(
    template: str,
    links: InstallLink | list[InstallLink],
    policy: ExpirationPolicy,
) -> str:
    """Render the success page around one or more install links."""
    if isinstance(links, InstallLink):
        links = [links]
    return substitute(
        template,
        [
            ("{url}", "<br>\n".join(link.render() for link in links)),
            ("{expiration}", policy.describe()),
        ],
    )


class TemplateStore:
    """
    Loads template resources from a directory.

    Templates are read once and cached; the directory defaults to the
    resources shipped with the package.
    """

    def __init__(self, template_dir: Path | None = None):
        self._template_dir = template_dir or DEFAULT_TEMPLATE_DIR
        self._cache: dict[str, str] = {}

    @property
    def template_dir(self) -> Path:
        return self._template_dir

    def load(self, name: str) -> str:
        """
        Load a template by file name.

        Raises:
            ConfigurationError: If the template cannot be read
        """
        if name not in self._cache:
            path = self._template_dir / name
            try:
                self._cache[name] = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(
                    f"Cannot read template {path}: {e}", config_key="template_dir"
                ) from e
            logger.debug(f"Loaded template {path}")
        return self._cache[name]

    def manifest_template(self) -> str:
        return self.load(MANIFEST_TEMPLATE)

    def result_template(self) -> str:
        return self.load(RESULT_TEMPLATE)

    def error_page(self) -> str:
        return self.load(ERROR_PAGE)
