"""
Manifest rendering.

Turns extracted metadata into an installer manifest and renders the
result page handed back to the caller.
"""

from .generator import (
    DEFAULT_TEMPLATE_DIR,
    TemplateStore,
    render_manifest,
    render_result_page,
    substitute,
)

__all__ = [
    "DEFAULT_TEMPLATE_DIR",
    "TemplateStore",
    "render_manifest",
    "render_result_page",
    "substitute",
]
