"""
Manifest Generator - Ephemeral over-the-air installs for iOS packages.

Extracts metadata from an uploaded .ipa, publishes it together with an
installer manifest to a short-lived public S3 bucket and hands back an
itms-services install link.
"""

from manifest_generator.version import __version__

# API module is available but not exported by default
# Import explicitly: from manifest_generator.api import create_app

__all__ = ["__version__"]
