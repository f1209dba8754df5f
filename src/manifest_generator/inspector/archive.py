"""
Archive inspection.

Locates Payload/<App>.app/Info.plist inside an .ipa archive and decodes
the identifying metadata from it.
"""

import logging
import os
import re
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Any

from manifest_generator.core.exceptions import MetadataNotFoundError
from manifest_generator.core.models import AppMetadata
from manifest_generator.inspector.plist import DecodeStrategy, decode_plist

logger = logging.getLogger(__name__)

INFO_PLIST_PATTERN = re.compile(r"Payload/[^/]*\.app/Info\.plist")


class ArchiveInspector:
    """
    Reads application metadata out of package archives.

    When more than one entry matches, the first one in archive listing
    order is used.
    """

    def __init__(self, scratch_dir: Path | None = None):
        """
        Initialize the inspector.

        Args:
            scratch_dir: Directory for extracted scratch files (default: system temp)
        """
        self._scratch_dir = scratch_dir

    def find_metadata_entry(self, archive_path: Path) -> str:
        """
        Find the Info.plist entry of the application bundle.

        Args:
            archive_path: Path to the package archive

        Returns:
            Name of the matching archive entry

        Raises:
            MetadataNotFoundError: If no entry matches or the file is not a zip archive
        """
        try:
            with zipfile.ZipFile(archive_path) as zf:
                return self._match_entry(zf, archive_path)
        except (zipfile.BadZipFile, OSError) as e:
            raise MetadataNotFoundError(
                f"Cannot read archive: {e}", archive_path=str(archive_path)
            ) from e

    def _match_entry(self, zf: zipfile.ZipFile, archive_path: Path) -> str:
        for name in zf.namelist():
            if INFO_PLIST_PATTERN.fullmatch(name):
                return name
        raise MetadataNotFoundError(archive_path=str(archive_path))

    def read_properties(self, archive_path: Path) -> tuple[dict[str, Any], DecodeStrategy]:
        """
        Decode the full Info.plist of a package.

        The entry is extracted to a scratch file first; the scratch file is
        removed whatever the outcome.

        Raises:
            MetadataNotFoundError: If the archive has no metadata entry
            DecodeFailureError: If the entry is neither a binary nor an XML plist
        """
        try:
            with zipfile.ZipFile(archive_path) as zf:
                entry = self._match_entry(zf, archive_path)
                scratch = self._extract(zf, entry)
        except (zipfile.BadZipFile, OSError) as e:
            raise MetadataNotFoundError(
                f"Cannot read archive: {e}", archive_path=str(archive_path)
            ) from e

        try:
            properties, strategy = decode_plist(scratch.read_bytes())
        finally:
            remove_scratch_file(scratch)

        logger.debug(f"Decoded {entry} using {strategy.value}")
        return properties, strategy

    def extract_metadata(self, archive_path: Path) -> AppMetadata:
        """
        Extract display name, bundle id and version from a package.

        Missing keys are returned as None rather than rejected.

        Args:
            archive_path: Path to the package archive

        Returns:
            Extracted AppMetadata
        """
        properties, _ = self.read_properties(archive_path)
        metadata = AppMetadata.from_properties(properties)

        logger.info(f"Display name is '{metadata.display_name}'")
        logger.info(f"Bundle ID is '{metadata.bundle_id}'")
        logger.info(f"Version is '{metadata.version}'")
        missing = metadata.missing_fields()
        if missing:
            logger.warning(
                "Package metadata incomplete",
                extra={"archive_path": str(archive_path), "missing": missing},
            )
        return metadata

    def _extract(self, zf: zipfile.ZipFile, entry: str) -> Path:
        """Copy an archive entry into a new scratch file."""
        fd, name = tempfile.mkstemp(suffix=".plist", dir=self._scratch_dir)
        scratch = Path(name)
        try:
            with os.fdopen(fd, "wb") as out, zf.open(entry) as src:
                shutil.copyfileobj(src, out)
        except BaseException:
            remove_scratch_file(scratch)
            raise
        return scratch


def remove_scratch_file(path: Path) -> bool:
    """
    Delete a local scratch file.

    Failures are logged and swallowed; they must never block a response.

    Returns:
        True if the file is gone afterwards
    """
    try:
        path.unlink(missing_ok=True)
        return True
    except OSError as e:
        logger.warning(f"Failed to delete scratch file {path}: {e}")
        return False
