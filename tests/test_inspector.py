"""Tests for archive inspection and property list decoding."""

from pathlib import Path
from typing import Callable

import pytest

from manifest_generator.core.exceptions import DecodeFailureError, MetadataNotFoundError
from manifest_generator.core.models import AppMetadata
from manifest_generator.inspector import (
    INFO_PLIST_PATTERN,
    ArchiveInspector,
    DecodeStrategy,
    decode_plist,
)

from conftest import SAMPLE_INFO, binary_plist, xml_plist


class TestPattern:
    """Tests for the Info.plist entry pattern."""

    @pytest.mark.parametrize(
        "name",
        [
            "Payload/Sample.app/Info.plist",
            "Payload/My App.app/Info.plist",
            "Payload/.app/Info.plist",
        ],
    )
    def test_matches(self, name: str) -> None:
        assert INFO_PLIST_PATTERN.fullmatch(name)

    @pytest.mark.parametrize(
        "name",
        [
            "Payload/Sample.app/Frameworks/X.framework/Info.plist",
            "Payload/Sample.app/PlugIns/Ext.appex/Info.plist",
            "Payload/Nested/Sample.app/Info.plist",
            "Other/Payload/Sample.app/Info.plist",
            "Payload/Sample.app/Info.plist.bak",
            "Payload/Sampleapp/Info.plist",
        ],
    )
    def test_rejects(self, name: str) -> None:
        """Only the whole path counts, not a substring."""
        assert INFO_PLIST_PATTERN.fullmatch(name) is None


class TestDecodePlist:
    """Tests for the two-step decoding strategy."""

    def test_binary_uses_binary_strategy(self) -> None:
        data, strategy = decode_plist(binary_plist(SAMPLE_INFO))
        assert strategy is DecodeStrategy.BINARY_FIRST
        assert data["CFBundleIdentifier"] == "com.example.sample"

    def test_xml_falls_back_to_text(self) -> None:
        data, strategy = decode_plist(xml_plist(SAMPLE_INFO))
        assert strategy is DecodeStrategy.TEXT_FALLBACK
        assert data["CFBundleIdentifier"] == "com.example.sample"

    def test_binary_and_xml_agree(self) -> None:
        """Both encodings of the same document decode to the same mapping."""
        binary, _ = decode_plist(binary_plist(SAMPLE_INFO))
        xml, _ = decode_plist(xml_plist(SAMPLE_INFO))
        assert binary == xml
        assert AppMetadata.from_properties(binary) == AppMetadata.from_properties(xml)

    def test_garbage_fails(self) -> None:
        with pytest.raises(DecodeFailureError) as exc_info:
            decode_plist(b"definitely not a plist")
        assert len(exc_info.value.attempts) == 2

    def test_non_dict_root_fails(self) -> None:
        """A plist whose root is an array is not usable metadata."""
        import plistlib

        with pytest.raises(DecodeFailureError):
            decode_plist(plistlib.dumps(["a", "b"], fmt=plistlib.FMT_XML))


class TestArchiveInspector:
    """Tests for ArchiveInspector."""

    def test_extract_binary_metadata(self, sample_ipa: Path) -> None:
        metadata = ArchiveInspector().extract_metadata(sample_ipa)
        assert metadata == AppMetadata(
            display_name="Sample App",
            bundle_id="com.example.sample",
            version="1.2.3",
        )

    def test_extract_xml_metadata(self, make_archive: Callable[..., Path]) -> None:
        archive = make_archive({"Payload/Sample.app/Info.plist": xml_plist(SAMPLE_INFO)})
        metadata = ArchiveInspector().extract_metadata(archive)
        assert metadata.bundle_id == "com.example.sample"
        assert metadata.version == "1.2.3"

    def test_missing_fields_not_rejected(self, make_archive: Callable[..., Path]) -> None:
        archive = make_archive({"Payload/Bare.app/Info.plist": binary_plist({"CFBundleName": "Bare"})})
        metadata = ArchiveInspector().extract_metadata(archive)
        assert metadata.display_name == "Bare"
        assert metadata.bundle_id is None
        assert metadata.version is None

    def test_no_matching_entry(self, make_archive: Callable[..., Path]) -> None:
        archive = make_archive(
            {
                "Payload/Sample.app/Frameworks/Lib.framework/Info.plist": binary_plist(SAMPLE_INFO),
                "README.txt": b"hello",
            }
        )
        with pytest.raises(MetadataNotFoundError):
            ArchiveInspector().extract_metadata(archive)

    def test_first_match_in_listing_order(self, make_archive: Callable[..., Path]) -> None:
        """With several bundles, the first listed entry is used."""
        archive = make_archive(
            {
                "Payload/First.app/Info.plist": binary_plist({"CFBundleName": "First"}),
                "Payload/Second.app/Info.plist": binary_plist({"CFBundleName": "Second"}),
            }
        )
        inspector = ArchiveInspector()
        assert inspector.find_metadata_entry(archive) == "Payload/First.app/Info.plist"
        assert inspector.extract_metadata(archive).display_name == "First"

    def test_not_a_zip(self, temp_dir: Path) -> None:
        path = temp_dir / "broken.ipa"
        path.write_bytes(b"this is not a zip file")
        with pytest.raises(MetadataNotFoundError):
            ArchiveInspector().extract_metadata(path)

    def test_undecodable_entry(self, make_archive: Callable[..., Path]) -> None:
        archive = make_archive({"Payload/Sample.app/Info.plist": b"\x00\x01garbage"})
        with pytest.raises(DecodeFailureError):
            ArchiveInspector().extract_metadata(archive)

    def test_scratch_file_removed_on_success(self, sample_ipa: Path, temp_dir: Path) -> None:
        scratch_dir = temp_dir / "scratch"
        scratch_dir.mkdir()
        ArchiveInspector(scratch_dir=scratch_dir).extract_metadata(sample_ipa)
        assert list(scratch_dir.iterdir()) == []

    def test_scratch_file_removed_on_failure(
        self, make_archive: Callable[..., Path], temp_dir: Path
    ) -> None:
        archive = make_archive({"Payload/Sample.app/Info.plist": b"garbage"})
        scratch_dir = temp_dir / "scratch"
        scratch_dir.mkdir()
        with pytest.raises(DecodeFailureError):
            ArchiveInspector(scratch_dir=scratch_dir).extract_metadata(archive)
        assert list(scratch_dir.iterdir()) == []

    def test_read_properties_returns_everything(self, sample_ipa: Path) -> None:
        properties, strategy = ArchiveInspector().read_properties(sample_ipa)
        assert properties == SAMPLE_INFO
        assert strategy is DecodeStrategy.BINARY_FIRST
