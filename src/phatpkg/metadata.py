"""Reads identity, version and architecture from an application bundle."""

from pathlib import Path
import plistlib
from typing import Any
from xml.parsers.expat import ExpatError

from .exceptions import ManifestUnreadableError
from .logbook import LogBook
from .models import (
    APP_BUNDLE_SUFFIX,
    EXECUTABLE_DIR_RELATIVE_PATH,
    INFO_PLIST_RELATIVE_PATH,
    Architecture,
    BundleMetadata,
)
from .tools import ToolPaths, ToolRunner

SOURCE = "MetadataExtractor"


def classify_architectures(inspector_output: str) -> Architecture:
    has_arm = Architecture.ARM64.value in inspector_output
    has_intel = Architecture.X86_64.value in inspector_output
    if has_arm and has_intel:
        return Architecture.UNIVERSAL
    if has_arm:
        return Architecture.ARM64
    if has_intel:
        return Architecture.X86_64
    return Architecture.UNKNOWN


def read_info_plist(bundle_path: Path) -> dict[str, Any]:
    plist_path = bundle_path / INFO_PLIST_RELATIVE_PATH
    try:
        with plist_path.open("rb") as f:
            info = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException, ExpatError, ValueError) as e:
        raise ManifestUnreadableError(
            f"Could not read Info.plist at {plist_path}: {e}"
        ) from e
    if not isinstance(info, dict):
        raise ManifestUnreadableError(f"Info.plist at {plist_path} is not a dictionary")
    return info


def display_name_for(bundle_path: Path, metadata: BundleMetadata) -> str:
    """CFBundleName when the manifest declares one, else the bundle's file stem."""
    if metadata.bundle_name and metadata.bundle_name.strip():
        return metadata.bundle_name
    name = bundle_path.name
    if name.lower().endswith(APP_BUNDLE_SUFFIX):
        name = name[: -len(APP_BUNDLE_SUFFIX)]
    return name


class MetadataExtractor:
    def __init__(
        self, runner: ToolRunner, logbook: LogBook, tools: ToolPaths | None = None
    ) -> None:
        self.runner = runner
        self.logbook = logbook
        self.tools = tools or ToolPaths()

    def extract(self, bundle_path: Path) -> BundleMetadata:
        self.logbook.debug("Reading Info.plist...", source=SOURCE)
        info = read_info_plist(bundle_path)

        identifier = info.get("CFBundleIdentifier")
        if not isinstance(identifier, str):
            raise ManifestUnreadableError("Could not retrieve app bundle identifier")
        version = info.get("CFBundleShortVersionString")
        if not isinstance(version, str):
            raise ManifestUnreadableError(
                "Failed to read CFBundleShortVersionString from Info.plist"
            )
        bundle_name = info.get("CFBundleName")

        self.logbook.debug("Getting app architecture...", source=SOURCE)
        architecture = self.inspect_architecture(bundle_path, info)
        return BundleMetadata(
            identifier=identifier,
            version=version,
            architecture=architecture,
            bundle_name=bundle_name if isinstance(bundle_name, str) else None,
        )

    def inspect_architecture(
        self, bundle_path: Path, info: dict[str, Any] | None = None
    ) -> Architecture:
        if info is None:
            try:
                info = read_info_plist(bundle_path)
            except ManifestUnreadableError as e:
                self.logbook.error(str(e), source=SOURCE)
                return Architecture.UNKNOWN

        executable_name = info.get("CFBundleExecutable")
        if not isinstance(executable_name, str) or not executable_name:
            self.logbook.error(
                "Unable to read Info.plist or CFBundleExecutable key.", source=SOURCE
            )
            return Architecture.UNKNOWN

        executable_path = bundle_path / EXECUTABLE_DIR_RELATIVE_PATH / executable_name
        if not executable_path.is_file():
            self.logbook.error(
                f"Main executable not found at {executable_path}", source=SOURCE
            )
            return Architecture.UNKNOWN

        # -b omits the file name, which may itself contain an architecture name.
        result = self.runner.run([self.tools.file, "-b", executable_path])
        if not result.ok:
            self.logbook.error(
                f"Failed to inspect {executable_path}: {result.output.strip()}",
                source=SOURCE,
            )
            return Architecture.UNKNOWN

        architecture = classify_architectures(result.output)
        self.logbook.debug(f"Detected architecture: {architecture}", source=SOURCE)
        return architecture
