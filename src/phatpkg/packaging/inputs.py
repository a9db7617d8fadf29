"""Per-slot input processing: resolve, inspect, copy into the working area."""

from pathlib import Path, PurePath

from ..exceptions import (
    ArchitectureMismatchError,
    ExtractionFailedError,
    InputTypeMismatchError,
    MissingInputError,
)
from ..logbook import LogBook
from ..metadata import MetadataExtractor, display_name_for
from ..models import (
    ARM64_SLOT,
    X86_64_SLOT,
    Architecture,
    ArchitectureSlot,
    ResolvedBundle,
)
from .resolver import ArchiveResolver, is_url
from .scratch import copy_bundle, remove_tree

SOURCE = "InputPipeline"


def validate_inputs(arm_input: str, intel_input: str, output_dir: str) -> None:
    """Checks the raw descriptors before any filesystem work happens."""
    if not arm_input or not arm_input.strip():
        raise MissingInputError(f"{ARM64_SLOT.label} source is required")
    if not intel_input or not intel_input.strip():
        raise MissingInputError(f"{X86_64_SLOT.label} source is required")
    if not output_dir or not output_dir.strip():
        raise MissingInputError("Output directory is required")

    if is_url(arm_input) or is_url(intel_input):
        return
    arm_suffix = PurePath(arm_input.strip()).suffix
    intel_suffix = PurePath(intel_input.strip()).suffix
    if arm_suffix != intel_suffix:
        raise InputTypeMismatchError(
            f"File types must match for local files "
            f"({arm_suffix or 'none'} vs {intel_suffix or 'none'})"
        )


class InputPipeline:
    def __init__(
        self,
        resolver: ArchiveResolver,
        extractor: MetadataExtractor,
        logbook: LogBook,
    ) -> None:
        self.resolver = resolver
        self.extractor = extractor
        self.logbook = logbook

    def process(
        self,
        descriptor: str,
        slot: ArchitectureSlot,
        destination_dir: Path,
        scratch_dir: Path,
    ) -> ResolvedBundle:
        """
        Resolves one input and copies its bundle into `destination_dir`.
        `scratch_dir` holds downloads and extraction output and is removed
        before returning, whatever the outcome.
        """
        if not descriptor or not descriptor.strip():
            raise MissingInputError(f"{slot.label} source is required")

        self.logbook.debug(
            f"Starting input processing for {slot.label}: {descriptor}", source=SOURCE
        )
        try:
            bundle_path = self.resolver.resolve(descriptor, scratch_dir)
            self.logbook.debug(f"Extracted app path: {bundle_path}", source=SOURCE)

            metadata = self.extractor.extract(bundle_path)
            if metadata.architecture is Architecture.UNKNOWN:
                raise ArchitectureMismatchError(
                    f"Could not determine app architecture of {slot.label} input"
                )

            display_name = display_name_for(bundle_path, metadata)
            # Installed under its own file name; display_name only labels the package.
            copy_path = destination_dir / bundle_path.name
            try:
                copy_bundle(bundle_path, copy_path)
            except OSError as e:
                raise ExtractionFailedError(
                    f"Error copying {bundle_path.name} into the working area: {e}"
                ) from e
        finally:
            remove_tree(scratch_dir, self.logbook, SOURCE, "extraction temp directory")

        if metadata.architecture is not slot.expected:
            raise ArchitectureMismatchError(
                f"{slot.label} file does not contain {slot.expected} architecture. "
                f"Found: {metadata.architecture}"
            )

        self.logbook.info(
            f"{slot.label} source resolved: {display_name} {metadata.version} "
            f"({metadata.identifier}, {metadata.architecture})",
            source=SOURCE,
        )
        return ResolvedBundle(
            bundle_path=copy_path,
            display_name=display_name,
            identifier=metadata.identifier,
            version=metadata.version,
            architecture=metadata.architecture,
            slot=slot,
        )
