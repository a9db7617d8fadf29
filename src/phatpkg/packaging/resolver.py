"""
Turns an input descriptor (local path or http(s) URL) into an application
bundle on disk, by downloading, expanding archives or mounting disk images.
"""

from collections.abc import Iterator
from contextlib import contextmanager
import enum
from pathlib import Path, PurePosixPath
import shutil
from urllib.parse import unquote, urlsplit

from attrs import define, field
import requests

from ..exceptions import (
    BundleNotFoundError,
    DownloadFailedError,
    ExtractionFailedError,
    InvalidURLError,
    UnsupportedInputTypeError,
)
from ..logbook import LogBook
from ..models import APP_BUNDLE_SUFFIX
from ..tools import ToolPaths, ToolRunner
from .scratch import copy_bundle

SOURCE = "ArchiveResolver"
URL_SCHEMES = ("http://", "https://")
DEFAULT_DOWNLOAD_NAME = "download"
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class InputKind(enum.Enum):
    ZIP = "zip"
    TAR_BZ2 = "tar.bz2"
    BZ2 = "bz2"
    DISK_IMAGE = "dmg"
    APP_BUNDLE = "app"


def is_url(descriptor: str) -> bool:
    return descriptor.strip().lower().startswith(URL_SCHEMES)


def classify_input(name: str) -> InputKind | None:
    lowered = name.lower()
    if lowered.endswith((".tbz", ".tar.bz2")):
        return InputKind.TAR_BZ2
    if lowered.endswith(".bz2"):
        return InputKind.BZ2
    if lowered.endswith(".zip"):
        return InputKind.ZIP
    if lowered.endswith(".dmg"):
        return InputKind.DISK_IMAGE
    if lowered.endswith(APP_BUNDLE_SUFFIX):
        return InputKind.APP_BUNDLE
    return None


def local_file_name(url_path: str) -> str:
    """File name for a download, taken from the last segment of the URL path."""
    segment = unquote(PurePosixPath(url_path).name).replace("/", "_")
    if segment not in ("", ".", ".."):
        return segment
    return DEFAULT_DOWNLOAD_NAME + PurePosixPath(url_path).suffix


def parse_mount_point(attach_output: str) -> str:
    """Mount point from `hdiutil attach` output: last field of the last line."""
    lines = [line for line in attach_output.splitlines() if line.strip()]
    if not lines:
        raise ExtractionFailedError("Could not determine mount path")
    fields = lines[-1].split("\t")
    if len(fields) == 1:
        fields = lines[-1].split()
    mount_point = fields[-1].strip() if fields else ""
    if not mount_point.startswith("/"):
        raise ExtractionFailedError("Could not determine mount path")
    return mount_point


def parse_device(attach_output: str) -> str | None:
    for line in attach_output.splitlines():
        for token in line.split():
            if token.startswith("/dev/"):
                return token
    return None


def find_app_bundle(directory: Path, context: str = "extracted contents") -> Path:
    """First top-level entry whose name ends in `.app`."""
    try:
        names = sorted(entry.name for entry in directory.iterdir())
    except OSError as e:
        raise ExtractionFailedError(f"Could not list {directory}: {e}") from e
    for name in names:
        if name.endswith(APP_BUNDLE_SUFFIX):
            return directory / name
    raise BundleNotFoundError(f".app file not found in {context}")


@define
class MountedImage:
    image_path: Path
    mount_point: Path
    detached: bool = field(default=False)


class ArchiveResolver:
    def __init__(
        self,
        runner: ToolRunner,
        logbook: LogBook,
        tools: ToolPaths | None = None,
        download_timeout: float | None = 60.0,
    ) -> None:
        self.runner = runner
        self.logbook = logbook
        self.tools = tools or ToolPaths()
        self.download_timeout = download_timeout
        self._attached: list[MountedImage] = []

    def resolve(self, descriptor: str, work_dir: Path) -> Path:
        """Resolves `descriptor` to a bundle path, using `work_dir` for scratch."""
        descriptor = descriptor.strip()
        self.logbook.debug(f"Resolving input: {descriptor}", source=SOURCE)
        if is_url(descriptor):
            source_path = self.download(descriptor, work_dir / "download")
        else:
            source_path = Path(descriptor).expanduser()

        kind = classify_input(source_path.name)
        if kind is None:
            raise UnsupportedInputTypeError(f"Unsupported input type: {source_path}")

        if kind is InputKind.APP_BUNDLE:
            if not source_path.is_dir():
                raise BundleNotFoundError(f"Application bundle not found: {source_path}")
            self.logbook.info(f"Using .app directly: {source_path}", source=SOURCE)
            return source_path

        if not source_path.is_file():
            raise ExtractionFailedError(f"Input file not found: {source_path}")

        destination = work_dir / "extract"
        destination.mkdir(parents=True, exist_ok=True)
        self.logbook.info(f"Extracting archive: {source_path}", source=SOURCE)
        if kind is InputKind.DISK_IMAGE:
            return self.extract_from_disk_image(
                source_path, destination, work_dir / "volumes"
            )
        return self.extract_archive(source_path, kind, destination)

    def download(self, url: str, download_dir: Path) -> Path:
        url = url.strip()
        parts = urlsplit(url)
        if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
            raise InvalidURLError(f"Invalid URL: {url}")

        download_dir.mkdir(parents=True, exist_ok=True)
        local_path = download_dir / local_file_name(parts.path)
        self.logbook.info(f"Downloading from: {url}", source=SOURCE)
        try:
            with requests.get(url, stream=True, timeout=self.download_timeout) as response:
                response.raise_for_status()
                with local_path.open("wb") as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except (requests.RequestException, OSError) as e:
            try:
                local_path.unlink(missing_ok=True)
            except OSError as cleanup_error:
                self.logbook.warning(
                    f"Failed to remove partial download {local_path}: {cleanup_error}",
                    source=SOURCE,
                )
            raise DownloadFailedError(f"Failed to download from {url}: {e}") from e

        self.logbook.info(f"Downloaded to: {local_path}", source=SOURCE)
        return local_path

    def extract_archive(
        self, archive_path: Path, kind: InputKind, destination: Path
    ) -> Path:
        if kind is InputKind.ZIP:
            self.logbook.info("Extracting ZIP file...", source=SOURCE)
            self.runner.check(
                [self.tools.ditto, "-x", "-k", archive_path, destination],
                ExtractionFailedError,
                "Failed to extract ZIP file",
            )
        elif kind is InputKind.TAR_BZ2:
            self.logbook.info("Extracting TAR.BZ2 file...", source=SOURCE)
            self.runner.check(
                [self.tools.tar, "-xjf", archive_path, "-C", destination],
                ExtractionFailedError,
                "Failed to extract TAR.BZ2 file",
            )
        elif kind is InputKind.BZ2:
            self.logbook.info("Extracting BZ2 file...", source=SOURCE)
            compressed_copy = destination / archive_path.name
            try:
                shutil.copy2(archive_path, compressed_copy)
            except OSError as e:
                raise ExtractionFailedError(
                    f"Could not copy {archive_path} for decompression: {e}"
                ) from e
            self.runner.check(
                [self.tools.bunzip2, compressed_copy],
                ExtractionFailedError,
                "Failed to decompress BZ2 file",
            )
        else:
            raise UnsupportedInputTypeError(
                f"Unsupported archive type: {archive_path.suffix.lstrip('.')}"
            )

        return find_app_bundle(destination)

    @contextmanager
    def mount_disk_image(self, image_path: Path, mount_root: Path) -> Iterator[MountedImage]:
        """Attaches a disk image read-only; detaches it when the block exits."""
        mount_root.mkdir(parents=True, exist_ok=True)
        result = self.runner.run(
            [
                self.tools.hdiutil, "attach", image_path,
                "-readonly", "-nobrowse", "-noautoopen",
                "-mountroot", mount_root,
            ]
        )
        if not result.ok:
            raise ExtractionFailedError(
                f"Failed to mount DMG file: {result.output.strip()}"
            )

        try:
            mount_point = parse_mount_point(result.output)
        except ExtractionFailedError:
            device = parse_device(result.output)
            if device:
                self._detach_target(device)
            raise

        mounted = MountedImage(image_path=image_path, mount_point=Path(mount_point))
        self._attached.append(mounted)
        self.logbook.debug(f"Mounted {image_path} at {mount_point}", source=SOURCE)
        try:
            yield mounted
        finally:
            self.detach(mounted)

    def extract_from_disk_image(
        self, image_path: Path, destination: Path, mount_root: Path
    ) -> Path:
        self.logbook.info("Mounting and extracting DMG file...", source=SOURCE)
        with self.mount_disk_image(image_path, mount_root) as mounted:
            bundle = find_app_bundle(mounted.mount_point, "DMG")
            destination_path = destination / bundle.name
            try:
                copy_bundle(bundle, destination_path)
            except OSError as e:
                raise ExtractionFailedError(
                    f"Could not copy {bundle.name} out of the DMG: {e}"
                ) from e
        return destination_path

    def detach(self, mounted: MountedImage, force: bool = False) -> bool:
        if mounted.detached:
            return True
        if self._detach_target(str(mounted.mount_point), force=force):
            mounted.detached = True
            self._attached.remove(mounted)
            return True
        return False

    def detach_remaining(self) -> None:
        for mounted in list(self._attached):
            self.detach(mounted, force=True)

    @property
    def attached_images(self) -> list[MountedImage]:
        return list(self._attached)

    def _detach_target(self, target: str, force: bool = False) -> bool:
        command = [self.tools.hdiutil, "detach", target, "-quiet"]
        if force:
            command.append("-force")
        result = self.runner.run(command)
        if not result.ok:
            self.logbook.warning(
                f"Failed to detach {target}: {result.output.strip()}", source=SOURCE
            )
            return False
        self.logbook.debug(f"Detached {target}", source=SOURCE)
        return True
