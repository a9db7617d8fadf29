"""Pytest fixtures for the entire phatpkg test suite."""

from collections.abc import Callable, Iterator
from pathlib import Path
import plistlib
from typing import Any

import pytest

from phatpkg.logbook import LogBook
from phatpkg.tools import ToolResult, ToolRunner

ARM_BINARY = "Mach-O 64-bit executable arm64"
INTEL_BINARY = "Mach-O 64-bit executable x86_64"
UNIVERSAL_BINARY = (
    "Mach-O universal binary with 2 architectures: "
    "[x86_64:Mach-O 64-bit executable x86_64] [arm64]"
)

Populate = Callable[[Path], None]


def write_app_bundle(
    parent: Path,
    name: str = "Foo",
    identifier: str | None = "com.acme.foo",
    version: str | None = "2.0",
    binary: str | None = ARM_BINARY,
    bundle_name: str | None = None,
    executable: str | None = None,
) -> Path:
    """Writes a minimal .app bundle whose main executable holds `binary` as text."""
    bundle = parent / f"{name}.app"
    contents = bundle / "Contents"
    (contents / "MacOS").mkdir(parents=True)
    executable = executable or name
    info: dict[str, Any] = {"CFBundleExecutable": executable}
    if identifier is not None:
        info["CFBundleIdentifier"] = identifier
    if version is not None:
        info["CFBundleShortVersionString"] = version
    if bundle_name is not None:
        info["CFBundleName"] = bundle_name
    with (contents / "Info.plist").open("wb") as f:
        plistlib.dump(info, f)
    if binary is not None:
        (contents / "MacOS" / executable).write_text(binary)
    return bundle


class FakeToolRunner(ToolRunner):
    """
    Emulates ditto, tar, bunzip2, hdiutil, file, pkgbuild and productbuild by
    manipulating the filesystem, and records every invocation.
    """

    def __init__(self, logbook: LogBook) -> None:
        super().__init__(logbook)
        self.calls: list[tuple[str, ...]] = []
        self.archives: dict[str, Populate] = {}
        self.images: dict[str, Populate] = {}
        self.failures: dict[str, int] = {}
        self.attach_output: str | None = None
        self.fail_detach = False
        self.mounted: set[str] = set()
        self.detached: list[str] = []

    def fail(self, key: str, returncode: int = 1) -> None:
        """Makes a tool fail. `key` is a tool name, or e.g. 'pkgbuild --analyze'."""
        self.failures[key] = returncode

    def calls_to(self, tool: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if Path(call[0]).name == tool]

    def run(self, command: list[str | Path]) -> ToolResult:
        argv = tuple(str(part) for part in command)
        self.calls.append(argv)
        tool = Path(argv[0]).name
        for key in (f"{tool} {argv[1]}" if len(argv) > 1 else tool, tool):
            if key in self.failures:
                return ToolResult(argv, self.failures[key], f"{tool}: injected failure")
        handler = getattr(self, f"_{tool}")
        return handler(argv)

    def _lookup(self, archive: str) -> Populate | None:
        """Archives are keyed by full path, or by file name for downloads."""
        return self.archives.get(archive) or self.archives.get(Path(archive).name)

    def _ditto(self, argv: tuple[str, ...]) -> ToolResult:
        archive, destination = argv[-2], Path(argv[-1])
        populate = self._lookup(archive)
        if populate is None:
            return ToolResult(argv, 1, f"ditto: Couldn't read archive {archive}")
        populate(destination)
        return ToolResult(argv, 0, "")

    def _tar(self, argv: tuple[str, ...]) -> ToolResult:
        archive, destination = argv[2], Path(argv[4])
        populate = self._lookup(archive)
        if populate is None:
            return ToolResult(argv, 1, f"tar: Error opening archive: {archive}")
        populate(destination)
        return ToolResult(argv, 0, "")

    def _bunzip2(self, argv: tuple[str, ...]) -> ToolResult:
        compressed = Path(argv[1])
        populate = self.archives.get(compressed.name)
        if populate is None:
            return ToolResult(argv, 2, "bunzip2: not a bzip2 file")
        populate(compressed.parent)
        compressed.unlink()
        return ToolResult(argv, 0, "")

    def _hdiutil(self, argv: tuple[str, ...]) -> ToolResult:
        if argv[1] == "attach":
            image = argv[2]
            mount_root = Path(argv[argv.index("-mountroot") + 1])
            if image not in self.images:
                return ToolResult(argv, 1, "hdiutil: attach failed - image not recognized")
            mount_point = mount_root / "Foo Volume"
            mount_point.mkdir(parents=True)
            self.images[image](mount_point)
            self.mounted.add(str(mount_point))
            output = self.attach_output
            if output is None:
                output = (
                    "/dev/disk4          \tGUID_partition_scheme          \t\n"
                    f"/dev/disk4s1        \tApple_HFS                      \t{mount_point}\n"
                )
            return ToolResult(argv, 0, output)

        target = argv[2]
        self.detached.append(target)
        if self.fail_detach:
            return ToolResult(argv, 16, f"hdiutil: couldn't unmount {target} - Resource busy")
        self.mounted.discard(target)
        return ToolResult(argv, 0, "")

    def _file(self, argv: tuple[str, ...]) -> ToolResult:
        executable = Path(argv[-1])
        if not executable.is_file():
            return ToolResult(argv, 1, f"{executable}: cannot open")
        return ToolResult(argv, 0, executable.read_text() + "\n")

    def _pkgbuild(self, argv: tuple[str, ...]) -> ToolResult:
        output = Path(argv[-1])
        if argv[1] == "--analyze":
            root = Path(argv[3])
            components = [
                {
                    "BundleIsRelocatable": True,
                    "BundleIsVersionChecked": True,
                    "RootRelativeBundlePath": str(app.relative_to(root)),
                }
                for app in sorted((root / "Applications").glob("*.app"))
            ]
            with output.open("wb") as f:
                plistlib.dump(components, f)
        else:
            output.write_bytes(b"xar!component")
        return ToolResult(argv, 0, f"pkgbuild: Wrote package to {output}")

    def _productbuild(self, argv: tuple[str, ...]) -> ToolResult:
        output = Path(argv[-1])
        output.write_bytes(b"xar!product")
        return ToolResult(argv, 0, f"productbuild: Wrote product to {output}")



class FakeResponse:
    """Minimal streaming stand-in for a `requests` response."""

    def __init__(self, chunks: list[bytes], error: Exception | None = None) -> None:
        self.chunks = chunks
        self.error = error

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        pass

    def raise_for_status(self) -> None:
        pass

    def iter_content(self, chunk_size: int) -> Iterator[bytes]:
        yield from self.chunks
        if self.error is not None:
            raise self.error


@pytest.fixture
def logbook() -> LogBook:
    """A log book that keeps entries in memory only."""
    return LogBook(sink=None)


@pytest.fixture
def fake_runner(logbook: LogBook) -> FakeToolRunner:
    return FakeToolRunner(logbook)


@pytest.fixture
def make_app_bundle() -> Callable[..., Path]:
    """A factory fixture that writes an application bundle into a directory."""
    return write_app_bundle


@pytest.fixture
def register_archive(
    tmp_path: Path, fake_runner: FakeToolRunner
) -> Callable[..., Path]:
    """
    A factory fixture that creates a placeholder archive file under
    `tmp_path/inputs` and teaches the fake runner what it expands to.
    """
    inputs_dir = tmp_path / "inputs"

    def _register(file_name: str, **bundle_kwargs: Any) -> Path:
        inputs_dir.mkdir(exist_ok=True)
        archive = inputs_dir / file_name
        archive.write_bytes(b"placeholder")

        def populate(destination: Path) -> None:
            write_app_bundle(destination, **bundle_kwargs)

        if file_name.lower().endswith(".dmg"):
            fake_runner.images[str(archive)] = populate
        elif file_name.lower().endswith(".bz2") and not file_name.lower().endswith(
            ".tar.bz2"
        ):
            fake_runner.archives[file_name] = populate
        else:
            fake_runner.archives[str(archive)] = populate
        return archive

    return _register


@pytest.fixture
def work_base(tmp_path: Path) -> Path:
    """Parent directory for working areas, so tests can assert it ends up empty."""
    path = tmp_path / "work"
    path.mkdir()
    return path
