import enum
from pathlib import Path

from attrs import define, field

APP_BUNDLE_SUFFIX = ".app"
INFO_PLIST_RELATIVE_PATH = Path("Contents") / "Info.plist"
EXECUTABLE_DIR_RELATIVE_PATH = Path("Contents") / "MacOS"

# Substring of `machdep.cpu.brand_string` reported by Apple Silicon hosts.
ARM_CPU_VENDOR_MARKER = "Apple"
INSTALL_LOCATION = Path("Applications")
PACKAGE_SUFFIX = "-universal.pkg"


class Architecture(enum.Enum):
    ARM64 = "arm64"
    X86_64 = "x86_64"
    UNIVERSAL = "universal"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


@define(frozen=True, slots=True)
class ArchitectureSlot:
    """A fixed architecture role that one of the two inputs must fill."""

    label: str
    expected: Architecture
    workdir_name: str
    choice_suffix: str
    choice_label: str


ARM64_SLOT = ArchitectureSlot(
    label="ARM64",
    expected=Architecture.ARM64,
    workdir_name="arm64",
    choice_suffix="arm",
    choice_label="ARM",
)
X86_64_SLOT = ArchitectureSlot(
    label="Intel x86",
    expected=Architecture.X86_64,
    workdir_name="x86_64",
    choice_suffix="x86",
    choice_label="x86",
)
# Processing order: the ARM64 input first, then the Intel input.
SLOTS = (ARM64_SLOT, X86_64_SLOT)


@define(frozen=True, slots=True)
class BundleMetadata:
    identifier: str
    version: str
    architecture: Architecture
    bundle_name: str | None = field(default=None)


@define(frozen=True, slots=True)
class ResolvedBundle:
    bundle_path: Path
    display_name: str
    identifier: str
    version: str
    architecture: Architecture
    slot: ArchitectureSlot

    @property
    def file_name(self) -> str:
        return self.bundle_path.name


@define(frozen=True, slots=True)
class PackageResult:
    package_path: Path
    app_name: str
    identifier: str
    version: str


def package_file_name(app_name: str, version: str) -> str:
    return f"{app_name}-{version}{PACKAGE_SUFFIX}"
