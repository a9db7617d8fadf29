"""Builds the dual-payload installer with pkgbuild and productbuild."""

import os
from pathlib import Path
import plistlib
import shutil
import tempfile
from xml.parsers.expat import ExpatError

from attrs import define
import jinja2

from ..exceptions import PackageCreationFailedError
from ..logbook import LogBook
from ..models import (
    ARM_CPU_VENDOR_MARKER,
    INSTALL_LOCATION,
    PackageResult,
    ResolvedBundle,
    package_file_name,
)
from ..tools import ToolPaths, ToolRunner
from .scratch import copy_bundle, remove_tree

SOURCE = "PackageSynthesizer"

_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
DISTRIBUTION_TEMPLATE = "distribution.xml.j2"
HOST_ARCHITECTURES = "x86_64,arm64"
IS_ARM_PREDICATE = "is_arm()"
NOT_ARM_PREDICATE = "! is_arm()"
DEFAULT_FALLBACK_DIR = Path.home() / "Desktop"


@define(frozen=True, slots=True)
class DistributionChoice:
    id: str
    title: str
    predicate: str
    version: str
    package: str


def _get_template_env() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(_TEMPLATE_DIR),
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=True,
        keep_trailing_newline=True,
    )


def component_package_name(bundle: ResolvedBundle) -> str:
    return f"component-{bundle.slot.choice_suffix}.pkg"


def choice_id(bundle: ResolvedBundle) -> str:
    return f"{bundle.identifier}-{bundle.slot.choice_suffix}"


def render_distribution(
    arm_bundle: ResolvedBundle,
    intel_bundle: ResolvedBundle,
    cpu_vendor_marker: str = ARM_CPU_VENDOR_MARKER,
) -> str:
    """
    Renders the distribution manifest. The `is_arm()` script predicate enables
    and selects the ARM payload; its negation does the same for Intel, so the
    installer picks exactly one payload on any host.
    """
    choices = [
        DistributionChoice(
            id=choice_id(bundle),
            title=f"{bundle.display_name} {bundle.slot.choice_label}",
            predicate=predicate,
            version=bundle.version,
            package=component_package_name(bundle),
        )
        for bundle, predicate in (
            (arm_bundle, IS_ARM_PREDICATE),
            (intel_bundle, NOT_ARM_PREDICATE),
        )
    ]
    template = _get_template_env().get_template(DISTRIBUTION_TEMPLATE)
    return template.render(
        title=f"{arm_bundle.display_name}-{arm_bundle.version}",
        choices=choices,
        host_architectures=HOST_ARCHITECTURES,
        cpu_vendor_marker=cpu_vendor_marker,
    )


def make_non_relocatable(component_plist: Path) -> None:
    """Pins every bundle in a component plist to its install location."""
    try:
        with component_plist.open("rb") as f:
            components = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException, ExpatError, ValueError) as e:
        raise PackageCreationFailedError(
            f"Unable to read component plist {component_plist}: {e}"
        ) from e
    if not isinstance(components, list):
        raise PackageCreationFailedError(
            f"Component plist {component_plist} is not an array"
        )

    for component in components:
        if isinstance(component, dict):
            component["BundleIsRelocatable"] = False

    try:
        with component_plist.open("wb") as f:
            plistlib.dump(components, f)
    except OSError as e:
        raise PackageCreationFailedError(
            f"Unable to write component plist {component_plist}: {e}"
        ) from e


class PackageSynthesizer:
    def __init__(
        self,
        runner: ToolRunner,
        logbook: LogBook,
        tools: ToolPaths | None = None,
        fallback_dir: Path | None = None,
    ) -> None:
        self.runner = runner
        self.logbook = logbook
        self.tools = tools or ToolPaths()
        self.fallback_dir = fallback_dir or DEFAULT_FALLBACK_DIR

    def synthesize(
        self,
        arm_bundle: ResolvedBundle,
        intel_bundle: ResolvedBundle,
        output_dir: Path,
        work_root: Path | None = None,
    ) -> PackageResult:
        synthesis_dir = Path(
            tempfile.mkdtemp(
                prefix="synthesis-", dir=str(work_root) if work_root else None
            )
        )
        try:
            return self._synthesize_in(synthesis_dir, arm_bundle, intel_bundle, output_dir)
        finally:
            remove_tree(synthesis_dir, self.logbook, SOURCE, "PKG temp directory")

    def _synthesize_in(
        self,
        synthesis_dir: Path,
        arm_bundle: ResolvedBundle,
        intel_bundle: ResolvedBundle,
        output_dir: Path,
    ) -> PackageResult:
        for bundle in (arm_bundle, intel_bundle):
            self.build_component(bundle, synthesis_dir)

        distribution_path = synthesis_dir / "distribution.xml"
        try:
            distribution_path.write_text(
                render_distribution(arm_bundle, intel_bundle), encoding="utf-8"
            )
        except (OSError, jinja2.TemplateError) as e:
            raise PackageCreationFailedError(
                f"Failed to write distribution.xml: {e}"
            ) from e

        final_path = self.resolve_output_path(
            output_dir, arm_bundle.display_name, arm_bundle.version
        )
        staged_path = synthesis_dir / "product" / final_path.name
        staged_path.parent.mkdir(parents=True, exist_ok=True)

        result = self.runner.run(
            [
                self.tools.productbuild,
                "--distribution", distribution_path,
                "--package-path", synthesis_dir,
                staged_path,
            ]
        )
        if not result.ok or not staged_path.is_file():
            self.logbook.error("Universal package creation failed.", source=SOURCE)
            raise PackageCreationFailedError(
                f"productbuild failed with exit code {result.returncode}: "
                f"{result.output.strip() or 'no package was produced'}"
            )

        try:
            if final_path.exists():
                final_path.unlink()
            shutil.move(str(staged_path), str(final_path))
        except OSError as e:
            raise PackageCreationFailedError(
                f"Could not move package to {final_path}: {e}"
            ) from e

        self.logbook.info(f"Package written to {final_path}", source=SOURCE)
        return PackageResult(
            package_path=final_path,
            app_name=arm_bundle.display_name,
            identifier=arm_bundle.identifier,
            version=arm_bundle.version,
        )

    def build_component(self, bundle: ResolvedBundle, synthesis_dir: Path) -> Path:
        """Analyzes, pins and builds the component package for one bundle."""
        suffix = bundle.slot.choice_suffix
        root = synthesis_dir / f"root_{suffix}"
        try:
            copy_bundle(bundle.bundle_path, root / INSTALL_LOCATION / bundle.file_name)
        except OSError as e:
            raise PackageCreationFailedError(
                f"Error copying {bundle.file_name} into the {suffix} root: {e}"
            ) from e

        component_plist = synthesis_dir / f"component_{suffix}.plist"
        self.runner.check(
            [self.tools.pkgbuild, "--analyze", "--root", root, component_plist],
            PackageCreationFailedError,
            f"Failed to analyze the {suffix} component",
        )
        make_non_relocatable(component_plist)

        component_pkg = synthesis_dir / component_package_name(bundle)
        self.runner.check(
            [
                self.tools.pkgbuild,
                "--root", root,
                "--identifier", bundle.identifier,
                "--version", bundle.version,
                "--component-plist", component_plist,
                component_pkg,
            ],
            PackageCreationFailedError,
            f"Failed to build the {suffix} component package",
        )
        self.logbook.debug(f"Built component package {component_pkg.name}", source=SOURCE)
        return component_pkg

    def resolve_output_path(self, output_dir: Path, app_name: str, version: str) -> Path:
        file_name = package_file_name(app_name, version)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logbook.debug(f"Could not create {output_dir}: {e}", source=SOURCE)

        if output_dir.is_dir() and os.access(output_dir, os.W_OK | os.X_OK):
            return output_dir / file_name

        self.logbook.warning(
            f"Cannot write to specified output directory {output_dir}. "
            f"Using {self.fallback_dir} instead.",
            source=SOURCE,
        )
        try:
            self.fallback_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PackageCreationFailedError(
                f"Neither {output_dir} nor {self.fallback_dir} is writable: {e}"
            ) from e
        return self.fallback_dir / file_name
