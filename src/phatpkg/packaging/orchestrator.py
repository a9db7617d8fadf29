"""Sequences the whole universal-package build for one pair of inputs."""

from collections.abc import Callable
import enum
from pathlib import Path

from ..config import PhatPkgConfig
from ..exceptions import BuildError
from ..logbook import LogBook
from ..metadata import MetadataExtractor
from ..models import SLOTS, ArchitectureSlot, PackageResult, ResolvedBundle
from ..tools import ToolRunner
from .inputs import InputPipeline, validate_inputs
from .resolver import ArchiveResolver
from .scratch import WorkingArea
from .synthesizer import PackageSynthesizer
from .validation import validate_pair

SOURCE = "BuildOrchestrator"

ProgressCallback = Callable[[str], None]


class Stage(enum.Enum):
    IDLE = "idle"
    VALIDATING_INPUTS = "validating-inputs"
    PROCESSING_FIRST = "processing-first"
    PROCESSING_SECOND = "processing-second"
    VALIDATING_PAIR = "validating-pair"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.DONE, Stage.FAILED)


SLOT_STAGES = (Stage.PROCESSING_FIRST, Stage.PROCESSING_SECOND)


class BuildOrchestrator:
    def __init__(
        self,
        arm_input: str,
        intel_input: str,
        output_dir: str,
        *,
        logbook: LogBook | None = None,
        runner: ToolRunner | None = None,
        progress: ProgressCallback | None = None,
        config: PhatPkgConfig | None = None,
        work_base_dir: Path | None = None,
    ) -> None:
        self.arm_input = arm_input
        self.intel_input = intel_input
        self.output_dir = output_dir
        self.config = config or PhatPkgConfig()
        self.logbook = logbook or LogBook()
        self.runner = runner or ToolRunner(self.logbook, timeout=self.config.tool_timeout)
        self.progress = progress
        self.work_base_dir = work_base_dir

        tools = self.config.tools
        self.resolver = ArchiveResolver(
            self.runner,
            self.logbook,
            tools=tools,
            download_timeout=self.config.download_timeout,
        )
        self.extractor = MetadataExtractor(self.runner, self.logbook, tools=tools)
        self.pipeline = InputPipeline(self.resolver, self.extractor, self.logbook)
        self.synthesizer = PackageSynthesizer(
            self.runner, self.logbook, tools=tools, fallback_dir=self.config.fallback_dir
        )

        self.stage = Stage.IDLE
        self.stage_history: list[Stage] = [Stage.IDLE]

    def _enter(self, stage: Stage, progress_message: str | None = None) -> None:
        self.logbook.debug(f"Stage {self.stage.value} -> {stage.value}", source=SOURCE)
        self.stage = stage
        self.stage_history.append(stage)
        if progress_message:
            self.logbook.info(progress_message, source=SOURCE)
            if self.progress is not None:
                self.progress(progress_message)

    def _fail(self, error: Exception) -> None:
        self._enter(Stage.FAILED)
        category = getattr(error, "category", type(error).__name__)
        self.logbook.error(f"{category}: {error}", source=SOURCE)

    def build_package(self) -> PackageResult:
        if self.stage is not Stage.IDLE:
            raise RuntimeError("BuildOrchestrator instances are single-use.")

        self._enter(Stage.VALIDATING_INPUTS)
        try:
            validate_inputs(self.arm_input, self.intel_input, self.output_dir)
        except BuildError as e:
            self._fail(e)
            raise

        output_dir = Path(self.output_dir.strip()).expanduser()
        area = WorkingArea(self.logbook, self.work_base_dir)
        try:
            arm_bundle, intel_bundle = (
                self._process_slot(area, descriptor, slot, stage)
                for descriptor, slot, stage in zip(
                    (self.arm_input, self.intel_input), SLOTS, SLOT_STAGES
                )
            )

            self._enter(Stage.VALIDATING_PAIR)
            validate_pair(arm_bundle, intel_bundle)

            self._enter(Stage.SYNTHESIZING, "Creating universal package...")
            result = self.synthesizer.synthesize(
                arm_bundle, intel_bundle, output_dir, work_root=area.root
            )

            self.logbook.info("Successfully created universal package:", source=SOURCE)
            self.logbook.info(f"Package: {result.package_path}", source=SOURCE)
            self.logbook.info(f"App: {result.app_name} v{result.version}", source=SOURCE)
            self.logbook.info(f"Bundle ID: {result.identifier}", source=SOURCE)
            self._enter(Stage.DONE, "Package created successfully")
            return result
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._teardown(area)

    def _process_slot(
        self,
        area: WorkingArea,
        descriptor: str,
        slot: ArchitectureSlot,
        stage: Stage,
    ) -> ResolvedBundle:
        self._enter(stage, f"Processing {slot.label} source...")
        return self.pipeline.process(
            descriptor, slot, area.slot_dir(slot), area.scratch_dir(slot)
        )

    def _teardown(self, area: WorkingArea) -> None:
        # Images must be detached before the tree holding their mount points goes.
        self.resolver.detach_remaining()
        area.cleanup()
