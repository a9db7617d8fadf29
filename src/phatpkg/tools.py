"""The single seam through which the pipeline launches external tools."""

from pathlib import Path
import subprocess

from attrs import define, field

from .exceptions import BuildError
from .logbook import LogBook

SOURCE = "ToolRunner"
LAUNCH_FAILURE_EXIT_CODE = 127
TIMEOUT_EXIT_CODE = -1


@define(frozen=True, slots=True)
class ToolPaths:
    """Locations of the macOS command-line tools the pipeline drives."""

    ditto: str = "/usr/bin/ditto"
    tar: str = "/usr/bin/tar"
    bunzip2: str = "/usr/bin/bunzip2"
    hdiutil: str = "/usr/bin/hdiutil"
    file: str = "/usr/bin/file"
    pkgbuild: str = "/usr/bin/pkgbuild"
    productbuild: str = "/usr/bin/productbuild"


@define(frozen=True, slots=True)
class ToolResult:
    command: tuple[str, ...]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@define
class ToolRunner:
    logbook: LogBook
    timeout: float | None = field(default=None)

    def run(self, command: list[str | Path]) -> ToolResult:
        """Runs a tool to completion, capturing stdout and stderr together."""
        argv = tuple(str(part) for part in command)
        self.logbook.debug(f"Running command: {' '.join(argv)}", source=SOURCE)
        try:
            completed = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            self.logbook.error(
                f"Command timed out after {self.timeout}s: {argv[0]}", source=SOURCE
            )
            return ToolResult(
                argv, TIMEOUT_EXIT_CODE, f"Timed out after {self.timeout} seconds"
            )
        except OSError as e:
            self.logbook.error(f"Error running command {argv[0]}: {e}", source=SOURCE)
            return ToolResult(argv, LAUNCH_FAILURE_EXIT_CODE, str(e))

        output = completed.stdout or ""
        if output.strip():
            self.logbook.debug(f"Command output: {output.strip()}", source=SOURCE)
        return ToolResult(argv, completed.returncode, output)

    def check(
        self,
        command: list[str | Path],
        error_cls: type[BuildError] = BuildError,
        message: str = "Command failed",
    ) -> ToolResult:
        result = self.run(command)
        if not result.ok:
            self.logbook.error(
                f"Command failed with output: {result.output.strip()}", source=SOURCE
            )
            raise error_cls(
                f"{message} (exit code {result.returncode}).\n"
                f"  Command: {' '.join(result.command)}\n"
                f"  Output:\n{result.output.strip()}"
            )
        return result
