"""
Command line front end for ffbatch.

This module wires the pieces together for a terminal session:
- Configuration from .env and the environment, overridden by flags
- One controller per run (transcode, score or target mode)
- A tqdm bar per running encoder
- A summary table and an exit code reflecting failures
"""

import argparse
import asyncio
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from ..config import get_config
from ..utils.logging import (
    create_progress_bar,
    format_duration,
    format_size,
    get_logger,
    print_section_header,
    print_separator,
    set_debug_mode,
    set_log_level,
    set_quiet_mode,
)
from .modules.encoders.state import EncoderReport, EncodingState
from .modules.processing.dispatcher import DEFAULT_EXTENSION, DEFAULT_OUTPUT_SUBDIRECTORY, EncoderController
from .modules.processing.registry import CONTROLLER_TYPES, ControllerRegistry

logger = get_logger("main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ffbatch",
        description="ffbatch - batch FFmpeg transcoding with VMAF scoring and target-quality CRF search",
    )

    parser.add_argument("mode", choices=list(CONTROLLER_TYPES),
                        help="transcode: plain encodes; score: encode then VMAF score; "
                             "target: search the CRF that meets --vmaf-target")
    parser.add_argument("paths", nargs="+", help="Input files or directories (searched recursively)")

    # Output
    parser.add_argument("--args", dest="ffmpeg_arguments", default="",
                        help="FFmpeg arguments placed between input and output "
                             "(target mode appends codec and CRF itself)")
    parser.add_argument("--output-subdir", default=DEFAULT_OUTPUT_SUBDIRECTORY,
                        help=f"Output directory, relative to each input's directory unless absolute "
                             f"(default: {DEFAULT_OUTPUT_SUBDIRECTORY})")
    parser.add_argument("--extension", default=DEFAULT_EXTENSION,
                        help=f"Output file extension without the dot (default: {DEFAULT_EXTENSION})")

    # Scheduling
    parser.add_argument("--concurrency", type=int, default=None,
                        help="Number of encoders running at once (default: CONCURRENCY or 1)")

    # Quality settings
    parser.add_argument("--vmaf-target", type=float, default=None,
                        help="Target VMAF score for target mode (default: VMAF_TARGET or 95.0)")
    parser.add_argument("--h265", action="store_true",
                        help="Use libx265 for target mode trials instead of libx264")
    parser.add_argument("--temp-dir", default=None,
                        help="Directory for target mode trial encodes (default: TEMP_DIR or next to the input)")
    parser.add_argument("--keep-trials", action="store_true",
                        help="Keep target mode trial encodes after the search")
    parser.add_argument("--max-trials", type=int, default=None,
                        help="Give up a target search after this many trials (default: unbounded)")

    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--quiet", action="store_true", help="Only print warnings, errors and the summary")
    return parser


def create_controller(args: argparse.Namespace, config: Dict, registry: ControllerRegistry) -> EncoderController:
    """Build the controller for ``args.mode`` from flags, falling back to configuration."""
    concurrency = args.concurrency if args.concurrency is not None else config["concurrency"]
    if concurrency < 1:
        raise ValueError(f"--concurrency must be at least 1, got {concurrency}")

    options = {
        "ffprobe_path": config["ffprobe_path"],
        "ffmpeg_path": config["ffmpeg_path"],
        "ffmpeg_arguments": args.ffmpeg_arguments,
        "output_subdirectory": args.output_subdir,
        "extension": args.extension,
        "concurrency": concurrency,
    }
    if args.mode in ("score", "target"):
        options["vmaf_model"] = config["vmaf_model"]
        options["vmaf_threads"] = config["vmaf_threads"]
    if args.mode == "target":
        options["h265"] = args.h265
        options["target_score"] = args.vmaf_target if args.vmaf_target is not None else config["vmaf_target"]
        options["temp_directory"] = args.temp_dir or config["temp_dir"]
        options["keep_trial_files"] = args.keep_trials
        options["max_trials"] = args.max_trials

    return registry.create(args.mode, **options)


class ProgressDisplay:
    """One tqdm bar per running encoder, driven by the controller's update events."""

    def __init__(self, controller: EncoderController):
        self._controller = controller
        self._bars: Dict[str, tqdm] = {}
        self._subscription = controller.on("update", self.on_update)

    def on_update(self, encoder_id: str):
        try:
            report = self._controller.get_report_for(encoder_id)
        except KeyError:
            return

        bar = self._bars.get(encoder_id)
        if bar is None:
            if report.encoding_state != EncodingState.ENCODING:
                return
            bar = create_progress_bar(total=round(report.duration, 1) or None,
                                      desc=_short_name(report.input_file_path),
                                      unit="s", position=len(self._bars), leave=False)
            self._bars[encoder_id] = bar

        bar.n = round(min(report.current_duration, report.duration or report.current_duration), 1)
        stage = getattr(report, "stage", None)
        if stage is not None:
            bar.set_postfix_str(f"{stage.value} CRF {report.current_parameter}", refresh=False)
        bar.refresh()

        if report.encoding_state.is_terminal:
            self._bars.pop(encoder_id).close()

    def close(self):
        self._subscription.cancel()
        for bar in self._bars.values():
            bar.close()
        self._bars.clear()


def _short_name(path: str, width: int = 30) -> str:
    name = Path(path).name
    return name if len(name) <= width else name[:width - 3] + "..."


def print_summary(reports: List[EncoderReport]):
    print_section_header("SUMMARY")
    for report in reports:
        line = (f"{report.encoding_state.value:<8} {_short_name(report.input_file_path, 40):<40} "
                f"{format_size(report.file_size):>9} {format_duration(report.duration):>8}")
        if report.score is not None:
            line += f"  VMAF {report.score:.2f}"
        current_parameter = getattr(report, "current_parameter", None)
        if current_parameter is not None and report.encoding_state == EncodingState.SUCCESS:
            line += f"  CRF {current_parameter}"
        tqdm.write(line)
    print_separator()

    failed = sum(1 for r in reports if r.encoding_state == EncodingState.ERROR)
    tqdm.write(f"{len(reports) - failed} succeeded, {failed} failed")


async def run(args: argparse.Namespace) -> int:
    config = get_config()
    set_debug_mode(args.debug or config["debug"])
    set_quiet_mode(args.quiet)
    set_log_level(config["log_level"])

    registry = ControllerRegistry()
    controller = create_controller(args, config, registry)

    reports = await controller.add_encoders(args.paths)
    if not reports:
        logger.error("No input files found")
        return 1
    logger.discovery(f"Found {len(reports)} file(s)")

    display = ProgressDisplay(controller)
    try:
        await controller.start_encoding()
        await controller.wait_until_idle()
        await controller.stop_encoding()
    finally:
        display.close()

    final_reports = controller.reports()
    print_summary(final_reports)

    for report in final_reports:
        if report.encoding_state == EncodingState.ERROR:
            logger.debug(f"Log of {report.input_file_path}:\n{controller.get_logs_for(report.encoder_id)}")

    return 1 if any(r.encoding_state == EncodingState.ERROR for r in final_reports) else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the ffbatch command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return asyncio.run(run(args))
    except ValueError as e:
        logger.error(str(e))
        return 2
    except KeyboardInterrupt:
        logger.warn("Interrupted")
        return 130
