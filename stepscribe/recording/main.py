"""Command line interface replaying recorded step streams into run tables."""

from __future__ import annotations

import argparse
import logging
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from ..config import RecorderConfig, load_config
from ..errors import StepScribeError
from ..logging_config import setup_logging
from .aggregator import EventAggregator
from .dispatch import StepDispatcher
from .export import RunExporter, RunTables
from .reduction import RunCoordinator, RunResult
from .reporting import RunReporter
from .stream import read_stream, replay
from .writer import SUPPORTED_FORMATS, write_tables

logger = logging.getLogger(__name__)


class ReplayRun:
    """One recording run: every stream is a worker, export waits for all of them."""

    def __init__(self, streams: Sequence[Path | str], config: Optional[RecorderConfig] = None) -> None:
        if not streams:
            raise ValueError("At least one step stream is required.")
        self.streams = [Path(stream) for stream in streams]
        self.config = config or RecorderConfig()
        self.worker_ids = [f"w{index:03d}" for index in range(len(self.streams))]
        self.coordinator = RunCoordinator(self.worker_ids)
        self.exporter = RunExporter(self.config.length_unit, self.config.energy_unit)

    def make_dispatcher(self, worker_id: str) -> StepDispatcher:
        return StepDispatcher(
            EventAggregator(worker_id=worker_id),
            options=self.config.options,
            detector=self.config.detector,
        )

    def _run_worker(self, worker_id: str, stream: Path) -> Tuple[int, int]:
        dispatcher = self.make_dispatcher(worker_id)
        steps, closed = replay(read_stream(stream), dispatcher)
        aggregator = dispatcher.aggregator
        if aggregator.rejected_deposits:
            logger.warning("%s: rejected %d invalid energy deposits", stream, aggregator.rejected_deposits)
        self.coordinator.complete(worker_id, aggregator)
        logger.info("%s: %d steps, %d events closed by worker %s", stream, steps, closed, worker_id)
        return steps, closed

    def run(self) -> RunResult:
        logger.info("Replaying %d stream(s)\n%s", len(self.streams), self.config.detector.summary())
        with ThreadPoolExecutor(max_workers=len(self.streams)) as pool:
            futures = [
                pool.submit(self._run_worker, worker_id, stream)
                for worker_id, stream in zip(self.worker_ids, self.streams)
            ]
            for future in as_completed(futures):
                future.result()
        return self.coordinator.finish()

    def export(self, result: RunResult) -> RunTables:
        return self.exporter.export(result.snapshots)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay recorded transport steps into event, track and step tables")
    parser.add_argument("streams", nargs="+", help="JSON-lines step streams, one per worker")
    parser.add_argument("--config", type=str, default=None, help="YAML recorder configuration")
    parser.add_argument("--output-dir", type=str, default=None, help="Directory receiving the tables")
    parser.add_argument(
        "--format",
        dest="formats",
        action="append",
        choices=list(SUPPORTED_FORMATS),
        default=None,
        help="Output format (repeatable)",
    )
    parser.add_argument("--length-unit", type=str, default=None, help="Unit for exported positions and distances")
    parser.add_argument("--energy-unit", type=str, default=None, help="Unit for exported energy deposits")
    parser.add_argument("--report", type=str, default=None, help="Write a LaTeX run report to this path")
    parser.add_argument("--compile-report", action="store_true", help="Compile the LaTeX report with pdflatex")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (DEBUG, INFO, ...)")
    parser.add_argument("--log-file", type=str, default=None, help="Also write log records to this file")
    return parser.parse_args(argv)


def run_cli(argv: Optional[Iterable[str]] = None) -> List[Path]:
    args = parse_args(argv)
    try:
        config = load_config(args.config).with_overrides(
            output_dir=args.output_dir,
            formats=args.formats,
            length_unit=args.length_unit,
            energy_unit=args.energy_unit,
            log_level=args.log_level.upper() if args.log_level else None,
        )
    except (OSError, StepScribeError) as exc:
        print(f"Configuration could not be loaded: {exc}", file=sys.stderr)
        raise SystemExit(2)
    setup_logging(config.log_level, args.log_file)

    run = ReplayRun(args.streams, config)
    try:
        result = run.run()
        tables = run.export(result)
        written = write_tables(tables, config.output_dir, config.formats)
        if args.report:
            reporter = RunReporter(
                detector=config.detector,
                particle_labels=config.particle_labels,
                compile_pdf=args.compile_report,
            )
            report_path = reporter.build_report(
                tables,
                args.report,
                total_edep=run.exporter.convert_energy(result.total_edep),
            )
            written.append(report_path)
            logger.info("Report written: %s", report_path)
    except (OSError, RuntimeError, StepScribeError) as exc:
        logger.error("Run aborted: %s", exc)
        raise SystemExit(1)
    return written


if __name__ == "__main__":
    run_cli(sys.argv[1:])
