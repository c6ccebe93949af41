"""Entry point for replaying recorded step streams with stepscribe."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from stepscribe.config import RecorderConfig, load_config
from stepscribe.recording.export import RunTables
from stepscribe.recording.main import ReplayRun
from stepscribe.recording.main import run_cli as run_replay


@dataclass
class Replayer:
    config: RecorderConfig

    @property
    def length_unit(self) -> str:
        return self.config.length_unit

    @property
    def energy_unit(self) -> str:
        return self.config.energy_unit

    def replay(self, streams: Sequence[Path | str]) -> RunTables:
        run = ReplayRun(streams, self.config)
        return run.export(run.run())


def load_replayer(config_path: Optional[Path] = None) -> Replayer:
    return Replayer(config=load_config(config_path))


def replay_streams(streams: Sequence[Path | str], config_path: Optional[Path] = None) -> RunTables:
    replayer = load_replayer(config_path)
    return replayer.replay(streams)


if __name__ == "__main__":
    run_replay()
