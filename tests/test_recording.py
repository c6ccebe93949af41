"""Tests for step dispatch, track bookkeeping and per-event aggregation."""

from __future__ import annotations

import math

import pytest

from stepscribe.errors import AggregatorFrozenError, EventOrderError, ReductionError
from stepscribe.recording.aggregator import EventAggregator, WorkerPartial
from stepscribe.recording.detector import default_detector
from stepscribe.recording.dispatch import DispatchOptions, StepDispatcher
from stepscribe.recording.ledger import Finalization, TrackLedger
from stepscribe.recording.optical import BoundaryDetectionMonitor
from stepscribe.recording.reduction import RunAccumulator, RunCoordinator
from stepscribe.recording.step import OPTICAL_PHOTON_CODE, BoundaryStatus, StepRecord


def _photon(track_id, boundary, *, volume="ENERGY_PLANE", on_boundary=True, alive=True):
    return StepRecord(
        track_id=track_id,
        particle_code=OPTICAL_PHOTON_CODE,
        position=(0.0, 0.0, 5.0),
        alive=alive,
        boundary=boundary,
        on_boundary=on_boundary,
        volume=volume,
    )


def test_ledger_reports_first_finalization_once():
    ledger = TrackLedger()
    assert ledger.observe(0, 7, alive=True) is Finalization.ALIVE
    assert not ledger.is_finalized(0, 7)
    assert ledger.observe(0, 7, alive=False) is Finalization.FIRST
    assert ledger.observe(0, 7, alive=False) is Finalization.DUPLICATE
    assert ledger.observe(0, 7, alive=False) is Finalization.DUPLICATE
    assert ledger.is_finalized(0, 7)
    assert ledger.first_finalizations == 1
    assert ledger.duplicates == 2


def test_ledger_sets_are_per_event_and_released():
    ledger = TrackLedger()
    assert ledger.observe(0, 1, alive=False) is Finalization.FIRST
    assert ledger.observe(1, 1, alive=False) is Finalization.FIRST
    assert ledger.open_events() == 2
    ledger.release(0)
    assert ledger.open_events() == 1
    assert not ledger.is_finalized(0, 1)
    assert ledger.is_finalized(1, 1)


def test_dispatcher_records_trajectory_and_final_state():
    dispatcher = StepDispatcher()
    dispatcher.begin_event(0, (0.0, 0.0, 0.0), tag=42)
    for z in (0.0, 1.0, 2.0):
        assert dispatcher.on_step(0, StepRecord(7, 11, (0.0, 0.0, z), edep=0.1)) is Finalization.ALIVE
    assert dispatcher.on_step(0, StepRecord(7, 11, (0.0, 0.0, 3.0), edep=0.2, alive=False)) is Finalization.FIRST
    snapshot = dispatcher.end_event(0)

    assert snapshot.tag == 42
    assert snapshot.edep == pytest.approx(0.5)
    (track,) = snapshot.tracks
    assert track.track_id == 7
    assert track.trajectory == ((0.0, 0.0, 0.0), (0.0, 0.0, 1.0), (0.0, 0.0, 2.0))
    assert track.final_position == (0.0, 0.0, 3.0)
    assert track.particle_code == 11
    assert not track.orphaned


def test_duplicate_dead_step_keeps_first_final_values():
    dispatcher = StepDispatcher()
    dispatcher.on_step(0, StepRecord(4, 22, (1.0, 2.0, 3.0), alive=False))
    assert dispatcher.on_step(0, StepRecord(4, 2112, (9.0, 9.0, 9.0), alive=False)) is Finalization.DUPLICATE
    assert dispatcher.aggregator.record_final(0, 4, (8.0, 8.0, 8.0), 13) is False
    snapshot = dispatcher.end_event(0)

    (track,) = snapshot.tracks
    assert track.final_position == (1.0, 2.0, 3.0)
    assert track.particle_code == 22
    assert track.trajectory == ()


def test_steps_after_finalization_are_not_appended():
    aggregator = EventAggregator()
    aggregator.record_step(0, 1, (0.0, 0.0, 0.0))
    aggregator.record_final(0, 1, (0.0, 0.0, 1.0), 11)
    assert aggregator.record_step(0, 1, (0.0, 0.0, 2.0)) is False
    assert aggregator.ignored_steps == 1
    (track,) = aggregator.close_event(0).tracks
    assert len(track.trajectory) == 1


def test_orphaned_track_is_kept_without_final_state():
    dispatcher = StepDispatcher()
    dispatcher.on_step(1, StepRecord(3, 11, (0.0, 0.0, 1.0), edep=0.3))
    dispatcher.on_step(1, StepRecord(3, 11, (0.0, 0.0, 2.0), edep=0.3))
    snapshot = dispatcher.end_event(1)

    (track,) = snapshot.orphaned_tracks()
    assert track.track_id == 3
    assert len(track.trajectory) == 2
    assert track.final_position is None
    assert track.particle_code is None
    assert dispatcher.ledger.open_events() == 0


def test_invalid_energy_deposits_are_rejected():
    aggregator = EventAggregator()
    assert aggregator.add_energy_deposit(0, 1.5)
    assert not aggregator.add_energy_deposit(0, -0.5)
    assert not aggregator.add_energy_deposit(0, math.nan)
    assert not aggregator.add_energy_deposit(0, math.inf)
    assert aggregator.add_energy_deposit(0, 0.0)
    assert aggregator.rejected_deposits == 3
    assert aggregator.close_event(0).edep == pytest.approx(1.5)


def test_record_initial_overwrites():
    aggregator = EventAggregator()
    aggregator.record_initial(0, (1.0, 1.0, 1.0), 5)
    aggregator.record_initial(0, (2.0, 2.0, 2.0), 6)
    snapshot = aggregator.close_event(0)
    assert snapshot.initial_position == (2.0, 2.0, 2.0)
    assert snapshot.tag == 6


def test_tracks_are_sorted_by_id_in_snapshot():
    aggregator = EventAggregator()
    for track_id in (9, 2, 5):
        aggregator.record_step(0, track_id, (0.0, 0.0, float(track_id)))
    snapshot = aggregator.close_event(0)
    assert [track.track_id for track in snapshot.tracks] == [2, 5, 9]


def test_closed_event_cannot_be_revisited():
    aggregator = EventAggregator()
    aggregator.add_energy_deposit(2, 1.0)
    aggregator.close_event(2)
    with pytest.raises(EventOrderError):
        aggregator.record_step(2, 1, (0.0, 0.0, 0.0))
    with pytest.raises(EventOrderError):
        aggregator.add_energy_deposit(1, 1.0)
    with pytest.raises(EventOrderError):
        aggregator.close_event(2)


def test_lower_event_id_cannot_open_after_higher():
    aggregator = EventAggregator()
    aggregator.record_step(5, 1, (0.0, 0.0, 0.0))
    with pytest.raises(EventOrderError):
        aggregator.record_step(4, 1, (0.0, 0.0, 0.0))


def test_freeze_closes_open_events_and_blocks_mutation():
    aggregator = EventAggregator()
    aggregator.record_step(3, 1, (0.0, 0.0, 0.0))
    aggregator.record_step(4, 1, (0.0, 0.0, 0.0))
    snapshots = aggregator.freeze()
    assert [snapshot.event_id for snapshot in snapshots] == [3, 4]
    assert aggregator.open_event_ids() == []
    with pytest.raises(AggregatorFrozenError):
        aggregator.add_energy_deposit(5, 1.0)
    assert aggregator.freeze() == snapshots


def test_detection_counted_once_among_reflections():
    dispatcher = StepDispatcher(detector=default_detector())
    counts = []
    for status in (BoundaryStatus.REFLECTED, BoundaryStatus.DETECTED, BoundaryStatus.REFLECTED):
        dispatcher.on_step(0, _photon(12, status))
        counts.append(dispatcher.aggregator._arena[0].n_detections)
    snapshot = dispatcher.end_event(0)

    assert snapshot.n_detections == 1
    assert counts == sorted(counts)
    assert dict(snapshot.detected_surfaces) == {"ENERGY_PLANE": 1}
    assert dispatcher.monitor.boundary_counts[BoundaryStatus.REFLECTED] == 2


def test_monitor_ignores_non_photons_and_off_boundary_steps():
    aggregator = EventAggregator()
    monitor = BoundaryDetectionMonitor(default_detector())
    electron = StepRecord(1, 11, (0.0, 0.0, 0.0), boundary=BoundaryStatus.DETECTED, on_boundary=True)
    assert not monitor.inspect(0, electron, aggregator)
    assert not monitor.inspect(0, _photon(2, BoundaryStatus.DETECTED, on_boundary=False), aggregator)
    assert not monitor.inspect(0, _photon(2, "SomethingNew"), aggregator)
    assert monitor.boundary_counts[BoundaryStatus.UNDEFINED] == 1
    assert not monitor.inspect(0, _photon(2, BoundaryStatus.DETECTED, volume="DETECTOR"), aggregator)
    assert monitor.rejected_surfaces["DETECTOR"] == 1
    assert monitor.inspect(0, _photon(2, "Detection", volume="TRACKING_PLANE"), aggregator)
    assert aggregator.close_event(0).n_detections == 1


def test_boundary_status_coercion():
    assert BoundaryStatus.coerce("Detection") is BoundaryStatus.DETECTED
    assert BoundaryStatus.coerce("detected") is BoundaryStatus.DETECTED
    assert BoundaryStatus.coerce("TotalInternalReflection") is BoundaryStatus.REFLECTED
    assert BoundaryStatus.coerce(None) is BoundaryStatus.UNDEFINED
    assert BoundaryStatus.coerce("bogus") is BoundaryStatus.UNDEFINED


def test_dispatch_options_disable_recording():
    options = DispatchOptions(record_trajectories=False, track_optical_boundaries=False)
    dispatcher = StepDispatcher(options=options)
    assert dispatcher.monitor is None
    dispatcher.on_step(0, StepRecord(1, 11, (0.0, 0.0, 0.0), edep=1.0))
    dispatcher.on_step(0, _photon(2, BoundaryStatus.DETECTED))
    snapshot = dispatcher.end_event(0)
    assert snapshot.n_detections == 0
    assert all(track.trajectory == () for track in snapshot.tracks)
    assert snapshot.edep == pytest.approx(1.0)


def test_worker_partial_merges_exactly_once():
    accumulator = RunAccumulator()
    accumulator.merge(WorkerPartial(worker_id="a", edep=1.5, n_events=2))
    accumulator.merge(WorkerPartial(worker_id="b", edep=2.0, n_events=1))
    with pytest.raises(ReductionError):
        accumulator.merge(WorkerPartial(worker_id="a", edep=1.5, n_events=2))
    assert accumulator.total_edep == pytest.approx(3.5)
    assert accumulator.n_events == 3


def test_coordinator_waits_for_every_worker():
    coordinator = RunCoordinator(["a", "b"])
    first = EventAggregator(worker_id="a")
    first.add_energy_deposit(0, 1.0)
    first.close_event(0)
    coordinator.complete("a", first)
    with pytest.raises(ReductionError):
        coordinator.finish()
    assert coordinator.pending() == ["b"]

    second = EventAggregator(worker_id="b")
    second.add_energy_deposit(1, 2.0)
    coordinator.complete("b", second)
    result = coordinator.finish()
    assert [snapshot.event_id for snapshot in result.snapshots] == [0, 1]
    assert result.total_edep == pytest.approx(3.0)
    assert result.n_events == 2
    with pytest.raises(ReductionError):
        coordinator.complete("b", second)


def test_coordinator_rejects_event_recorded_by_two_workers():
    coordinator = RunCoordinator(["a", "b"])
    for worker in ("a", "b"):
        aggregator = EventAggregator(worker_id=worker)
        aggregator.record_step(0, 1, (0.0, 0.0, 0.0))
        coordinator.complete(worker, aggregator)
    with pytest.raises(EventOrderError):
        coordinator.finish()


def test_classified_photon_step_without_flag_counts_as_boundary():
    dispatcher = StepDispatcher(detector=default_detector())
    dispatcher.on_step(0, _photon(4, "Detection", on_boundary=None))
    dispatcher.on_step(0, _photon(4, BoundaryStatus.NOT_AT_BOUNDARY, on_boundary=None))
    dispatcher.on_step(0, _photon(4, None, on_boundary=None))
    snapshot = dispatcher.end_event(0)
    assert snapshot.n_detections == 1
    assert sum(dispatcher.monitor.boundary_counts.values()) == 1


def test_rejected_deposit_for_closed_event_still_raises():
    aggregator = EventAggregator()
    aggregator.add_energy_deposit(5, 1.0)
    aggregator.close_event(5)
    with pytest.raises(EventOrderError):
        aggregator.add_energy_deposit(3, -1.0)
    with pytest.raises(EventOrderError):
        aggregator.add_energy_deposit(5, math.nan)
    assert aggregator.rejected_deposits == 0


def test_arena_reuses_freed_slots_with_overlapping_events():
    aggregator = EventAggregator()
    aggregator.record_step(0, 1, (0.0, 0.0, 0.0))
    for event_id in range(1, 20):
        aggregator.record_step(event_id, 1, (0.0, 0.0, 0.0))
        aggregator.close_event(event_id - 1)
        assert len(aggregator._arena) <= 2
    assert aggregator.open_event_ids() == [19]
    assert [snapshot.event_id for snapshot in aggregator.freeze()] == list(range(20))


def test_detector_summary_lists_surfaces():
    summary = default_detector().summary()
    assert "ENERGY_PLANE: role=energy, sensitive" in summary
    assert "DETECTOR: role=active_volume, passive" in summary
