"""Tests del progress projector."""

import itertools
from datetime import datetime, timedelta, timezone

from progress_engine.domain.models import (
    AreaDetections,
    ProgressState,
    PushSnapshot,
    WorkUnit,
)
from progress_engine.domain.projector import (
    SOURCE_GROUND_TRUTH,
    SOURCE_PUSH,
    progress_percent,
    project,
    project_all,
    split_by_state,
)

T0 = datetime(2026, 1, 31, 8, 0, tzinfo=timezone.utc)


def unit(area="A", expected=100, completed_at=None, reported=0, phase=0, created=T0):
    return WorkUnit(
        area_code=area,
        phase=phase,
        expected_total=expected,
        operator="Drone-001",
        session_id=1,
        created_at=created,
        detection_completed_at=completed_at,
        reported_processed=reported,
    )


def push(area="A", processed=0, detected=0, undetected=0):
    return PushSnapshot(
        area_code=area,
        detected=detected,
        undetected=undetected,
        total_processed=processed,
        received_at=T0,
    )


def ground(area="A", detected=0, undetected=0):
    return AreaDetections(area_code=area, total=detected + undetected, detected=detected, undetected=undetected)


# =============================================================================
# SELECCIÓN DE FUENTE
# =============================================================================

class TestSourceSelection:

    def test_push_wins_when_larger(self):
        result = project(unit(), push(processed=80, detected=50, undetected=30), ground(detected=30, undetected=20))

        assert result.processed == 80
        assert result.source == SOURCE_PUSH
        assert result.detected_count == 50
        assert result.undetected_count == 30

    def test_ground_truth_without_push(self):
        result = project(unit(), None, ground(detected=30, undetected=20))

        assert result.processed == 50
        assert result.detected_count == 30
        assert result.undetected_count == 20
        assert result.source == SOURCE_GROUND_TRUTH

    def test_ground_truth_wins_when_push_is_behind(self):
        result = project(unit(), push(processed=10, detected=9, undetected=1), ground(detected=30, undetected=20))

        assert result.processed == 50
        assert result.detected_count == 30
        assert result.source == SOURCE_GROUND_TRUTH

    def test_push_wins_on_tie(self):
        result = project(unit(), push(processed=50, detected=40, undetected=10), ground(detected=30, undetected=20))

        assert result.source == SOURCE_PUSH
        assert result.detected_count == 40

    def test_sources_are_never_summed(self):
        result = project(unit(), push(processed=60, detected=60), ground(detected=50))
        assert result.processed == 60

    def test_reported_processed_raises_ground_floor(self):
        result = project(unit(reported=40), push(processed=35), ground(detected=30))

        assert result.processed == 40
        assert result.source == SOURCE_GROUND_TRUTH

    def test_nothing_known(self):
        result = project(unit())

        assert result.processed == 0
        assert result.progress_pct == 0
        assert result.queued == 100
        assert result.state is ProgressState.IN_PROGRESS


# =============================================================================
# PORCENTAJE, COLA Y ESTADO
# =============================================================================

class TestDerivedFields:

    def test_zero_expected_total_has_zero_percent(self):
        result = project(unit(expected=0), push(processed=5))
        assert result.progress_pct == 0

    def test_percent_is_clamped(self):
        result = project(unit(expected=100), push(processed=150))

        assert result.progress_pct == 100
        assert result.queued == 0
        assert result.state is ProgressState.COMPLETE

    def test_half_up_rounding(self):
        assert progress_percent(1, 8) == 13
        assert progress_percent(1, 3) == 33
        assert progress_percent(2, 3) == 67

    def test_completed_detection_forces_complete(self):
        # Área C: 100 subidos, sin eventos push, detección marcada como completa
        result = project(unit(area="C", expected=100, completed_at=T0 + timedelta(hours=1)))

        assert result.state is ProgressState.COMPLETE
        assert result.queued == 0
        assert result.processed == 0
        assert result.progress_pct == 0

    def test_in_progress_queue(self):
        result = project(unit(expected=100), push(processed=40))

        assert result.queued == 60
        assert result.progress_pct == 40
        assert result.state is ProgressState.IN_PROGRESS

    def test_invariants_hold_across_inputs(self):
        expected_values = [0, 1, 7, 100]
        processed_values = [None, 0, 3, 100, 250]
        completed_values = [None, T0]

        for expected, pushed, grounded, completed in itertools.product(
            expected_values, processed_values, processed_values, completed_values
        ):
            result = project(
                unit(expected=expected, completed_at=completed),
                push(processed=pushed) if pushed is not None else None,
                ground(detected=grounded) if grounded is not None else None,
            )
            assert 0 <= result.progress_pct <= 100
            if completed is not None:
                assert result.queued == 0
                assert result.state is ProgressState.COMPLETE
            assert result.is_complete == (completed is not None or result.processed >= expected)


# =============================================================================
# AUTO-COMPLETE
# =============================================================================

class TestAutoComplete:

    def test_stale_unit_is_auto_completed(self):
        result = project(
            unit(expected=100),
            push(processed=30),
            now=T0 + timedelta(minutes=61),
            auto_complete_after=timedelta(minutes=60),
        )

        assert result.auto_completed is True
        assert result.processed == 100
        assert result.state is ProgressState.COMPLETE

    def test_recent_unit_is_not_auto_completed(self):
        result = project(
            unit(expected=100),
            push(processed=30),
            now=T0 + timedelta(minutes=10),
            auto_complete_after=timedelta(minutes=60),
        )

        assert result.auto_completed is False
        assert result.processed == 30

    def test_disabled_by_default(self):
        result = project(unit(expected=100), now=T0 + timedelta(days=1))
        assert result.auto_completed is False


# =============================================================================
# PROYECCIÓN COMPLETA Y PANELES
# =============================================================================

class TestPanels:

    def test_project_all_is_sorted_and_uses_area_sources(self):
        units = [unit(area="B", expected=10), unit(area="A", expected=10, phase=1), unit(area="A", expected=20)]
        results = project_all(units, {"A": push(processed=10)}, {"B": ground(area="B", detected=10)})

        assert [(r.area_code, r.phase) for r in results] == [("A", 0), ("A", 1), ("B", 0)]
        # El snapshot push es por área: todas las fases lo comparten
        assert results[0].processed == 10
        assert results[1].processed == 10
        assert results[2].processed == 10

    def test_split_by_state(self):
        results = project_all(
            [unit(area="A", expected=10), unit(area="B", expected=10)],
            {"A": push(processed=10), "B": push(area="B", processed=4)},
            {},
        )
        panels = split_by_state(results)

        assert [p.area_code for p in panels.completed] == ["A"]
        assert [p.area_code for p in panels.in_progress] == ["B"]
        assert panels.total_expected == 20
        assert panels.total_processed == 14
        assert panels.total_queued == 6

    def test_to_dict_is_serializable(self):
        data = project(unit(completed_at=T0)).to_dict()

        assert data["state"] == "complete"
        assert data["created_at"] == T0.isoformat()
        assert data["detection_completed_at"] == T0.isoformat()
