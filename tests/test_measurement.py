import math

import pytest

from metrocal import measurement as m
from metrocal.data_models import CalibrationRecord, MeasurementGroup, MeasurementPoint
from metrocal.errors import ValidationError


def _record(*groups):
    return CalibrationRecord(id="cal-1", equipment_id="PAQ-001", date="2024-06-15", measurement_groups=tuple(groups))


def _point(point_id, reference, measured, uncertainty=0.0):
    return MeasurementPoint(
        id=point_id,
        reference_value=reference,
        measured_value=measured,
        error=m.compute_error(reference, measured),
        uncertainty=uncertainty,
    )


def test_round4_rounds_half_away_from_zero():
    assert m.round4(1.23456) == 1.2346
    assert m.round4(-1.23456) == -1.2346
    assert m.round4(0.0) == 0.0


def test_compute_error_is_rounded_difference():
    assert m.compute_error(10.0, 10.02) == 0.02
    assert m.compute_error(10.0, 9.97) == -0.03
    assert m.compute_error(5.5, 5.5) == 0.0


@pytest.mark.parametrize("reference, measured", [
    (0.0, 0.0), (10.0, 10.0123456), (100.0, 99.99995), (-3.2, 1.7), (1e-5, 2e-5),
])
def test_error_matches_rounded_difference_for_any_pair(reference, measured):
    point = m.new_point()
    point = m.set_point_value(point, "reference_value", reference)
    point = m.set_point_value(point, "measured_value", measured)
    assert point.error == m.round4(measured - reference)


def test_changing_uncertainty_keeps_error():
    point = _point("p1", 10.0, 10.05)
    updated = m.set_point_value(point, "uncertainty", 0.7)
    assert updated.uncertainty == 0.7
    assert updated.error == point.error == 0.05


def test_set_point_value_rejects_derived_field():
    with pytest.raises(ValidationError):
        m.set_point_value(m.new_point(), "error", 1.0)


@pytest.mark.parametrize("error, uncertainty", [(0.03, 0.04), (-0.02, 0.0), (0.0, 0.015), (-1.5, 2.25)])
def test_combined_indicator_dominates_both_components(error, uncertainty):
    combined = m.combined_indicator(error, uncertainty)
    assert combined == m.round4(math.sqrt(error ** 2 + uncertainty ** 2))
    assert combined >= abs(error)
    assert combined >= uncertainty


def test_combined_indicator_treats_missing_uncertainty_as_zero():
    assert m.combined_indicator(-0.02, None) == 0.02


def test_summarize_takes_global_maxima_across_groups():
    record = _record(
        MeasurementGroup(id="g1", name="Tração", measurements=(_point("a", 10, 10.02, 0.01), _point("b", 20, 19.95, 0.0))),
        MeasurementGroup(id="g2", name="Compressão", measurements=(_point("c", 10, 10.01, 0.04),)),
    )
    summary = m.summarize(record)
    assert summary.max_error == 0.05
    assert summary.max_uncertainty == 0.04
    assert summary.combined == m.round4(math.sqrt(0.05 ** 2 + 0.04 ** 2))


def test_summarize_empty_record_is_zero():
    summary = m.summarize(_record(MeasurementGroup(id="g1", name="Teste Padrão")))
    assert summary == m.RecordSummary(max_error=0.0, max_uncertainty=0.0, combined=0.0)


def test_legacy_measurements_concatenate_groups_in_order():
    record = _record(
        MeasurementGroup(id="g1", name="A", measurements=(_point("a", 1, 1),)),
        MeasurementGroup(id="g2", name="B", measurements=(_point("b", 2, 2), _point("c", 3, 3))),
    )
    flat = m.with_legacy_measurements(record).measurements
    assert [p.id for p in flat] == ["a", "b", "c"]


def test_add_group_uses_sequential_default_name():
    record = m.add_group(_record(MeasurementGroup(id="g1", name="Teste Padrão")))
    assert [g.name for g in record.measurement_groups] == ["Teste Padrão", "Teste 2"]
    named = m.add_group(record, "Compressão")
    assert named.measurement_groups[-1].name == "Compressão"


def test_group_and_point_edits_return_new_records():
    before = _record(MeasurementGroup(id="g1", name="Teste Padrão"))
    with_point = m.add_point(before, "g1")
    assert before.measurement_groups[0].measurements == ()
    point_id = with_point.measurement_groups[0].measurements[0].id

    edited = m.update_point(with_point, "g1", point_id, "measured_value", 3.5)
    assert edited.measurement_groups[0].measurements[0].error == 3.5
    assert with_point.measurement_groups[0].measurements[0].measured_value == 0.0

    renamed = m.rename_group(edited, "g1", "Tração")
    assert renamed.measurement_groups[0].name == "Tração"

    removed = m.remove_point(renamed, "g1", point_id)
    assert removed.measurement_groups[0].measurements == ()


def test_remove_last_group_fails_and_leaves_record_unchanged():
    record = _record(MeasurementGroup(id="g1", name="Único", measurements=(_point("a", 1, 1.1),)))
    with pytest.raises(ValidationError):
        m.remove_group(record, "g1")
    assert len(record.measurement_groups) == 1
    assert record.measurement_groups[0].measurements[0].id == "a"


def test_remove_group_keeps_the_others():
    record = _record(MeasurementGroup(id="g1", name="A"), MeasurementGroup(id="g2", name="B"))
    assert [g.id for g in m.remove_group(record, "g1").measurement_groups] == ["g2"]


def test_unknown_group_or_point_is_rejected():
    record = _record(MeasurementGroup(id="g1", name="A"))
    with pytest.raises(ValidationError):
        m.add_point(record, "nope")
    with pytest.raises(ValidationError):
        m.update_point(record, "g1", "nope", "measured_value", 1.0)
