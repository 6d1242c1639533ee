import math

import pytest

from metrocal.data_models import CalibrationRecord, MeasurementGroup, MeasurementPoint
from metrocal.errors import InvalidParameter, ValidationError
from metrocal.uncertainty import apply_uncertainty, calculate_expanded_uncertainty, parse_resolution


def test_reference_budget():
    budget = calculate_expanded_uncertainty(0.02, 0.01, 2)
    assert budget.u_standard == pytest.approx(0.01)
    assert budget.u_resolution == pytest.approx(0.0028868, abs=1e-7)
    assert budget.u_combined == pytest.approx(0.010408, abs=1e-6)
    assert budget.expanded == 0.0208
    assert budget.coverage_factor == 2


def test_zero_resolution_returns_the_certificate_value():
    assert calculate_expanded_uncertainty(0.05, 0.0, 2).expanded == 0.05


def test_zero_coverage_factor_is_rejected():
    with pytest.raises(InvalidParameter):
        calculate_expanded_uncertainty(0.02, 0.01, 0)


def test_non_finite_input_is_rejected():
    with pytest.raises(InvalidParameter):
        calculate_expanded_uncertainty(math.nan, 0.01, 2)
    with pytest.raises(InvalidParameter):
        calculate_expanded_uncertainty(0.02, math.inf, 2)


@pytest.mark.parametrize("text, expected", [
    ("0.01 mm", 0.01),
    ("1 µm", 1.0),
    ("res. 0.5", 0.5),
    ("1.2.3 mm", 1.2),
    (".5 mm", 0.5),
    ("", 0.0),
    (None, 0.0),
    ("sem resolução", 0.0),
])
def test_parse_resolution_takes_first_number(text, expected):
    assert parse_resolution(text) == expected


def _record():
    def group(gid):
        return MeasurementGroup(id=gid, name=gid, measurements=(
            MeasurementPoint(id=f"{gid}-1", reference_value=10, measured_value=10.02, error=0.02),
            MeasurementPoint(id=f"{gid}-2", reference_value=20, measured_value=19.99, error=-0.01),
        ))
    return CalibrationRecord(id="cal", equipment_id="eq", date="2024-06-15",
                             measurement_groups=(group("g1"), group("g2")))


def test_apply_to_single_group():
    record = apply_uncertainty(_record(), 0.0208, "g2")
    g1, g2 = record.measurement_groups
    assert all(p.uncertainty == 0.0 for p in g1.measurements)
    assert all(p.uncertainty == 0.0208 for p in g2.measurements)
    assert [p.error for p in g2.measurements] == [0.02, -0.01]


@pytest.mark.parametrize("target", [None, "all"])
def test_apply_to_all_groups(target):
    record = apply_uncertainty(_record(), 0.03, target)
    assert all(p.uncertainty == 0.03 for g in record.measurement_groups for p in g.measurements)


def test_apply_to_unknown_group_is_rejected():
    with pytest.raises(ValidationError):
        apply_uncertainty(_record(), 0.03, "g9")
