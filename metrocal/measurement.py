# metrocal/measurement.py
"""
Avaliação dos pontos de medição e agregação dos grupos de teste.

Todas as funções são puras: recebem um registro imutável e devolvem um
novo registro. O resultado final (Aprovado / Reprovado ...) nunca é
atribuído aqui; a decisão é do técnico ou do parecer de IA.
"""
import logging
import math
from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from metrocal.data_models import CalibrationRecord, MeasurementGroup, MeasurementPoint, new_id
from metrocal.errors import ValidationError

_FOUR_PLACES = Decimal("0.0001")
EDITABLE_POINT_FIELDS = ("reference_value", "measured_value", "uncertainty")


# ==============================================================================
# PONTO DE MEDIÇÃO
# ==============================================================================

def round4(value: float) -> float:
    """Arredonda para 4 casas, metade para longe do zero."""
    if not math.isfinite(value):
        return value
    return float(Decimal(value).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP))


def compute_error(reference_value: float, measured_value: float) -> float:
    return round4(measured_value - reference_value)


def combined_indicator(error: float, uncertainty: Optional[float] = 0.0) -> float:
    """Erro combinado √(E² + U²), comparado pelo revisor com o critério de aceitação."""
    uncertainty = uncertainty or 0.0
    return round4(math.sqrt(error ** 2 + uncertainty ** 2))


def new_point() -> MeasurementPoint:
    return MeasurementPoint(id=new_id())


def set_point_value(point: MeasurementPoint, field_name: str, value: float) -> MeasurementPoint:
    """
    Atualiza um campo editável do ponto.
    O erro só é recalculado quando muda o valor padrão ou o medido.
    """
    if field_name not in EDITABLE_POINT_FIELDS:
        raise ValidationError(f"Campo '{field_name}' não pode ser editado.")
    updated = replace(point, **{field_name: float(value)})
    if field_name in ("reference_value", "measured_value"):
        updated = replace(updated, error=compute_error(updated.reference_value, updated.measured_value))
    return updated


# ==============================================================================
# AGREGAÇÃO DO REGISTRO
# ==============================================================================

@dataclass(frozen=True)
class RecordSummary:
    max_error: float
    max_uncertainty: float
    combined: float


def flatten_points(record: CalibrationRecord) -> List[MeasurementPoint]:
    return [m for g in record.measurement_groups for m in g.measurements]


def summarize(record: CalibrationRecord) -> RecordSummary:
    """Máximos globais entre todos os grupos e o valor calculado de pior caso."""
    points = flatten_points(record)
    max_error = max((abs(m.error) for m in points), default=0.0)
    max_uncertainty = max((m.uncertainty or 0.0 for m in points), default=0.0)
    return RecordSummary(
        max_error=max_error,
        max_uncertainty=max_uncertainty,
        combined=combined_indicator(max_error, max_uncertainty),
    )


def with_legacy_measurements(record: CalibrationRecord) -> CalibrationRecord:
    """Regenera a lista plana legada a partir dos grupos."""
    return replace(record, measurements=tuple(flatten_points(record)))


# ==============================================================================
# MUTAÇÕES DE GRUPOS E PONTOS
# ==============================================================================

def _find_group_index(record: CalibrationRecord, group_id: str) -> int:
    for index, group in enumerate(record.measurement_groups):
        if group.id == group_id:
            return index
    raise ValidationError(f"Grupo de medição '{group_id}' não encontrado.")


def _replace_group(record: CalibrationRecord, group_id: str, fn) -> CalibrationRecord:
    index = _find_group_index(record, group_id)
    groups = list(record.measurement_groups)
    groups[index] = fn(groups[index])
    return replace(record, measurement_groups=tuple(groups))


def add_group(record: CalibrationRecord, name: Optional[str] = None) -> CalibrationRecord:
    group = MeasurementGroup(
        id=new_id(),
        name=name or f"Teste {len(record.measurement_groups) + 1}",
    )
    return replace(record, measurement_groups=record.measurement_groups + (group,))


def rename_group(record: CalibrationRecord, group_id: str, name: str) -> CalibrationRecord:
    return _replace_group(record, group_id, lambda g: replace(g, name=name))


def remove_group(record: CalibrationRecord, group_id: str) -> CalibrationRecord:
    _find_group_index(record, group_id)
    if len(record.measurement_groups) <= 1:
        logging.warning(f"Tentativa de remover o último grupo do registro {record.id}.")
        raise ValidationError("É necessário pelo menos um grupo de medição.")
    return replace(
        record,
        measurement_groups=tuple(g for g in record.measurement_groups if g.id != group_id),
    )


def add_point(record: CalibrationRecord, group_id: str) -> CalibrationRecord:
    return _replace_group(
        record, group_id, lambda g: replace(g, measurements=g.measurements + (new_point(),))
    )


def remove_point(record: CalibrationRecord, group_id: str, point_id: str) -> CalibrationRecord:
    return _replace_group(
        record, group_id,
        lambda g: replace(g, measurements=tuple(m for m in g.measurements if m.id != point_id)),
    )


def update_point(record: CalibrationRecord, group_id: str, point_id: str,
                 field_name: str, value: float) -> CalibrationRecord:
    def _update(group: MeasurementGroup) -> MeasurementGroup:
        if not any(m.id == point_id for m in group.measurements):
            raise ValidationError(f"Ponto '{point_id}' não encontrado no grupo '{group.name}'.")
        return replace(group, measurements=tuple(
            set_point_value(m, field_name, value) if m.id == point_id else m
            for m in group.measurements
        ))

    return _replace_group(record, group_id, _update)
