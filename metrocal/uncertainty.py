# metrocal/uncertainty.py
"""
Assistente de incerteza (avaliação tipo B).

    u_padrão    = U_certificado / k
    u_resolução = r / √12          (distribuição retangular)
    u_c         = √(u_padrão² + u_resolução²)
    U           = u_c · k
"""
import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Optional

from metrocal import config
from metrocal.data_models import CalibrationRecord
from metrocal.errors import InvalidParameter, ValidationError
from metrocal.measurement import round4

_NUMERIC_TOKEN = re.compile(r"\d+(?:\.\d+)?|\.\d+")
ALL_GROUPS = "all"


@dataclass(frozen=True)
class UncertaintyBudget:
    u_standard: float
    u_resolution: float
    u_combined: float
    expanded: float  # já arredondado a 4 casas
    coverage_factor: float


def parse_resolution(text) -> float:
    """Extrai o primeiro número de um texto livre de resolução ("0.01 mm" -> 0.01)."""
    if text is None:
        return 0.0
    # "1.2.3 mm" -> 1.2
    match = _NUMERIC_TOKEN.search(str(text))
    return float(match.group()) if match else 0.0


def calculate_expanded_uncertainty(standard_uncertainty: float, resolution: float,
                                   coverage_factor: float = config.DEFAULT_COVERAGE_FACTOR) -> UncertaintyBudget:
    values = (standard_uncertainty, resolution, coverage_factor)
    if any(v is None or not math.isfinite(v) for v in values):
        raise InvalidParameter("Os parâmetros da incerteza devem ser números finitos.")
    if coverage_factor == 0:
        raise InvalidParameter("O fator de abrangência (k) não pode ser zero.")

    u_standard = standard_uncertainty / coverage_factor
    u_resolution = resolution / math.sqrt(12)
    u_combined = math.sqrt(u_standard ** 2 + u_resolution ** 2)
    expanded = round4(u_combined * coverage_factor)
    logging.debug(
        f"Incerteza: u_std={u_standard:.6g} u_res={u_resolution:.6g} "
        f"u_c={u_combined:.6g} k={coverage_factor} U={expanded}"
    )
    return UncertaintyBudget(
        u_standard=u_standard,
        u_resolution=u_resolution,
        u_combined=u_combined,
        expanded=expanded,
        coverage_factor=coverage_factor,
    )


def apply_uncertainty(record: CalibrationRecord, uncertainty: float,
                      group_id: Optional[str] = None) -> CalibrationRecord:
    """
    Sobrescreve a incerteza de todos os pontos de um grupo, ou de todos os
    grupos quando group_id é None ou "all". O erro dos pontos não muda.
    """
    apply_all = group_id is None or group_id == ALL_GROUPS
    if not apply_all and not any(g.id == group_id for g in record.measurement_groups):
        raise ValidationError("Selecione qual grupo receberá o cálculo.")

    groups = tuple(
        replace(g, measurements=tuple(replace(m, uncertainty=uncertainty) for m in g.measurements))
        if apply_all or g.id == group_id else g
        for g in record.measurement_groups
    )
    target = "TODOS os grupos" if apply_all else f"o grupo {group_id}"
    logging.info(f"Incerteza {uncertainty} aplicada a {target} (registro {record.id}).")
    return replace(record, measurement_groups=groups)
