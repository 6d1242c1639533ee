# metrocal/data_models.py
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from metrocal import config
from metrocal.errors import ValidationError


def new_id() -> str:
    return str(uuid.uuid4())


def _to_float(value, default=0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Valor numérico inválido: '{value}'")


def _to_text(value) -> str:
    return "" if value is None else str(value)


# ==============================================================================
# ENUMERAÇÕES FECHADAS
# ==============================================================================

class _ClosedEnum(Enum):
    """Enum que rejeita valores desconhecidos na fronteira de entrada."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        text = _to_text(value).strip()
        for member in cls:
            if member.value == text:
                return member
        raise ValidationError(f"Valor não reconhecido para {cls.__name__}: '{value}'")

    @property
    def label(self) -> str:
        return DISPLAY_LABELS[self]


class EquipmentStatus(_ClosedEnum):
    ACTIVE = "Ativo"
    INACTIVE = "Inativo"
    DISCARDED = "Descartado"


class CalibrationResult(_ClosedEnum):
    APPROVED = "Aprovado"
    APPROVED_WITH_RESTRICTIONS = "Aprovado com Restrições"
    REJECTED = "Reprovado"


class ServiceType(_ClosedEnum):
    CALIBRATION = "Calibração"
    MAINTENANCE = "Manutenção"
    REPAIR = "Reparo"
    PARTS = "Peças"


class BudgetStatus(_ClosedEnum):
    PENDING = "Pendente"
    APPROVED = "Aprovado"
    COMPLETED = "Concluído"
    CANCELLED = "Cancelado"


class CalibrationDue(_ClosedEnum):
    EXPIRED = "Vencido"
    WARNING = "A vencer"
    OK = "Em dia"
    NOT_APPLICABLE = "Não aplicável"


DISPLAY_LABELS: Dict[_ClosedEnum, str] = {
    EquipmentStatus.ACTIVE: "Ativo",
    EquipmentStatus.INACTIVE: "Inativo",
    EquipmentStatus.DISCARDED: "Descartado",
    CalibrationResult.APPROVED: "Aprovado",
    CalibrationResult.APPROVED_WITH_RESTRICTIONS: "Aprovado com Restrições",
    CalibrationResult.REJECTED: "Reprovado",
    ServiceType.CALIBRATION: "Calibração",
    ServiceType.MAINTENANCE: "Manutenção",
    ServiceType.REPAIR: "Reparo",
    ServiceType.PARTS: "Peças",
    BudgetStatus.PENDING: "Pendente",
    BudgetStatus.APPROVED: "Aprovado",
    BudgetStatus.COMPLETED: "Concluído (Pago)",
    BudgetStatus.CANCELLED: "Cancelado",
    CalibrationDue.EXPIRED: "Vencido",
    CalibrationDue.WARNING: "Vence em breve",
    CalibrationDue.OK: "Em dia",
    CalibrationDue.NOT_APPLICABLE: "-",
}


# ==============================================================================
# EQUIPAMENTOS
# ==============================================================================

@dataclass(frozen=True)
class Equipment:
    id: str
    tag: str
    name: str
    manufacturer: str = ""
    model: str = ""
    serial_number: str = ""
    range: str = ""
    resolution: str = ""    # texto livre, ex. "0,01 mm"
    accuracy: str = ""      # critério de aceitação, texto livre
    location: str = ""
    supplier: Optional[str] = None
    status: EquipmentStatus = EquipmentStatus.ACTIVE
    next_calibration_date: str = ""
    last_calibration_date: Optional[str] = None
    created_at: str = ""
    opening_pressure: Optional[str] = None
    closing_pressure: Optional[str] = None
    default_test_groups: Optional[Tuple[str, ...]] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "tag": self.tag,
            "name": self.name,
            "manufacturer": self.manufacturer,
            "model": self.model,
            "serialNumber": self.serial_number,
            "range": self.range,
            "resolution": self.resolution,
            "accuracy": self.accuracy,
            "location": self.location,
            "status": self.status.value,
            "nextCalibrationDate": self.next_calibration_date,
            "createdAt": self.created_at,
        }
        optional = {
            "supplier": self.supplier,
            "lastCalibrationDate": self.last_calibration_date,
            "openingPressure": self.opening_pressure,
            "closingPressure": self.closing_pressure,
            "defaultTestGroups": list(self.default_test_groups) if self.default_test_groups is not None else None,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Equipment":
        if not data.get("id"):
            raise ValidationError("Equipamento sem identificador.")
        groups = data.get("defaultTestGroups")
        return cls(
            id=str(data["id"]),
            tag=_to_text(data.get("tag")),
            name=_to_text(data.get("name")),
            manufacturer=_to_text(data.get("manufacturer")),
            model=_to_text(data.get("model")),
            serial_number=_to_text(data.get("serialNumber")),
            range=_to_text(data.get("range")),
            resolution=_to_text(data.get("resolution")),
            accuracy=_to_text(data.get("accuracy")),
            location=_to_text(data.get("location")),
            supplier=data.get("supplier"),
            status=EquipmentStatus.parse(data.get("status") or EquipmentStatus.ACTIVE),
            next_calibration_date=_to_text(data.get("nextCalibrationDate")),
            last_calibration_date=data.get("lastCalibrationDate"),
            created_at=_to_text(data.get("createdAt")),
            opening_pressure=data.get("openingPressure"),
            closing_pressure=data.get("closingPressure"),
            default_test_groups=tuple(str(g) for g in groups) if groups is not None else None,
        )


# ==============================================================================
# MEDIÇÕES E CALIBRAÇÕES
# ==============================================================================

@dataclass(frozen=True)
class MeasurementPoint:
    id: str
    reference_value: float = 0.0
    measured_value: float = 0.0
    error: float = 0.0  # sempre derivado: round4(medido - padrão)
    uncertainty: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "referenceValue": self.reference_value,
            "measuredValue": self.measured_value,
            "error": self.error,
            "uncertainty": self.uncertainty,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MeasurementPoint":
        from metrocal.measurement import compute_error

        reference = _to_float(data.get("referenceValue"))
        measured = _to_float(data.get("measuredValue"))
        return cls(
            id=_to_text(data.get("id")) or new_id(),
            reference_value=reference,
            measured_value=measured,
            error=compute_error(reference, measured),
            uncertainty=_to_float(data.get("uncertainty")),
        )


@dataclass(frozen=True)
class MeasurementGroup:
    id: str
    name: str
    measurements: Tuple[MeasurementPoint, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "measurements": [m.to_dict() for m in self.measurements],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MeasurementGroup":
        return cls(
            id=_to_text(data.get("id")) or new_id(),
            name=_to_text(data.get("name")),
            measurements=tuple(MeasurementPoint.from_dict(m) for m in data.get("measurements") or []),
        )


@dataclass(frozen=True)
class CalibrationRecord:
    id: str
    equipment_id: str
    date: str
    technician: str = ""
    temperature: float = 20.0
    humidity: float = 50.0
    standard_used: str = ""
    measurement_groups: Tuple[MeasurementGroup, ...] = ()
    measurements: Tuple[MeasurementPoint, ...] = ()  # campo legado, regenerado a cada gravação
    result: CalibrationResult = CalibrationResult.APPROVED
    notes: str = ""
    ai_analysis: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "equipmentId": self.equipment_id,
            "date": self.date,
            "technician": self.technician,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "standardUsed": self.standard_used,
            "measurementGroups": [g.to_dict() for g in self.measurement_groups],
            "measurements": [m.to_dict() for m in self.measurements],
            "result": self.result.value,
            "notes": self.notes,
            "aiAnalysis": self.ai_analysis,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalibrationRecord":
        """
        Converte um documento do banco em registro.
        Registros anteriores ao suporte a múltiplos grupos recebem um único
        grupo sintético com a lista plana de medições.
        """
        if not data.get("id"):
            raise ValidationError("Registro de calibração sem identificador.")
        flat = tuple(MeasurementPoint.from_dict(m) for m in data.get("measurements") or [])
        groups = tuple(MeasurementGroup.from_dict(g) for g in data.get("measurementGroups") or [])
        if not groups:
            groups = (MeasurementGroup(id=config.LEGACY_GROUP_ID, name=config.LEGACY_GROUP_NAME, measurements=flat),)
        return cls(
            id=str(data["id"]),
            equipment_id=_to_text(data.get("equipmentId")),
            date=_to_text(data.get("date")),
            technician=_to_text(data.get("technician")),
            temperature=_to_float(data.get("temperature"), 20.0),
            humidity=_to_float(data.get("humidity"), 50.0),
            standard_used=_to_text(data.get("standardUsed")),
            measurement_groups=groups,
            measurements=flat,
            result=CalibrationResult.parse(data.get("result") or CalibrationResult.APPROVED),
            notes=_to_text(data.get("notes")),
            ai_analysis=_to_text(data.get("aiAnalysis")),
        )

    @property
    def is_legacy_derived(self) -> bool:
        return len(self.measurement_groups) == 1 and self.measurement_groups[0].id == config.LEGACY_GROUP_ID


# ==============================================================================
# ORÇAMENTOS / CUSTOS
# ==============================================================================

@dataclass(frozen=True)
class BudgetEquipmentLink:
    id: str
    tag: str
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "tag": self.tag, "name": self.name}

    @classmethod
    def from_equipment(cls, equipment: Equipment) -> "BudgetEquipmentLink":
        return cls(id=equipment.id, tag=equipment.tag, name=equipment.name)


@dataclass(frozen=True)
class BudgetRecord:
    id: str
    equipments: Tuple[BudgetEquipmentLink, ...] = ()
    provider: str = ""
    date: str = ""
    type: ServiceType = ServiceType.CALIBRATION
    cost: float = 0.0
    status: BudgetStatus = BudgetStatus.PENDING
    notes: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "equipments": [e.to_dict() for e in self.equipments],
            "provider": self.provider,
            "date": self.date,
            "type": self.type.value,
            "cost": self.cost,
            "status": self.status.value,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BudgetRecord":
        if not data.get("id"):
            raise ValidationError("Orçamento sem identificador.")
        links = data.get("equipments")
        if not links and data.get("equipmentId"):
            # Formato antigo: um único equipamento por orçamento
            links = [{
                "id": data.get("equipmentId"),
                "tag": data.get("equipmentTag"),
                "name": data.get("equipmentName"),
            }]
        return cls(
            id=str(data["id"]),
            equipments=tuple(
                BudgetEquipmentLink(id=_to_text(l.get("id")), tag=_to_text(l.get("tag")), name=_to_text(l.get("name")))
                for l in links or []
            ),
            provider=_to_text(data.get("provider")),
            date=_to_text(data.get("date")),
            type=ServiceType.parse(data.get("type") or ServiceType.CALIBRATION),
            cost=_to_float(data.get("cost")),
            status=BudgetStatus.parse(data.get("status") or BudgetStatus.PENDING),
            notes=_to_text(data.get("notes")),
        )

