# metrocal/services.py
"""
Camada de serviços: orquestra o núcleo puro (measurement, uncertainty,
spreadsheet_import) e os colaboradores externos injetados (banco de
documentos, provedor de autenticação, serviço de IA).

O banco de documentos é qualquer objeto com list / get / query / upsert /
delete / delete_batch (SqliteDocumentStore, RemoteDocumentStore ou um
falso nos testes).
"""
import logging
import math
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Tuple

from metrocal import config
from metrocal.data_models import (
    BudgetEquipmentLink, BudgetRecord, BudgetStatus, CalibrationDue, CalibrationRecord,
    CalibrationResult, Equipment, EquipmentStatus, MeasurementGroup, new_id,
)
from metrocal.errors import CollaboratorFailure, PartialImportFailure, ValidationError
from metrocal.measurement import with_legacy_measurements
from metrocal.narrative import NO_API_KEY_MESSAGE
from metrocal.spreadsheet_import import add_one_year, read_spreadsheet, reconcile_rows
from metrocal.uncertainty import UncertaintyBudget, apply_uncertainty, calculate_expanded_uncertainty, parse_resolution

ProgressCallback = Callable[[int, int], None]


def _parse_iso(value: str, what: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"{what} inválida: '{value}'. Use o formato AAAA-MM-DD.")


def _call_store(description: str, fn, *args):
    """Executa uma operação do banco convertendo falhas em CollaboratorFailure."""
    try:
        return fn(*args)
    except CollaboratorFailure:
        raise
    except Exception as e:
        logging.error(f"Erro ao {description}: {e}", exc_info=True)
        raise CollaboratorFailure(f"Erro ao {description}. Verifique sua conexão e tente novamente.") from e


# ==============================================================================
# SERVIÇOS PARA EQUIPAMENTOS
# ==============================================================================

class EquipmentService:

    def __init__(self, store, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today

    def list_equipment(self) -> List[Equipment]:
        docs = _call_store("buscar equipamentos", self.store.list, config.COLLECTION_EQUIPMENT)
        return [Equipment.from_dict(d) for d in docs]

    def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        doc = _call_store("buscar equipamento", self.store.get, config.COLLECTION_EQUIPMENT, equipment_id)
        return Equipment.from_dict(doc) if doc else None

    def save_equipment(self, equipment: Equipment) -> Equipment:
        if not equipment.tag.strip():
            raise ValidationError("A TAG do equipamento não pode ser vazia.")
        _call_store("salvar equipamento", self.store.upsert,
                    config.COLLECTION_EQUIPMENT, equipment.id, equipment.to_dict())
        logging.info(f"Equipamento {equipment.tag} ({equipment.id}) salvo.")
        return equipment

    def create_equipment(self) -> Equipment:
        """Cria um equipamento em branco para ser editado em seguida."""
        equipment = Equipment(
            id=new_id(),
            tag="NOVO-000",
            name="Novo Equipamento",
            next_calibration_date=self.today().isoformat(),
            created_at=datetime.now().isoformat(),
        )
        return self.save_equipment(equipment)

    def delete_equipment(self, equipment_id: str):
        _call_store("excluir equipamento", self.store.delete, config.COLLECTION_EQUIPMENT, equipment_id)

    def clear_all_equipment(self, batch_size: int = config.CLEAR_BATCH_SIZE) -> int:
        """Apaga todos os equipamentos em lotes pequenos, um lote por vez."""
        deleted = 0
        while True:
            docs = _call_store("buscar equipamentos", self.store.list, config.COLLECTION_EQUIPMENT)
            if not docs:
                break
            ids = [d["id"] for d in docs[:batch_size]]
            _call_store("apagar lote de equipamentos", self.store.delete_batch, config.COLLECTION_EQUIPMENT, ids)
            deleted += len(ids)
            logging.info(f"Lote de {len(ids)} equipamentos apagado.")
        return deleted

    def search_equipment(self, term: str, equipment: Optional[Iterable[Equipment]] = None) -> List[Equipment]:
        equipment = equipment if equipment is not None else self.list_equipment()
        term = (term or "").lower()
        return [
            e for e in equipment
            if any(term in (value or "").lower() for value in (
                e.name, e.tag, e.serial_number, e.manufacturer, e.model, e.supplier,
            ))
        ]

    def calibration_due_status(self, equipment: Equipment, today: Optional[date] = None,
                               days: int = config.CALIBRATION_WARNING_DAYS) -> CalibrationDue:
        if equipment.status is not EquipmentStatus.ACTIVE:
            return CalibrationDue.NOT_APPLICABLE
        today = today or self.today()
        try:
            next_date = datetime.strptime(equipment.next_calibration_date, "%Y-%m-%d").date()
        except (TypeError, ValueError):
            logging.warning(f"Equipamento {equipment.tag}: data de calibração inválida '{equipment.next_calibration_date}'.")
            return CalibrationDue.EXPIRED
        remaining = (next_date - today).days
        if remaining < 0:
            return CalibrationDue.EXPIRED
        if remaining <= days:
            return CalibrationDue.WARNING
        return CalibrationDue.OK

    def get_equipment_needing_calibration(self, days: int = config.CALIBRATION_WARNING_DAYS,
                                          equipment: Optional[List[Equipment]] = None,
                                          today: Optional[date] = None) -> Tuple[List[Equipment], List[Equipment]]:
        """Retorna (vencidos, a vencer em até `days` dias) entre os equipamentos ativos."""
        equipment = equipment if equipment is not None else self.list_equipment()
        expired, warning = [], []
        for eq in equipment:
            status = self.calibration_due_status(eq, today, days)
            if status is CalibrationDue.EXPIRED:
                expired.append(eq)
            elif status is CalibrationDue.WARNING:
                warning.append(eq)
        return expired, warning

    @staticmethod
    def build_alert_message(expired: List[Equipment], warning: List[Equipment]) -> str:
        def _fmt(iso):
            try:
                return datetime.strptime(iso, "%Y-%m-%d").strftime("%d/%m/%Y")
            except (TypeError, ValueError):
                return iso or "-"

        body = "Os seguintes equipamentos necessitam de atenção imediata:\n\n"
        if expired:
            body += "--- VENCIDOS ---\n"
            for e in expired:
                body += f"[{e.tag}] {e.name} - Venceu em: {_fmt(e.next_calibration_date)}\n"
            body += "\n"
        if warning:
            body += f"--- PRÓXIMOS DO VENCIMENTO ({config.CALIBRATION_WARNING_DAYS} Dias) ---\n"
            for e in warning:
                body += f"[{e.tag}] {e.name} - Vence em: {_fmt(e.next_calibration_date)}\n"
        body += "\nFavor providenciar a calibração."
        return body


# ==============================================================================
# SERVIÇOS PARA CALIBRAÇÕES (ciclo de vida do registro)
# ==============================================================================

class CalibrationService:
    """
    Nova -> Em edição -> Salva -> (Reedição).

    A edição em si é feita com as funções puras de metrocal.measurement;
    este serviço cria, carrega, grava e analisa os registros.
    """

    def __init__(self, store, narrative=None, auth=None, today: Callable[[], date] = date.today):
        self.store = store
        self.narrative = narrative
        self.auth = auth
        self.today = today
        self.equipment = EquipmentService(store, today)

    def _require_equipment(self, equipment_id: str) -> Equipment:
        equipment = self.equipment.get_equipment(equipment_id)
        if equipment is None:
            raise ValidationError(f"Equipamento '{equipment_id}' não encontrado.")
        return equipment

    def _technician_name(self) -> str:
        user = self.auth.current_user if self.auth is not None else None
        return (user.display_name if user else None) or config.DEFAULT_TECHNICIAN

    def new_record(self, equipment_id: str) -> CalibrationRecord:
        equipment = self._require_equipment(equipment_id)
        names = equipment.default_test_groups or (config.DEFAULT_GROUP_NAME,)
        groups = tuple(MeasurementGroup(id=new_id(), name=name) for name in names)
        return CalibrationRecord(
            id=new_id(),
            equipment_id=equipment.id,
            date=self.today().isoformat(),
            technician=self._technician_name(),
            measurement_groups=groups,
            result=CalibrationResult.APPROVED,
        )

    def load_record(self, calibration_id: str) -> CalibrationRecord:
        doc = _call_store("buscar calibração", self.store.get, config.COLLECTION_CALIBRATIONS, calibration_id)
        if not doc:
            raise ValidationError("Calibração não encontrada.")
        record = CalibrationRecord.from_dict(doc)
        if record.is_legacy_derived and not doc.get("measurementGroups"):
            logging.info(f"Calibração {calibration_id} sem grupos: grupo legado criado com {len(record.measurements)} pontos.")
        return record

    def get_history(self, equipment_id: str) -> List[CalibrationRecord]:
        """Histórico do equipamento, do mais novo para o mais antigo."""
        docs = _call_store("buscar calibrações", self.store.query,
                           config.COLLECTION_CALIBRATIONS, "equipmentId", equipment_id)
        records = [CalibrationRecord.from_dict(d) for d in docs]
        return sorted(records, key=lambda r: r.date, reverse=True)

    def default_resolution(self, equipment: Equipment) -> float:
        return parse_resolution(equipment.resolution)

    def calculate_uncertainty(self, record: CalibrationRecord, standard_uncertainty: float,
                              resolution: float, coverage_factor: float = config.DEFAULT_COVERAGE_FACTOR,
                              group_id: Optional[str] = None) -> Tuple[CalibrationRecord, UncertaintyBudget]:
        budget = calculate_expanded_uncertainty(standard_uncertainty, resolution, coverage_factor)
        return apply_uncertainty(record, budget.expanded, group_id), budget

    def save_record(self, record: CalibrationRecord) -> CalibrationRecord:
        """
        Grava o registro (upsert pelo id) e atualiza as datas de calibração
        do equipamento. Em caso de falha o chamador continua com a sua cópia.
        """
        if not record.equipment_id:
            raise ValidationError("Calibração sem equipamento associado.")
        if not record.measurement_groups:
            raise ValidationError("É necessário pelo menos um grupo de medição.")
        calibration_date = _parse_iso(record.date, "Data da calibração")

        to_save = with_legacy_measurements(record)
        _call_store("salvar calibração", self.store.upsert,
                    config.COLLECTION_CALIBRATIONS, to_save.id, to_save.to_dict())

        if self.equipment.get_equipment(record.equipment_id) is None:
            logging.error(f"Calibração {record.id} salva, mas o equipamento {record.equipment_id} não existe.")
            raise CollaboratorFailure("Equipamento da calibração não encontrado no banco de dados.")
        _call_store("atualizar datas do equipamento", self.store.upsert,
                    config.COLLECTION_EQUIPMENT, record.equipment_id, {
                        "lastCalibrationDate": record.date,
                        "nextCalibrationDate": add_one_year(calibration_date).isoformat(),
                    })
        logging.info(f"Calibração {to_save.id} do equipamento {record.equipment_id} salva.")
        return to_save

    def generate_analysis(self, record: CalibrationRecord, equipment: Optional[Equipment] = None) -> CalibrationRecord:
        """Pede o parecer ao serviço de IA e o acrescenta às observações."""
        equipment = equipment or self._require_equipment(record.equipment_id)
        if self.narrative is None:
            analysis = NO_API_KEY_MESSAGE
        else:
            analysis = self.narrative.analyze(equipment, record)
        notes = f"{record.notes}\n\n{analysis}" if record.notes else analysis
        return replace(record, ai_analysis=analysis, notes=notes)


# ==============================================================================
# SERVIÇOS PARA ORÇAMENTOS / CUSTOS
# ==============================================================================

@dataclass(frozen=True)
class BudgetTotals:
    total: float    # Concluído + Aprovado
    pending: float  # Pendente


class BudgetService:

    def __init__(self, store, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today

    def list_budgets(self) -> List[BudgetRecord]:
        docs = _call_store("buscar orçamentos", self.store.list, config.COLLECTION_BUDGETS)
        budgets = [BudgetRecord.from_dict(d) for d in docs]
        return sorted(budgets, key=lambda b: b.date, reverse=True)

    def save_budget(self, budget: BudgetRecord) -> BudgetRecord:
        if not budget.equipments or not budget.provider.strip() or not math.isfinite(budget.cost) or budget.cost <= 0:
            raise ValidationError("Adicione pelo menos um equipamento, o fornecedor e o valor.")
        budget = replace(
            budget,
            id=budget.id or new_id(),
            date=budget.date or self.today().isoformat(),
        )
        _call_store("salvar orçamento", self.store.upsert, config.COLLECTION_BUDGETS, budget.id, budget.to_dict())
        logging.info(f"Orçamento {budget.id} salvo ({len(budget.equipments)} equipamentos, R$ {budget.cost:.2f}).")
        return budget

    def delete_budget(self, budget_id: str):
        _call_store("excluir orçamento", self.store.delete, config.COLLECTION_BUDGETS, budget_id)

    @staticmethod
    def add_equipment_link(budget: BudgetRecord, equipment: Equipment) -> BudgetRecord:
        if any(link.id == equipment.id for link in budget.equipments):
            raise ValidationError("Este equipamento já foi adicionado à lista.")
        return replace(budget, equipments=budget.equipments + (BudgetEquipmentLink.from_equipment(equipment),))

    @staticmethod
    def remove_equipment_link(budget: BudgetRecord, equipment_id: str) -> BudgetRecord:
        return replace(budget, equipments=tuple(e for e in budget.equipments if e.id != equipment_id))

    @staticmethod
    def filter_budgets(budgets: Iterable[BudgetRecord], year: Optional[int] = None, term: str = "") -> List[BudgetRecord]:
        term = (term or "").lower()
        result = []
        for b in budgets:
            if year is not None and not b.date.startswith(f"{year}-"):
                continue
            haystack = " ".join([e.tag for e in b.equipments] + [e.name for e in b.equipments] + [b.provider])
            if term and term not in haystack.lower():
                continue
            result.append(b)
        return result

    @staticmethod
    def budget_totals(budgets: Iterable[BudgetRecord]) -> BudgetTotals:
        total, pending = 0.0, 0.0
        for b in budgets:
            if b.status in (BudgetStatus.COMPLETED, BudgetStatus.APPROVED):
                total += b.cost
            elif b.status is BudgetStatus.PENDING:
                pending += b.cost
        return BudgetTotals(total=total, pending=pending)


# ==============================================================================
# SERVIÇOS PARA IMPORTAÇÃO EM MASSA
# ==============================================================================

@dataclass(frozen=True)
class ImportSummary:
    processed: int
    total: int
    row_count: int


class ImportService:

    def __init__(self, store, batch_size: int = config.IMPORT_BATCH_SIZE, max_workers: Optional[int] = None):
        if batch_size <= 0:
            raise ValueError("batch_size deve ser positivo.")
        self.store = store
        self.batch_size = batch_size
        self.max_workers = max_workers or batch_size

    def persist_in_batches(self, equipment: List[Equipment], progress: Optional[ProgressCallback] = None) -> int:
        """
        Grava os equipamentos em lotes sequenciais; dentro do lote as gravações
        são concorrentes. Um lote com falha interrompe os seguintes, mas os
        lotes já gravados permanecem.
        """
        total = len(equipment)
        processed = 0
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for start in range(0, total, self.batch_size):
                chunk = equipment[start:start + self.batch_size]
                futures = [
                    executor.submit(self.store.upsert, config.COLLECTION_EQUIPMENT, eq.id, eq.to_dict())
                    for eq in chunk
                ]
                wait(futures)
                try:
                    for future in futures:
                        future.result()
                except Exception as e:
                    logging.error(f"Falha no lote iniciado em {start}: {processed} de {total} gravados.", exc_info=True)
                    raise PartialImportFailure(processed, total, e) from e

                processed += len(chunk)
                logging.info(f"Processando {processed} de {total} equipamentos...")
                if progress is not None:
                    progress(processed, total)
        return processed

    def import_rows(self, rows: Iterable[dict], progress: Optional[ProgressCallback] = None,
                    today: Optional[date] = None) -> ImportSummary:
        result = reconcile_rows(rows, today)
        processed = self.persist_in_batches(result.equipment, progress)
        logging.info(f"{processed} equipamentos processados com sucesso!")
        return ImportSummary(processed=processed, total=len(result.equipment), row_count=result.row_count)

    def import_file(self, filename: str, progress: Optional[ProgressCallback] = None) -> ImportSummary:
        try:
            rows = read_spreadsheet(filename)
        except Exception as e:
            logging.error(f"Impossível ler o arquivo {filename}", exc_info=True)
            raise ValidationError(f"Erro ao ler arquivo. Verifique o formato.\n{e}") from e
        return self.import_rows(rows, progress)
