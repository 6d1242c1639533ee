import pandas as pd

from metrocal.data_models import Equipment
from metrocal.services import BudgetService, EquipmentService, ImportService
from metrocal.workers.export_worker import TableExportWorker
from metrocal.workers.import_worker import ImportWorker


def _capture(signal):
    received = []
    signal.connect(lambda *args: received.append(args))
    return received


def test_import_worker_emits_progress_and_finished(store, tmp_path):
    path = tmp_path / "lista.csv"
    path.write_text("Tag,Descrição\nA-1,Régua\nA-2,Trena\n", encoding="utf-8")
    worker = ImportWorker(ImportService(store), str(path))
    progress, finished, errors = _capture(worker.progress_updated), _capture(worker.finished), _capture(worker.error)

    worker.run()

    assert errors == []
    assert finished == [(2, 2)]
    assert progress[-1][0] == 100
    assert {d["id"] for d in store.list("equipment")} == {"A-1", "A-2"}


def test_import_worker_reports_errors(store, tmp_path):
    worker = ImportWorker(ImportService(store), str(tmp_path / "nao_existe.xlsx"))
    finished, errors = _capture(worker.finished), _capture(worker.error)
    worker.run()
    assert finished == []
    assert len(errors) == 1


def test_export_worker_writes_equipment(store, tmp_path):
    EquipmentService(store).save_equipment(Equipment(id="A", tag="A", name="Régua"))
    path = tmp_path / "equipamentos.xlsx"
    worker = TableExportWorker("equipment", str(path), equipment_service=EquipmentService(store))
    finished = _capture(worker.finished)
    worker.run()
    assert len(finished) == 1
    assert pd.read_excel(path, dtype=str).loc[0, "Tag"] == "A"


def test_export_worker_with_no_budgets(store, tmp_path):
    path = tmp_path / "orcamentos.xlsx"
    worker = TableExportWorker("budgets", str(path), budget_service=BudgetService(store))
    finished = _capture(worker.finished)
    worker.run()
    assert finished == [("Nenhum registro encontrado para exportar.",)]
    assert not path.exists()
