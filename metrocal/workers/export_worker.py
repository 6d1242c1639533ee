# metrocal/workers/export_worker.py
import logging

from PySide6.QtCore import QObject, Signal

from metrocal import spreadsheet_export


class TableExportWorker(QObject):
    """
    Exporta a lista de equipamentos ou de orçamentos para um .xlsx formatado.
    `kind` é 'equipment' ou 'budgets'.
    """
    finished = Signal(str)
    error = Signal(str)

    KINDS = ("equipment", "budgets")

    def __init__(self, kind, output_path, equipment_service=None, budget_service=None):
        super().__init__()
        if kind not in self.KINDS:
            raise ValueError(f"Tipo de exportação desconhecido: '{kind}'")
        self.kind = kind
        self.output_path = output_path
        self.equipment_service = equipment_service
        self.budget_service = budget_service

    def _collect(self):
        if self.kind == "equipment":
            rows = spreadsheet_export.equipment_rows(self.equipment_service.list_equipment())
            return rows, "Equipamentos", spreadsheet_export.EQUIPMENT_COLUMNS
        rows = spreadsheet_export.budget_rows(self.budget_service.list_budgets())
        return rows, "Orçamentos", spreadsheet_export.BUDGET_COLUMNS

    def run(self):
        try:
            logging.info(f"Iniciando exportação de '{self.kind}' para {self.output_path}")
            rows, sheet_name, columns = self._collect()
            if not rows:
                self.finished.emit("Nenhum registro encontrado para exportar.")
                return
            count = spreadsheet_export.write_workbook(rows, self.output_path, sheet_name, columns)
            self.finished.emit(f"{count} registros exportados com sucesso em:\n{self.output_path}")
        except Exception as e:
            logging.error("Erro durante a exportação da tabela.", exc_info=True)
            self.error.emit(f"Ocorreu um erro inesperado durante a exportação:\n{e}")
