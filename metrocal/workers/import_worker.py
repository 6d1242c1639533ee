# metrocal/workers/import_worker.py
import logging

from PySide6.QtCore import QObject, Signal

from metrocal.errors import MetrologyError


class ImportWorker(QObject):
    """Importa uma planilha de equipamentos em uma thread separada."""
    progress_updated = Signal(int, str)
    finished = Signal(int, int)
    error = Signal(str)

    def __init__(self, import_service, filename):
        super().__init__()
        self.import_service = import_service
        self.filename = filename

    def _on_progress(self, processed, total):
        percent = int((processed / total) * 100) if total else 100
        self.progress_updated.emit(percent, f"Processando {processed} de {total} equipamentos...")

    def run(self):
        logging.info(f"Iniciando importação do arquivo: {self.filename}")
        try:
            summary = self.import_service.import_file(self.filename, progress=self._on_progress)
        except MetrologyError as e:
            logging.error(f"Importação falhou: {e}")
            self.error.emit(str(e))
            return
        except Exception as e:
            logging.error("Erro inesperado durante a importação.", exc_info=True)
            self.error.emit(f"Ocorreu um erro inesperado durante a importação:\n{e}")
            return

        if summary.total == 0:
            logging.warning(f"Nenhum equipamento encontrado em {self.filename}.")
        self.finished.emit(summary.processed, summary.row_count)
