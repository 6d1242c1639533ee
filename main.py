# main.py
import argparse
import logging
import sys

from PySide6.QtCore import QCoreApplication, QThread

from database import SqliteDocumentStore
from metrocal import config
from metrocal.auth_manager import AuthManager
from metrocal.backup_manager import create_backup
from metrocal.logging_config import setup_logging
from metrocal.remote_store import RemoteDocumentStore
from metrocal.services import BudgetService, EquipmentService, ImportService
from metrocal.workers.export_worker import TableExportWorker
from metrocal.workers.import_worker import ImportWorker


def build_parser():
    parser = argparse.ArgumentParser(prog="metrologia", description="Gestão de calibração de equipamentos")
    parser.add_argument("--remote", action="store_true", help="Usa o banco de documentos do servidor (requer sessão salva)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Importa equipamentos de uma planilha (.xlsx, .xls, .csv)")
    p_import.add_argument("file")

    p_export = sub.add_parser("export", help="Exporta equipamentos ou orçamentos para .xlsx")
    p_export.add_argument("kind", choices=TableExportWorker.KINDS)
    p_export.add_argument("file")

    sub.add_parser("alerts", help="Lista equipamentos vencidos ou próximos do vencimento")
    return parser


def run_worker(app, worker):
    """Executa o worker em uma QThread e devolve o código de saída."""
    outcome = {"code": 0}
    thread = QThread()
    worker.moveToThread(thread)

    def on_error(message):
        logging.error(message)
        print(f"ERRO: {message}", file=sys.stderr)
        outcome["code"] = 1
        thread.quit()

    def on_finished(*args):
        thread.quit()

    if hasattr(worker, "progress_updated"):
        worker.progress_updated.connect(lambda percent, message: print(f"[{percent:3d}%] {message}"))
    worker.finished.connect(on_finished)
    worker.error.connect(on_error)
    thread.started.connect(worker.run)
    thread.finished.connect(app.quit)

    thread.start()
    app.exec()
    thread.wait()
    return outcome["code"]


def main(argv=None):
    args = build_parser().parse_args(argv)

    app = QCoreApplication(sys.argv[:1])
    setup_logging()
    logging.info("=====================================")
    logging.info(f"||   Metrologia {config.VERSIONE}              ||")
    logging.info("=====================================")
    logging.info(f"APP_DATA_DIR: {config.APP_DATA_DIR}")
    logging.info(f"DB_PATH: {config.DB_PATH}")

    if args.remote:
        auth = AuthManager()
        if not auth.load_session_from_disk():
            print("Nenhuma sessão válida encontrada. Faça login antes de usar --remote.", file=sys.stderr)
            return 1
        store = RemoteDocumentStore(auth=auth)
    else:
        create_backup()
        store = SqliteDocumentStore(config.DB_PATH)

    if args.command == "import":
        worker = ImportWorker(ImportService(store), args.file)
        worker.finished.connect(
            lambda processed, rows: print(f"{processed} equipamentos importados ({rows} linhas lidas).")
        )
        return run_worker(app, worker)

    if args.command == "export":
        worker = TableExportWorker(
            args.kind, args.file,
            equipment_service=EquipmentService(store),
            budget_service=BudgetService(store),
        )
        worker.finished.connect(print)
        return run_worker(app, worker)

    equipment = EquipmentService(store)
    expired, warning = equipment.get_equipment_needing_calibration()
    if not expired and not warning:
        print("Nenhum equipamento precisa de calibração.")
    else:
        print(equipment.build_alert_message(expired, warning))
    return 0


if __name__ == '__main__':
    code = main()
    logging.info("Aplicação encerrada.")
    sys.exit(code)
