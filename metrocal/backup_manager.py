# metrocal/backup_manager.py
import os
import shutil
import logging
from datetime import datetime
from typing import Optional

from metrocal import config

BACKUP_RETENTION_COUNT = 10  # Número de cópias mantidas


def create_backup(db_file: Optional[str] = None, backup_dir: Optional[str] = None) -> Optional[str]:
    """Copia o banco local para a pasta de backup com um carimbo de data/hora."""
    db_file = db_file or config.DB_PATH
    backup_dir = backup_dir or config.BACKUP_DIR
    os.makedirs(backup_dir, exist_ok=True)

    if not os.path.exists(db_file):
        logging.warning(f"Banco '{db_file}' não encontrado. Backup ignorado.")
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    base = os.path.splitext(os.path.basename(db_file))[0]
    backup_path = os.path.join(backup_dir, f"{base}_{timestamp}.db.bak")

    try:
        shutil.copy2(db_file, backup_path)
        logging.info(f"Backup criado: {backup_path}")
    except OSError:
        logging.error("Erro ao criar o backup.", exc_info=True)
        return None
    _rotate_old_backups(backup_dir)
    return backup_path


def _rotate_old_backups(backup_dir: str):
    """Mantém apenas os últimos BACKUP_RETENTION_COUNT backups."""
    backups = [os.path.join(backup_dir, f) for f in os.listdir(backup_dir) if f.lower().endswith(".db.bak")]
    # o nome carrega o carimbo de data/hora, então a ordem alfabética é cronológica
    backups.sort(reverse=True)
    for f in backups[BACKUP_RETENTION_COUNT:]:
        try:
            os.remove(f)
            logging.info(f"Backup antigo removido: {f}")
        except OSError:
            logging.warning(f"Impossível remover o backup: {f}", exc_info=True)


def restore_from_backup(backup_path: str, db_file: Optional[str] = None) -> bool:
    """Restaura o banco a partir de um backup, sobrescrevendo o atual."""
    db_file = db_file or config.DB_PATH
    try:
        shutil.copy2(backup_path, db_file)
        logging.warning(f"Banco restaurado a partir de: {backup_path}")
        return True
    except OSError:
        logging.critical(f"Erro crítico ao restaurar o backup: {backup_path}", exc_info=True)
        return False
