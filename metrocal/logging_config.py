# metrocal/logging_config.py
import logging
import logging.handlers
import sys
import os
from datetime import datetime
from metrocal import config

LOG_DIR = config.LOG_DIR


def setup_logging(log_dir=None):
    """Configura o logging para gravar em arquivo e mostrar no console."""
    log_dir = log_dir or LOG_DIR

    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    log_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)-8s - %(name)-15s - %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # 1. Arquivo diário com rotação
    log_filename = os.path.join(log_dir, f"metrologia_{datetime.now().strftime('%Y-%m-%d')}.log")
    file_handler = logging.handlers.RotatingFileHandler(
        log_filename, maxBytes=5*1024*1024, backupCount=5, encoding='utf-8'
    )
    file_handler.setFormatter(log_formatter)
    file_handler.setLevel(logging.INFO)

    # 2. Console (útil durante o desenvolvimento)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_formatter)
    console_handler.setLevel(logging.DEBUG)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.info("Sistema de logging configurado.")
    return log_filename
