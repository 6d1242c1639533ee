# metrocal/config.py
import os
import sys
import configparser

from dotenv import load_dotenv

load_dotenv()


def get_base_dir():
    """Retorna o caminho da pasta do executável (ou do projeto, em desenvolvimento)."""
    if getattr(sys, 'frozen', False):
        return os.path.dirname(sys.executable)
    else:
        return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def get_app_data_dir():
    """
    Retorna a pasta de dados da aplicação, criando-a se não existir.
    (ex. C:\\Users\\Nome\\AppData\\Roaming\\Metrologia)
    """
    APP_NAME = "Metrologia"

    if sys.platform == "win32":
        app_data_path = os.path.join(os.environ['APPDATA'], APP_NAME)
    else:  # Mac/Linux
        app_data_path = os.path.join(os.path.expanduser('~'), '.' + APP_NAME)

    os.makedirs(app_data_path, exist_ok=True)
    return app_data_path


# --- CAMINHOS ---
BASE_DIR = get_base_dir()
APP_DATA_DIR = get_app_data_dir()

DB_PATH = os.path.join(APP_DATA_DIR, "metrologia.db")
SESSION_FILE = os.path.join(APP_DATA_DIR, "session.json")
BACKUP_DIR = os.path.join(APP_DATA_DIR, "backups")
LOG_DIR = os.path.join(APP_DATA_DIR, "logs")
# O config.ini continua sendo lido da pasta do programa
CONFIG_INI_PATH = os.path.join(BASE_DIR, "config.ini")

VERSIONE = "1.4.0"

# --- COLEÇÕES DO BANCO DE DOCUMENTOS ---
COLLECTION_EQUIPMENT = "equipment"
COLLECTION_CALIBRATIONS = "calibrations"
COLLECTION_BUDGETS = "budgets"

# --- REGRAS DE NEGÓCIO ---
IMPORT_BATCH_SIZE = 20
CLEAR_BATCH_SIZE = 50
DEFAULT_COVERAGE_FACTOR = 2
CALIBRATION_WARNING_DAYS = 30
DEFAULT_GROUP_NAME = "Teste Padrão"
DEFAULT_TECHNICIAN = "Técnico"
LEGACY_GROUP_ID = "default"
LEGACY_GROUP_NAME = "Dados de Medição"
AUTO_GROUP_PREFIX = "Teste "

# --- SEGURANÇA / SERVIÇOS EXTERNOS ---
SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")


def _read_ini():
    parser = configparser.ConfigParser()
    if os.path.exists(CONFIG_INI_PATH):
        parser.read(CONFIG_INI_PATH, encoding='utf-8')
    return parser


def load_server_url():
    """Lê a URL do servidor do config.ini."""
    return _read_ini().get('server', 'url', fallback='http://localhost:8000')


def load_ai_model():
    """Lê o modelo de IA do config.ini."""
    return _read_ini().get('ai', 'model', fallback='claude-3-5-haiku-latest')


SERVER_URL = load_server_url()
AI_MODEL = load_ai_model()
