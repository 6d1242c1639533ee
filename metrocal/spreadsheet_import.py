# metrocal/spreadsheet_import.py
"""
Reconciliação de planilhas de equipamentos.

Planilhas reais chegam com cabeçalhos livres ("Valor Tolerância (mm)"),
células mescladas que deixam linhas em branco e várias linhas para o
mesmo equipamento (uma por tipo de teste). Aqui essas linhas viram um
Equipment por TAG, com os nomes dos testes em default_test_groups.
"""
import csv
import logging
import math
import re
import time
import unicodedata
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from metrocal import config
from metrocal.data_models import Equipment, EquipmentStatus

# --- CANDIDATOS DE CABEÇALHO (ordem = prioridade) ---
TAG_COLUMNS = ['codigo', 'tag', 'id', 'identificacao']
TEST_GROUP_COLUMNS = ['tipo', 'ensaio', 'grandeza', 'complemento', 'subtipo']
TEST_GROUP_FALLBACK_COLUMNS = ['faixa', 'range']
NAME_COLUMNS = ['descricao', 'nome', 'equipamento', 'instrumento']
MANUFACTURER_COLUMNS = ['marca', 'fabricante']
MODEL_COLUMNS = ['modelo']
SERIAL_COLUMNS = ['serie', 'serial', 'sn']
RANGE_COLUMNS = ['faixa', 'range', 'capacidade']
RESOLUTION_COLUMNS = ['resolucao']
LOCATION_COLUMNS = ['localizacao', 'setor', 'area']
ACCURACY_COLUMNS = [
    'criterio', 'tolerancia', 'tol', 'erro', 'ema',
    'exatidao', 'classe', 'accuracy', 'limite',
]
SUPPLIER_COLUMNS = ['fornecedor', 'laboratorio', 'calibrado']
OPENING_PRESSURE_COLUMNS = ['abertura', 'pressure']
CLOSING_PRESSURE_COLUMNS = ['fechamento', 'blowdown']
NEXT_CALIBRATION_COLUMNS = ['proxima', 'vencimento', 'validade']

DEFAULT_NAME = 'Sem Nome'
SPREADSHEET_EPOCH = date(1899, 12, 30)
MIN_SPREADSHEET_SERIAL = 20000

_COMBINING_MARKS = re.compile(r'[\u0300-\u036f]')
_NON_ALNUM = re.compile(r'[^a-z0-9]')
_UNSAFE_TAG_CHARS = re.compile(r'[^a-zA-Z0-9\-_]')
_BR_DATE = re.compile(r'^\d{1,2}/\d{1,2}/\d{4}$')
_ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_EXCEL_DATETIME = r"^(\d{4}-\d{2}-\d{2}) 00:00:00$"
CSV_DELIMITERS = ";,\t|"


@dataclass(frozen=True)
class ImportResult:
    equipment: List[Equipment]
    row_count: int


# ==============================================================================
# SEÇÃO 1: CABEÇALHOS
# ==============================================================================

def normalize_header(text) -> str:
    """Minúsculas, sem acentos e só letras/números: "Tolerância (mm)" -> "toleranciamm"."""
    text = unicodedata.normalize('NFD', str(text).lower().strip())
    text = _COMBINING_MARKS.sub('', text)
    return _NON_ALNUM.sub('', text)


def find_column_value(row: dict, candidates: Sequence[str]):
    """
    Retorna o valor da primeira coluna cujo cabeçalho normalizado CONTÉM
    o candidato normalizado, testando os candidatos em ordem de prioridade.
    O valor é retornado mesmo se estiver em branco; "" se nada casar.
    """
    headers = [(key, normalize_header(key)) for key in row.keys()]
    for candidate in candidates:
        target = normalize_header(candidate)
        if not target:
            continue
        for key, normalized in headers:
            if target in normalized:
                return row[key]
    return ''


def _cell_text(value) -> str:
    if value is None:
        return ''
    if isinstance(value, float) and math.isnan(value):
        return ''
    return str(value).strip()


# ==============================================================================
# SEÇÃO 2: TAG E DATAS
# ==============================================================================

def sanitize_tag(tag) -> str:
    """Transforma a TAG em identificador seguro para o banco de documentos."""
    return _UNSAFE_TAG_CHARS.sub('_', str(tag).strip()).upper()


def placeholder_tag(index: int) -> str:
    return f"IMP-{int(time.time() * 1000)}-{index}"


def add_one_year(day: date) -> date:
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        # 29/02 -> 01/03 do ano seguinte
        return day.replace(year=day.year + 1, month=3, day=1)


def _is_valid_iso(text: str) -> bool:
    try:
        datetime.strptime(text, '%Y-%m-%d')
        return True
    except ValueError:
        return False


def normalize_date(value, today: Optional[date] = None) -> str:
    """
    Normaliza a data da próxima calibração para YYYY-MM-DD.

    Aceita DD/MM/AAAA, AAAA-MM-DD ou um número serial de planilha (> 20000).
    Vazio ou qualquer outro formato vira "hoje + 1 ano".
    """
    today = today or date.today()
    fallback = add_one_year(today).isoformat()
    text = _cell_text(value)
    if not text:
        return fallback

    if _BR_DATE.match(text):
        day, month, year = text.split('/')
        iso = f"{year}-{month.zfill(2)}-{day.zfill(2)}"
        if _is_valid_iso(iso):
            return iso
        logging.warning(f"Data inválida na planilha: '{text}'. Usando data padrão.")
        return fallback

    if _ISO_DATE.match(text):
        if _is_valid_iso(text):
            return text
        logging.warning(f"Data inválida na planilha: '{text}'. Usando data padrão.")
        return fallback

    try:
        serial = float(text)
    except ValueError:
        serial = None
    if serial is not None and math.isfinite(serial) and serial > MIN_SPREADSHEET_SERIAL:
        return (SPREADSHEET_EPOCH + timedelta(days=math.floor(serial))).isoformat()

    return fallback


# ==============================================================================
# SEÇÃO 3: AGREGAÇÃO DAS LINHAS
# ==============================================================================

def resolve_test_group_name(row: dict, index: int) -> str:
    name = _cell_text(find_column_value(row, TEST_GROUP_COLUMNS)) \
        or _cell_text(find_column_value(row, TEST_GROUP_FALLBACK_COLUMNS))
    return name or f"{config.AUTO_GROUP_PREFIX}{index + 1}"


def _text(row: dict, candidates: Sequence[str], default: str = '') -> str:
    return _cell_text(find_column_value(row, candidates)) or default


def build_equipment(row: dict, equipment_id: str, tag: str, test_group: str,
                    today: Optional[date] = None) -> Equipment:
    return Equipment(
        id=equipment_id,
        tag=tag,
        name=_text(row, NAME_COLUMNS, DEFAULT_NAME),
        manufacturer=_text(row, MANUFACTURER_COLUMNS),
        model=_text(row, MODEL_COLUMNS),
        serial_number=_text(row, SERIAL_COLUMNS),
        range=_text(row, RANGE_COLUMNS),
        resolution=_text(row, RESOLUTION_COLUMNS),
        accuracy=_text(row, ACCURACY_COLUMNS),
        location=_text(row, LOCATION_COLUMNS),
        supplier=_text(row, SUPPLIER_COLUMNS),
        status=EquipmentStatus.ACTIVE,
        next_calibration_date=normalize_date(find_column_value(row, NEXT_CALIBRATION_COLUMNS), today),
        created_at=datetime.now().isoformat(),
        opening_pressure=_text(row, OPENING_PRESSURE_COLUMNS),
        closing_pressure=_text(row, CLOSING_PRESSURE_COLUMNS),
        default_test_groups=(test_group,),
    )


def drop_placeholder_groups(equipment: Equipment) -> Equipment:
    """Um único grupo gerado automaticamente ("Teste N") não tem significado."""
    groups = equipment.default_test_groups
    if groups is not None and len(groups) == 1 and groups[0].startswith(config.AUTO_GROUP_PREFIX):
        return replace(equipment, default_test_groups=None)
    return equipment


def reconcile_rows(rows: Iterable[dict], today: Optional[date] = None) -> ImportResult:
    """
    Agrega as linhas da planilha em equipamentos, uma entrada por TAG.

    Linhas sem TAG herdam a TAG anterior (célula mesclada). Linhas com TAG
    repetida acrescentam o seu nome de teste ao equipamento já criado.
    """
    equipment_map: Dict[str, Equipment] = {}
    last_valid_tag = ''
    row_count = 0

    for index, row in enumerate(rows):
        row_count += 1
        tag = _cell_text(find_column_value(row, TAG_COLUMNS))

        if tag == '' and last_valid_tag:
            tag = last_valid_tag
        elif tag != '':
            last_valid_tag = tag
        else:
            tag = placeholder_tag(index)
            last_valid_tag = tag
            logging.warning(f"Linha {index + 2}: TAG ausente, gerado identificador provisório {tag}.")

        doc_id = sanitize_tag(tag)
        test_group = resolve_test_group_name(row, index)

        existing = equipment_map.get(doc_id)
        if existing is not None:
            groups = existing.default_test_groups or ()
            if test_group not in groups:
                equipment_map[doc_id] = replace(existing, default_test_groups=groups + (test_group,))
        else:
            equipment_map[doc_id] = build_equipment(row, doc_id, tag, test_group, today)

    equipment = [drop_placeholder_groups(eq) for eq in equipment_map.values()]
    logging.info(f"Planilha analisada: {row_count} linhas -> {len(equipment)} equipamentos.")
    return ImportResult(equipment=equipment, row_count=row_count)


# ==============================================================================
# SEÇÃO 4: LEITURA DO ARQUIVO
# ==============================================================================

def sniff_csv_delimiter(filename: str) -> str:
    """Detecta o separador entre ; , tab e |. Arquivo de uma só coluna usa ','."""
    with open(filename, 'r', encoding='utf-8', newline='') as f:
        sample = f.read(2048)
    try:
        return csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        return ','


def read_spreadsheet(filename: str) -> List[dict]:
    """Lê a primeira planilha como texto, com células vazias como ''."""
    if filename.lower().endswith('.csv'):
        df = pd.read_csv(filename, dtype=str, sep=sniff_csv_delimiter(filename)).fillna('')
    else:
        df = pd.read_excel(filename, dtype=str).fillna('')
    df.columns = [str(c) for c in df.columns]
    # células de data do Excel chegam como "2025-03-15 00:00:00"
    df = df.apply(lambda col: col.str.replace(_EXCEL_DATETIME, r"\1", regex=True))
    logging.info(f"Arquivo '{filename}' lido: {len(df)} linhas, colunas: {list(df.columns)}")
    return df.to_dict(orient='records')
