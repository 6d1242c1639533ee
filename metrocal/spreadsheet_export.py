# metrocal/spreadsheet_export.py
import logging
from datetime import datetime
from typing import Iterable, List

import pandas as pd

from metrocal.data_models import BudgetRecord, Equipment

EQUIPMENT_COLUMNS = [
    "Tag", "Descrição", "Fabricante", "Modelo", "Fornecedor", "Nº Série",
    "Faixa de Medição", "Resolução", "Critério de Aceitação", "Próx. Calibração", "Status",
]
BUDGET_COLUMNS = [
    "Data", "Equipamentos (Tags)", "Equipamentos (Nomes)", "Qtd Equip.", "Tipo",
    "Fornecedor", "Status", "Valor Total (R$)", "Observações",
]


def _br_date(iso_date: str) -> str:
    try:
        return datetime.strptime(iso_date, "%Y-%m-%d").strftime("%d/%m/%Y")
    except (TypeError, ValueError):
        return iso_date or ""


def equipment_rows(equipment: Iterable[Equipment]) -> List[dict]:
    """Projeção plana dos equipamentos, usada na lista para orçamento."""
    return [{
        "Tag": eq.tag,
        "Descrição": eq.name,
        "Fabricante": eq.manufacturer,
        "Modelo": eq.model,
        "Fornecedor": eq.supplier or "",
        "Nº Série": eq.serial_number,
        "Faixa de Medição": eq.range,
        "Resolução": eq.resolution,
        "Critério de Aceitação": eq.accuracy,
        "Próx. Calibração": eq.next_calibration_date,
        "Status": eq.status.value,
    } for eq in equipment]


def budget_rows(budgets: Iterable[BudgetRecord]) -> List[dict]:
    return [{
        "Data": _br_date(b.date),
        "Equipamentos (Tags)": ", ".join(e.tag for e in b.equipments),
        "Equipamentos (Nomes)": ", ".join(e.name for e in b.equipments),
        "Qtd Equip.": len(b.equipments),
        "Tipo": b.type.value,
        "Fornecedor": b.provider,
        "Status": b.status.value,
        "Valor Total (R$)": b.cost,
        "Observações": b.notes,
    } for b in budgets]


def write_workbook(rows: List[dict], output_path: str, sheet_name: str, columns: List[str]) -> int:
    """
    Grava as linhas em um .xlsx formatado (cabeçalho em negrito, tabela com filtro).
    Retorna o número de linhas gravadas.
    """
    df = pd.DataFrame(rows, columns=columns)
    num_rows, num_cols = df.shape

    writer = pd.ExcelWriter(output_path, engine='xlsxwriter')
    df.to_excel(writer, sheet_name=sheet_name, index=False, header=False, startrow=1)

    workbook = writer.book
    worksheet = writer.sheets[sheet_name]

    header_format = workbook.add_format({
        'bold': True,
        'text_wrap': True,
        'valign': 'vcenter',
        'fg_color': '#D7E4BC',
        'border': 1
    })

    worksheet.add_table(0, 0, max(num_rows, 1), num_cols - 1, {
        'columns': [{'header': col} for col in columns],
        'header_row': True,
        'style': 'Table Style Light 15'
    })
    for col_num, value in enumerate(columns):
        worksheet.write(0, col_num, value, header_format)
        worksheet.set_column(col_num, col_num, max(14, len(value) + 4))

    writer.close()
    logging.info(f"Planilha '{sheet_name}' exportada: {num_rows} linhas em {output_path}")
    return num_rows
