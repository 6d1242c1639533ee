# metrocal/narrative.py
import logging
from typing import Iterable

from anthropic import Anthropic

from metrocal import config
from metrocal.data_models import CalibrationRecord, Equipment, MeasurementPoint
from metrocal.measurement import combined_indicator

NO_API_KEY_MESSAGE = "API Key não configurada. Impossível gerar análise."
EMPTY_RESPONSE_MESSAGE = "Não foi possível gerar a análise."
SERVICE_ERROR_MESSAGE = "Erro ao conectar com serviço de IA."
ANALYSIS_PREFIX = "PARECER GERADO POR IA:"


def _point_lines(points: Iterable[MeasurementPoint]) -> str:
    return "\n".join(
        f"- Padrão: {m.reference_value}, Medido: {m.measured_value}, Erro: {m.error}, "
        f"Incerteza: {m.uncertainty}, Erro Combinado (√(E²+U²)): "
        f"{combined_indicator(m.error, m.uncertainty):.4f}"
        for m in points
    )


def build_analysis_prompt(equipment: Equipment, record: CalibrationRecord) -> str:
    """Monta o prompt com os dados do equipamento e todos os grupos de medição."""
    if record.measurement_groups:
        measurements_text = "\n\n".join(
            f"GRUPO DE TESTE: {group.name}\n" + _point_lines(group.measurements)
            for group in record.measurement_groups
        )
    else:
        measurements_text = _point_lines(record.measurements)

    return f"""
VOCÊ É UMA INTELIGÊNCIA ARTIFICIAL (IA) DO SISTEMA DE METROLOGIA.
NÃO atue como engenheiro, técnico ou humano. NÃO use primeira pessoa (ex: "Eu analisei", "Minha opinião").

Analise os dados de calibração abaixo de forma técnica e impessoal:

Equipamento: {equipment.name} ({equipment.manufacturer} {equipment.model})
Tag: {equipment.tag}
Exatidão/Critério: {equipment.accuracy}
Resolução: {equipment.resolution}

Dados da Calibração:
Data: {record.date}
Temperatura: {record.temperature}°C
Umidade: {record.humidity}%

Medições (Padrão vs Medido):
{measurements_text}

INSTRUÇÕES OBRIGATÓRIAS:
1. Analise se o 'Erro Combinado' ultrapassa os critérios de exatidão (se informados) EM CADA GRUPO DE TESTE.
2. Forneça um parecer técnico objetivo indicando conformidade ou não.
3. O TEXTO DEVE INICIAR EXATAMENTE COM: "{ANALYSIS_PREFIX}".
4. Use frases impessoais como "A análise indica...", "Observa-se que...", "Os resultados demonstram...".
5. Se houver múltiplos grupos (ex: Tração e Compressão), cite especificamente qual passou ou falhou.

Responda em Português do Brasil.
""".strip()


class NarrativeService:
    """Gera o parecer técnico a partir de um modelo de linguagem externo."""

    def __init__(self, client=None, model=None, api_key=None, max_tokens=1024):
        self.api_key = api_key if api_key is not None else config.ANTHROPIC_API_KEY
        self.model = model or config.AI_MODEL
        self.max_tokens = max_tokens
        if client is None and self.api_key:
            client = Anthropic(api_key=self.api_key)
        self.client = client

    def generate(self, prompt: str) -> str:
        """Envia o prompt e devolve o texto; nunca lança exceção."""
        if self.client is None:
            logging.warning("Análise de IA solicitada sem chave de API configurada.")
            return NO_API_KEY_MESSAGE
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
            text = "".join(getattr(block, "text", "") for block in response.content).strip()
            return text or EMPTY_RESPONSE_MESSAGE
        except Exception as e:
            logging.error(f"Erro na análise de IA: {e}", exc_info=True)
            return SERVICE_ERROR_MESSAGE

    def analyze(self, equipment: Equipment, record: CalibrationRecord) -> str:
        return self.generate(build_analysis_prompt(equipment, record))
