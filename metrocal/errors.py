# metrocal/errors.py
"""Tipos de erro do motor de calibração.

ValidationError e InvalidParameter estendem ValueError, assim quem já
trata ValueError continua funcionando.
"""
from typing import Optional


class MetrologyError(Exception):
    """Base para todos os erros do domínio."""


class ValidationError(MetrologyError, ValueError):
    """Dado obrigatório ausente ou inválido: a operação é abortada sem alterações."""


class InvalidParameter(MetrologyError, ValueError):
    """Parâmetro numérico inválido (ex.: fator de abrangência igual a zero)."""


class CollaboratorFailure(MetrologyError):
    """Falha do banco de documentos, do provedor de autenticação ou do serviço de IA."""


class PartialImportFailure(CollaboratorFailure):
    """Falha de um lote durante a importação em massa.

    Os lotes já gravados permanecem gravados.
    """

    def __init__(self, processed: int, total: int, cause: Optional[Exception] = None):
        self.processed = processed
        self.total = total
        self.cause = cause
        super().__init__(
            f"Importação interrompida: {processed} de {total} equipamentos processados. "
            f"Erro: {cause}"
        )
