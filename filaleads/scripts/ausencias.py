"""
Filtro de elegibilidade da fila.

Uma entrada fica de fora enquanto `agora < ausencia_retorno` ou enquanto o
vendedor estiver inativo. Sem ausência e ausência já encerrada são tratadas
da mesma forma (elegível). A posição na fila nunca é alterada aqui.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from ..lib.erros import ErroValidacao
from ..lib.models import EntradaFila


def esta_ausente(entrada: EntradaFila, agora: datetime) -> bool:
    return entrada.ausencia_retorno is not None and agora < entrada.ausencia_retorno


def esta_elegivel(entrada: EntradaFila, agora: datetime) -> bool:
    return entrada.vendedor_ativo and not esta_ausente(entrada, agora)


def elegiveis(entradas: Iterable[EntradaFila], agora: datetime) -> List[EntradaFila]:
    """Entradas aptas a receber lead agora, na ordem recebida."""
    return [e for e in entradas if esta_elegivel(e, agora)]


def validar_periodo(data_inicio: Optional[datetime], data_fim: Optional[datetime]) -> None:
    if data_inicio is None or data_fim is None:
        raise ErroValidacao("Período de ausência incompleto")
    if (data_inicio.tzinfo is None) != (data_fim.tzinfo is None):
        raise ErroValidacao("Datas da ausência devem usar o mesmo formato de fuso horário")
    if data_fim <= data_inicio:
        raise ErroValidacao("Data de fim deve ser posterior à data de início")
