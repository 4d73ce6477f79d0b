import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from typing import Optional, List, Dict, Any

logger = logging.getLogger(__name__)


@dataclass
class Vendedor:
    """Vendedor local; o id é o mesmo id de usuário no CRM."""
    id: int
    nome: str
    ativo: bool = True


@dataclass
class EntradaFila:
    """Posição de um vendedor na fila de uma unidade.

    O mesmo vendedor pode aparecer mais de uma vez (peso por duplicação).
    `ausencia_retorno` e `vendedor_ativo` são projeções calculadas na leitura
    e não são gravadas no JSON da fila.
    """
    vendedor_id: int
    nome: str
    sequencia: int
    total_distribuicoes: int = 0
    ausencia_retorno: Optional[datetime] = None
    vendedor_ativo: bool = True

    def para_json(self) -> Dict[str, Any]:
        return {
            "vendedor_id": self.vendedor_id,
            "nome": self.nome,
            "sequencia": self.sequencia,
            "total_distribuicoes": self.total_distribuicoes,
        }


@dataclass
class FilaUnidade:
    unidade_id: int
    nome: str
    ativo: bool
    dpto_gestao: Optional[int] = None
    entradas: List[EntradaFila] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    @property
    def tamanho(self) -> int:
        return len(self.entradas)

    def ordenadas(self) -> List[EntradaFila]:
        return sorted(self.entradas, key=lambda e: e.sequencia)

    def renumerar(self) -> None:
        """Reordena por sequência e renumera 1..N preservando a ordem relativa."""
        self.entradas = self.ordenadas()
        for posicao, entrada in enumerate(self.entradas, start=1):
            entrada.sequencia = posicao


@dataclass
class Ausencia:
    id: Optional[int]
    unidade_id: int
    vendedor_id: int
    data_inicio: datetime
    data_fim: datetime
    motivo: str = ""
    vendedor_nome: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class LogDistribuicao:
    """Registro imutável de uma distribuição."""
    unidade_id: int
    vendedor_id: int
    lead_id: Optional[int]
    posicao_fila: int
    total_fila: int
    owner_anterior: Optional[int] = None
    user_access_anterior: List[int] = field(default_factory=list)
    department_access_anterior: List[int] = field(default_factory=list)
    distribuido_em: Optional[datetime] = None
    id: Optional[int] = None
    vendedor_nome: Optional[str] = None


def sanitize_for_json(obj):
    """Converte datas/datetimes em strings ISO, recursivamente."""
    if isinstance(obj, dict):
        return {k: sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [sanitize_for_json(v) for v in obj]
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj


def para_dict(obj) -> Dict[str, Any]:
    return sanitize_for_json(asdict(obj))


# ============================================================================
# NORMALIZAÇÃO DO JSON DA FILA
# ============================================================================

def _inteiro(valor) -> Optional[int]:
    if isinstance(valor, bool):
        return None
    try:
        return int(str(valor).strip())
    except (TypeError, ValueError):
        return None


def normalizar_entradas(raw) -> List[EntradaFila]:
    """
    Converte o JSON `fila_leads` de uma unidade em entradas tipadas.

    Aceita os formatos legados encontrados no banco:
    - string JSON em vez de array
    - lista de ids soltos (`[12, "15"]`)
    - objetos com `id` no lugar de `vendedor_id` e `ordem`/`posicao` no lugar
      de `sequencia`
    - contadores ausentes

    Entradas com id inválido são descartadas. A ordem gravada é respeitada e a
    sequência resultante é sempre 1..N.
    """
    if raw is None or raw == "":
        return []

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.warning(f"⚠️ JSON de fila inválido, tratando como fila vazia: {e}")
            return []

    if not isinstance(raw, list):
        logger.warning(f"⚠️ Formato de fila inesperado ({type(raw).__name__}), tratando como fila vazia")
        return []

    candidatas = []
    for indice, item in enumerate(raw):
        if isinstance(item, dict):
            vendedor_id = _inteiro(item.get("vendedor_id", item.get("id")))
            nome = item.get("nome") or item.get("name") or ""
            sequencia = _inteiro(
                item.get("sequencia", item.get("ordem", item.get("posicao")))
            )
            total = _inteiro(item.get("total_distribuicoes", 0)) or 0
        else:
            vendedor_id = _inteiro(item)
            nome = ""
            sequencia = None
            total = 0

        if vendedor_id is None or vendedor_id <= 0:
            logger.warning(f"⚠️ Entrada de fila descartada (id inválido): {item!r}")
            continue

        # Sem sequência gravada, a posição no array decide
        chave = (sequencia if sequencia is not None else float("inf"), indice)
        candidatas.append((chave, EntradaFila(
            vendedor_id=vendedor_id,
            nome=str(nome),
            sequencia=0,
            total_distribuicoes=max(total, 0),
        )))

    candidatas.sort(key=lambda par: par[0])
    entradas = [entrada for _, entrada in candidatas]
    for posicao, entrada in enumerate(entradas, start=1):
        entrada.sequencia = posicao
    return entradas
