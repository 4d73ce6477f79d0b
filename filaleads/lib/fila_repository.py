"""
Repositório PostgreSQL da fila de leads.

Concentra todo acesso ao banco usado pela fila: unidades (com o JSON
`fila_leads`), vendedores, ausências, log de distribuição e roleta legada.
O repositório em memória (memoria_repository) expõe a mesma interface.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set

from .config import FILA_STORAGE
from .db_connection import get_conn, release_conn, transacao
from .models import (
    Ausencia,
    FilaUnidade,
    LogDistribuicao,
    Vendedor,
    normalizar_entradas,
)
from .queries import (
    CRIAR_TABELAS_FILA,
    BUSCAR_UNIDADE_PARA_ATUALIZAR,
    BUSCAR_UNIDADE,
    LISTAR_UNIDADES,
    ATUALIZAR_FILA_UNIDADE,
    BUSCAR_VENDEDORES_POR_IDS,
    BUSCAR_MEMBROS_UNIDADE,
    BUSCAR_RETORNO_AUSENCIAS,
    INSERIR_AUSENCIA,
    LISTAR_AUSENCIAS,
    REMOVER_AUSENCIA,
    INSERIR_LOG_DISTRIBUICAO,
    LISTAR_LOGS_DISTRIBUICAO,
    BUSCAR_LOG_DISTRIBUICAO,
    CONTAR_LOGS_DISTRIBUICAO,
    BUSCAR_ULTIMO_LOG_DISTRIBUICAO,
    LIMPAR_LOGS_DISTRIBUICAO,
    GARANTIR_ROLETA,
    LIMPAR_FILA_ROLETA,
    INSERIR_FILA_ROLETA,
    REMOVER_ROLETA,
)

logger = logging.getLogger(__name__)


# ============================================================================
# SESSÃO DE ESCRITA
# ============================================================================

class SessaoFila:
    """
    Fila carregada para alteração.

    `fila` é None quando a unidade não existe. `salvar()` grava a fila inteira
    (entradas e flag ativo) numa única escrita; a gravação só é efetivada quando
    o bloco `with repositorio.sessao(...)` termina sem exceção.
    """

    def __init__(self, fila: Optional[FilaUnidade], gravar: Callable[[FilaUnidade], None]):
        self.fila = fila
        self._gravar = gravar
        self.salva = False

    def salvar(self) -> None:
        if self.fila is None:
            raise ValueError("Não há fila carregada para salvar")
        self._gravar(self.fila)
        self.salva = True


# ============================================================================
# HELPERS
# ============================================================================

def _linhas(cur) -> List[dict]:
    rows = cur.fetchall()
    columns = [desc[0] for desc in cur.description]
    return [dict(zip(columns, row)) for row in rows]


def _nome_completo(nome: Optional[str], sobrenome: Optional[str]) -> str:
    return f"{nome or ''} {sobrenome or ''}".strip()


def _lista_ids(valor) -> List[int]:
    if not valor:
        return []
    if isinstance(valor, str):
        valor = json.loads(valor)
    return [int(v) for v in valor]


def _log_de_linha(linha: dict) -> LogDistribuicao:
    return LogDistribuicao(
        id=linha["id"],
        unidade_id=linha["unidade_id"],
        vendedor_id=linha["vendedor_id"],
        lead_id=linha["lead_id"],
        posicao_fila=linha["posicao_fila"],
        total_fila=linha["total_fila"],
        owner_anterior=linha["owner_anterior"],
        user_access_anterior=_lista_ids(linha["user_access_anterior"]),
        department_access_anterior=_lista_ids(linha["department_access_anterior"]),
        distribuido_em=linha["distribuido_em"],
        vendedor_nome=linha.get("vendedor_nome") or None,
    )


def _ausencia_de_linha(linha: dict) -> Ausencia:
    return Ausencia(
        id=linha["id"],
        unidade_id=linha["unidade_id"],
        vendedor_id=linha["vendedor_id"],
        data_inicio=linha["data_inicio"],
        data_fim=linha["data_fim"],
        motivo=linha["motivo"] or "",
        vendedor_nome=linha.get("vendedor_nome") or None,
        created_by=linha["created_by"],
        created_at=linha["created_at"],
    )


# ============================================================================
# REPOSITÓRIO POSTGRES
# ============================================================================

class FilaRepository:
    """Acesso PostgreSQL à fila de leads."""

    def garantir_esquema(self) -> None:
        with transacao() as conn:
            with conn.cursor() as cur:
                cur.execute(CRIAR_TABELAS_FILA)
        logger.info("✅ Tabelas da fila verificadas")

    def ping(self) -> bool:
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                return cur.fetchone() is not None
        finally:
            release_conn(conn)

    # ------------------------------------------------------------------------
    # Fila
    # ------------------------------------------------------------------------

    def _projetar(self, cur, fila: FilaUnidade, agora: datetime) -> None:
        """Preenche ativo/nome do vendedor e o retorno de ausência de cada entrada."""
        ids = sorted({e.vendedor_id for e in fila.entradas})
        if not ids:
            return

        cur.execute(BUSCAR_VENDEDORES_POR_IDS, (ids,))
        vendedores = {
            v["id"]: v for v in _linhas(cur)
        }

        cur.execute(BUSCAR_RETORNO_AUSENCIAS, (fila.unidade_id, agora, agora))
        retornos = {r["vendedor_id"]: r["retorno"] for r in _linhas(cur)}

        for entrada in fila.entradas:
            vendedor = vendedores.get(entrada.vendedor_id)
            # Vendedor removido do cadastro conta como inativo
            entrada.vendedor_ativo = bool(vendedor and vendedor["ativo"])
            if vendedor and not entrada.nome:
                entrada.nome = _nome_completo(vendedor["name"], vendedor["lastName"])
            entrada.ausencia_retorno = retornos.get(entrada.vendedor_id)

    def _montar_fila(self, cur, linha: dict, agora: datetime) -> FilaUnidade:
        fila = FilaUnidade(
            unidade_id=linha["id"],
            nome=linha["name"],
            ativo=bool(linha["ativo"]),
            dpto_gestao=linha["dpto_gestao"],
            entradas=normalizar_entradas(linha["fila_leads"]),
            updated_at=linha["updated_at"],
        )
        self._projetar(cur, fila, agora)
        return fila

    @contextmanager
    def sessao(self, unidade_id: int, agora: Optional[datetime] = None):
        """Carrega a fila com SELECT ... FOR UPDATE; commit ao sair do bloco."""
        agora = agora or datetime.now(timezone.utc)
        with transacao() as conn:
            with conn.cursor() as cur:
                cur.execute(BUSCAR_UNIDADE_PARA_ATUALIZAR, (unidade_id,))
                linhas = _linhas(cur)
                fila = self._montar_fila(cur, linhas[0], agora) if linhas else None

                def gravar(f: FilaUnidade) -> None:
                    payload = json.dumps([e.para_json() for e in f.ordenadas()], ensure_ascii=False)
                    cur.execute(ATUALIZAR_FILA_UNIDADE, (payload, f.ativo, f.unidade_id))

                yield SessaoFila(fila, gravar)

    def obter_fila(self, unidade_id: int, agora: Optional[datetime] = None) -> Optional[FilaUnidade]:
        agora = agora or datetime.now(timezone.utc)
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(BUSCAR_UNIDADE, (unidade_id,))
                linhas = _linhas(cur)
                return self._montar_fila(cur, linhas[0], agora) if linhas else None
        except Exception as e:
            logger.error(f"❌ Erro ao buscar fila da unidade {unidade_id}: {e}")
            raise
        finally:
            release_conn(conn)

    def listar_filas(self, agora: Optional[datetime] = None) -> List[FilaUnidade]:
        agora = agora or datetime.now(timezone.utc)
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(LISTAR_UNIDADES)
                linhas = _linhas(cur)
                return [self._montar_fila(cur, linha, agora) for linha in linhas]
        except Exception as e:
            logger.error(f"❌ Erro ao listar filas: {e}")
            raise
        finally:
            release_conn(conn)

    # ------------------------------------------------------------------------
    # Vendedores
    # ------------------------------------------------------------------------

    def membros_unidade(self, unidade_id: int) -> Set[int]:
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(BUSCAR_MEMBROS_UNIDADE, (unidade_id,))
                return {row[0] for row in cur.fetchall()}
        finally:
            release_conn(conn)

    def buscar_vendedores(self, ids: Iterable[int]) -> Dict[int, Vendedor]:
        ids = sorted(set(ids))
        if not ids:
            return {}
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(BUSCAR_VENDEDORES_POR_IDS, (ids,))
                return {
                    linha["id"]: Vendedor(
                        id=linha["id"],
                        nome=_nome_completo(linha["name"], linha["lastName"]),
                        ativo=bool(linha["ativo"]),
                    )
                    for linha in _linhas(cur)
                }
        finally:
            release_conn(conn)

    # ------------------------------------------------------------------------
    # Ausências
    # ------------------------------------------------------------------------

    def inserir_ausencia(self, ausencia: Ausencia) -> Ausencia:
        with transacao() as conn:
            with conn.cursor() as cur:
                cur.execute(INSERIR_AUSENCIA, (
                    ausencia.unidade_id, ausencia.vendedor_id, ausencia.data_inicio,
                    ausencia.data_fim, ausencia.motivo, ausencia.created_by
                ))
                ausencia.id, ausencia.created_at = cur.fetchone()
        return ausencia

    def listar_ausencias(self, unidade_id: int) -> List[Ausencia]:
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(LISTAR_AUSENCIAS, (unidade_id,))
                return [_ausencia_de_linha(linha) for linha in _linhas(cur)]
        finally:
            release_conn(conn)

    def remover_ausencia(self, unidade_id: int, ausencia_id: int) -> bool:
        with transacao() as conn:
            with conn.cursor() as cur:
                cur.execute(REMOVER_AUSENCIA, (ausencia_id, unidade_id))
                return cur.rowcount > 0

    # ------------------------------------------------------------------------
    # Log de distribuição
    # ------------------------------------------------------------------------

    def inserir_log(self, log: LogDistribuicao) -> int:
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(INSERIR_LOG_DISTRIBUICAO, (
                    log.unidade_id, log.vendedor_id, log.lead_id, log.posicao_fila,
                    log.total_fila, log.owner_anterior,
                    json.dumps(log.user_access_anterior),
                    json.dumps(log.department_access_anterior),
                    log.distribuido_em or datetime.now(timezone.utc),
                ))
                log_id = cur.fetchone()[0]
            conn.commit()
            return log_id
        except Exception as e:
            logger.error(f"❌ Erro ao inserir log de distribuição: {e}")
            conn.rollback()
            raise
        finally:
            release_conn(conn)

    def listar_logs(self, unidade_id: int, limit: int, cursor: Optional[int] = None) -> List[LogDistribuicao]:
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(LISTAR_LOGS_DISTRIBUICAO, (unidade_id, cursor, cursor, limit))
                return [_log_de_linha(linha) for linha in _linhas(cur)]
        finally:
            release_conn(conn)

    def obter_log(self, unidade_id: int, log_id: int) -> Optional[LogDistribuicao]:
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(BUSCAR_LOG_DISTRIBUICAO, (log_id, unidade_id))
                linhas = _linhas(cur)
                return _log_de_linha(linhas[0]) if linhas else None
        finally:
            release_conn(conn)

    def resumo_logs(self, unidade_id: int) -> dict:
        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(CONTAR_LOGS_DISTRIBUICAO, (unidade_id,))
                total = cur.fetchone()[0]
                cur.execute(BUSCAR_ULTIMO_LOG_DISTRIBUICAO, (unidade_id,))
                linhas = _linhas(cur)
                return {
                    "total": total,
                    "ultima": _log_de_linha(linhas[0]) if linhas else None,
                }
        finally:
            release_conn(conn)

    def limpar_logs(self, unidade_id: int) -> int:
        with transacao() as conn:
            with conn.cursor() as cur:
                cur.execute(LIMPAR_LOGS_DISTRIBUICAO, (unidade_id,))
                return cur.rowcount

    # ------------------------------------------------------------------------
    # Roleta legada
    # ------------------------------------------------------------------------

    def substituir_roleta(self, unidade_id: int, vendedor_ids: List[int], ativo: bool = True) -> int:
        with transacao() as conn:
            with conn.cursor() as cur:
                cur.execute(GARANTIR_ROLETA, (unidade_id, ativo))
                roleta_id = cur.fetchone()[0]
                cur.execute(LIMPAR_FILA_ROLETA, (roleta_id,))
                for ordem, vendedor_id in enumerate(vendedor_ids, start=1):
                    cur.execute(INSERIR_FILA_ROLETA, (roleta_id, vendedor_id, ordem))
        return roleta_id

    def remover_roleta(self, unidade_id: int) -> bool:
        with transacao() as conn:
            with conn.cursor() as cur:
                cur.execute(REMOVER_ROLETA, (unidade_id,))
                return cur.rowcount > 0


def criar_repositorio():
    """Instancia o repositório configurado em FILA_STORAGE."""
    if FILA_STORAGE == "memoria":
        from .memoria_repository import MemoriaRepository
        logger.warning("⚠️ FILA_STORAGE=memoria: dados da fila não serão persistidos")
        return MemoriaRepository()
    return FilaRepository()
