"""
Log de distribuição (auditoria).

Registro somente-inclusão: cada rotação bem-sucedida gera exatamente um
LogDistribuicao. A limpeza por unidade é uma manutenção manual do admin.
"""

import logging
from typing import Any, Dict, Optional

from ..lib.config import LOG_LIMIT_MINIMO, LOG_LIMIT_PADRAO, LOG_LIMIT_MAXIMO
from ..lib.erros import RegistroNaoEncontrado
from ..lib.models import LogDistribuicao, para_dict

logger = logging.getLogger(__name__)


def limitar(limit: Optional[int]) -> int:
    if limit is None:
        return LOG_LIMIT_PADRAO
    return max(LOG_LIMIT_MINIMO, min(LOG_LIMIT_MAXIMO, int(limit)))


class DistribuicaoLog:

    def __init__(self, repositorio):
        self.repositorio = repositorio

    def registrar(self, log: LogDistribuicao) -> int:
        """
        Grava um registro de distribuição.

        Falhas são relançadas: quem chama decide como reportar a auditoria
        perdida, nunca ignorar.
        """
        try:
            log_id = self.repositorio.inserir_log(log)
        except Exception as e:
            logger.error(
                f"❌ Falha ao registrar distribuição (unidade {log.unidade_id}, "
                f"vendedor {log.vendedor_id}, lead {log.lead_id}): {e}"
            )
            raise
        logger.info(f"📝 Distribuição registrada: log {log_id}")
        return log_id

    def listar(self, unidade_id: int, limit: Optional[int] = None, cursor: Optional[int] = None) -> Dict[str, Any]:
        """Página de logs, do mais recente para o mais antigo."""
        limit = limitar(limit)
        logs = self.repositorio.listar_logs(unidade_id, limit, cursor)
        return {
            "unidade_id": unidade_id,
            "logs": [para_dict(log) for log in logs],
            "limit": limit,
            "proximo_cursor": logs[-1].id if len(logs) == limit else None,
        }

    def obter(self, unidade_id: int, log_id: int) -> LogDistribuicao:
        log = self.repositorio.obter_log(unidade_id, log_id)
        if log is None:
            raise RegistroNaoEncontrado(f"Log {log_id} não encontrado na unidade {unidade_id}")
        return log

    def resumo(self, unidade_id: int) -> Dict[str, Any]:
        dados = self.repositorio.resumo_logs(unidade_id)
        ultima = dados["ultima"]
        return {
            "total_leads_distribuidos": dados["total"],
            "ultima_distribuicao": {
                "vendedor_id": ultima.vendedor_id,
                "vendedor_nome": ultima.vendedor_nome,
                "lead_id": ultima.lead_id,
                "total_fila": ultima.total_fila,
                "distribuido_em": ultima.distribuido_em.isoformat() if ultima.distribuido_em else None,
            } if ultima else None,
        }

    def limpar(self, unidade_id: int) -> int:
        removidos = self.repositorio.limpar_logs(unidade_id)
        logger.warning(f"🗑️ {removidos} logs de distribuição removidos da unidade {unidade_id}")
        return removidos
