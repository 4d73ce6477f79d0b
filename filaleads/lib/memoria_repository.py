"""
Repositório em memória da fila de leads.

Mesma interface do FilaRepository, usado com FILA_STORAGE=memoria (execução
local) e nos testes. Seguro para uso a partir de várias threads.
"""

import copy
import itertools
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from .fila_repository import SessaoFila
from .models import (
    Ausencia,
    FilaUnidade,
    LogDistribuicao,
    Vendedor,
    normalizar_entradas,
)
from .travas import RegistroTravas

logger = logging.getLogger(__name__)


class MemoriaRepository:

    def __init__(self):
        self._lock = threading.RLock()
        # Equivalente ao SELECT ... FOR UPDATE do Postgres
        self._linhas = RegistroTravas()
        self._unidades: Dict[int, dict] = {}
        self._vendedores: Dict[int, Vendedor] = {}
        self._membros: Dict[int, Set[int]] = {}
        self._ausencias: Dict[int, Ausencia] = {}
        self._logs: Dict[int, LogDistribuicao] = {}
        self._roletas: Dict[int, dict] = {}
        self._ids_ausencia = itertools.count(1)
        self._ids_log = itertools.count(1)
        self._ids_roleta = itertools.count(1)
        self.gravacoes_fila = 0

    # ------------------------------------------------------------------------
    # Carga de dados (setup local e testes)
    # ------------------------------------------------------------------------

    def adicionar_unidade(
        self,
        unidade_id: int,
        nome: str,
        ativo: bool = True,
        dpto_gestao: Optional[int] = None,
        fila_leads=None,
    ) -> None:
        with self._lock:
            self._unidades[unidade_id] = {
                "nome": nome,
                "ativo": ativo,
                "dpto_gestao": dpto_gestao,
                "fila_leads": copy.deepcopy(fila_leads) if fila_leads is not None else [],
                "updated_at": datetime.now(timezone.utc),
            }
            self._membros.setdefault(unidade_id, set())

    def adicionar_vendedor(self, vendedor_id: int, nome: str, ativo: bool = True, unidades: Iterable[int] = ()) -> None:
        with self._lock:
            self._vendedores[vendedor_id] = Vendedor(id=vendedor_id, nome=nome, ativo=ativo)
            for unidade_id in unidades:
                self._membros.setdefault(unidade_id, set()).add(vendedor_id)

    def definir_vendedor_ativo(self, vendedor_id: int, ativo: bool) -> None:
        with self._lock:
            self._vendedores[vendedor_id].ativo = ativo

    def fila_gravada(self, unidade_id: int) -> list:
        """JSON da fila exatamente como gravado."""
        with self._lock:
            return copy.deepcopy(self._unidades[unidade_id]["fila_leads"])

    def roleta(self, unidade_id: int) -> Optional[dict]:
        with self._lock:
            roleta = self._roletas.get(unidade_id)
            return copy.deepcopy(roleta) if roleta else None

    # ------------------------------------------------------------------------
    # Interface do repositório
    # ------------------------------------------------------------------------

    def garantir_esquema(self) -> None:
        logger.info("✅ Repositório em memória pronto")

    def ping(self) -> bool:
        return True

    def _montar_fila(self, unidade_id: int, agora: datetime) -> Optional[FilaUnidade]:
        with self._lock:
            linha = self._unidades.get(unidade_id)
            if linha is None:
                return None
            linha = copy.deepcopy(linha)
            fila = FilaUnidade(
                unidade_id=unidade_id,
                nome=linha["nome"],
                ativo=linha["ativo"],
                dpto_gestao=linha["dpto_gestao"],
                entradas=normalizar_entradas(linha["fila_leads"]),
                updated_at=linha["updated_at"],
            )
            for entrada in fila.entradas:
                vendedor = self._vendedores.get(entrada.vendedor_id)
                entrada.vendedor_ativo = bool(vendedor and vendedor.ativo)
                if vendedor and not entrada.nome:
                    entrada.nome = vendedor.nome
                retornos = [
                    a.data_fim for a in self._ausencias.values()
                    if a.unidade_id == unidade_id
                    and a.vendedor_id == entrada.vendedor_id
                    and a.data_inicio <= agora < a.data_fim
                ]
                entrada.ausencia_retorno = max(retornos) if retornos else None
            return fila

    def _gravar(self, fila: FilaUnidade) -> None:
        with self._lock:
            linha = self._unidades[fila.unidade_id]
            linha["fila_leads"] = [e.para_json() for e in fila.ordenadas()]
            linha["ativo"] = fila.ativo
            linha["updated_at"] = datetime.now(timezone.utc)
            self.gravacoes_fila += 1

    @contextmanager
    def sessao(self, unidade_id: int, agora: Optional[datetime] = None):
        agora = agora or datetime.now(timezone.utc)
        with self._linhas.trava(unidade_id):
            pendente: List[FilaUnidade] = []
            sessao = SessaoFila(self._montar_fila(unidade_id, agora), pendente.append)
            yield sessao
            # Só efetiva se o bloco terminou sem exceção
            for fila in pendente[-1:]:
                self._gravar(fila)

    def obter_fila(self, unidade_id: int, agora: Optional[datetime] = None) -> Optional[FilaUnidade]:
        return self._montar_fila(unidade_id, agora or datetime.now(timezone.utc))

    def listar_filas(self, agora: Optional[datetime] = None) -> List[FilaUnidade]:
        agora = agora or datetime.now(timezone.utc)
        with self._lock:
            ids = sorted(self._unidades, key=lambda u: self._unidades[u]["nome"])
        return [self._montar_fila(unidade_id, agora) for unidade_id in ids]

    def membros_unidade(self, unidade_id: int) -> Set[int]:
        with self._lock:
            return set(self._membros.get(unidade_id, set()))

    def buscar_vendedores(self, ids: Iterable[int]) -> Dict[int, Vendedor]:
        with self._lock:
            return {
                i: copy.copy(self._vendedores[i])
                for i in set(ids) if i in self._vendedores
            }

    def inserir_ausencia(self, ausencia: Ausencia) -> Ausencia:
        with self._lock:
            ausencia = copy.copy(ausencia)
            ausencia.id = next(self._ids_ausencia)
            ausencia.created_at = datetime.now(timezone.utc)
            self._ausencias[ausencia.id] = ausencia
            return copy.copy(ausencia)

    def listar_ausencias(self, unidade_id: int) -> List[Ausencia]:
        with self._lock:
            ausencias = []
            for a in self._ausencias.values():
                if a.unidade_id != unidade_id:
                    continue
                a = copy.copy(a)
                vendedor = self._vendedores.get(a.vendedor_id)
                a.vendedor_nome = vendedor.nome if vendedor else None
                ausencias.append(a)
            return sorted(ausencias, key=lambda a: a.data_inicio, reverse=True)

    def remover_ausencia(self, unidade_id: int, ausencia_id: int) -> bool:
        with self._lock:
            ausencia = self._ausencias.get(ausencia_id)
            if ausencia is None or ausencia.unidade_id != unidade_id:
                return False
            del self._ausencias[ausencia_id]
            return True

    def _com_nome(self, log: LogDistribuicao) -> LogDistribuicao:
        log = copy.deepcopy(log)
        vendedor = self._vendedores.get(log.vendedor_id)
        log.vendedor_nome = vendedor.nome if vendedor else None
        return log

    def inserir_log(self, log: LogDistribuicao) -> int:
        with self._lock:
            log = copy.deepcopy(log)
            log.id = next(self._ids_log)
            log.distribuido_em = log.distribuido_em or datetime.now(timezone.utc)
            self._logs[log.id] = log
            return log.id

    def listar_logs(self, unidade_id: int, limit: int, cursor: Optional[int] = None) -> List[LogDistribuicao]:
        with self._lock:
            logs = [
                log for log in self._logs.values()
                if log.unidade_id == unidade_id and (cursor is None or log.id < cursor)
            ]
            logs.sort(key=lambda log: log.id, reverse=True)
            return [self._com_nome(log) for log in logs[:limit]]

    def obter_log(self, unidade_id: int, log_id: int) -> Optional[LogDistribuicao]:
        with self._lock:
            log = self._logs.get(log_id)
            if log is None or log.unidade_id != unidade_id:
                return None
            return self._com_nome(log)

    def resumo_logs(self, unidade_id: int) -> dict:
        with self._lock:
            logs = [log for log in self._logs.values() if log.unidade_id == unidade_id]
            ultima = max(logs, key=lambda log: log.id) if logs else None
            return {
                "total": len(logs),
                "ultima": self._com_nome(ultima) if ultima else None,
            }

    def limpar_logs(self, unidade_id: int) -> int:
        with self._lock:
            ids = [i for i, log in self._logs.items() if log.unidade_id == unidade_id]
            for i in ids:
                del self._logs[i]
            return len(ids)

    def substituir_roleta(self, unidade_id: int, vendedor_ids: List[int], ativo: bool = True) -> int:
        with self._lock:
            roleta = self._roletas.get(unidade_id)
            roleta_id = roleta["id"] if roleta else next(self._ids_roleta)
            self._roletas[unidade_id] = {
                "id": roleta_id,
                "ativo": ativo,
                "fila": [
                    {"vendedor_id": v, "ordem": ordem}
                    for ordem, v in enumerate(vendedor_ids, start=1)
                ],
            }
            return roleta_id

    def remover_roleta(self, unidade_id: int) -> bool:
        with self._lock:
            return self._roletas.pop(unidade_id, None) is not None
