"""
Administração da fila de leads por unidade.

Operações do admin: consultar, substituir, adicionar/remover vendedor,
ativar/desativar a unidade e registrar ausências. Toda escrita passa pela
mesma trava por unidade usada na rotação, e a sequência é renumerada para
1..N antes de gravar.

Depois de gravar, a roleta legada é sincronizada; uma falha nessa
sincronização é devolvida em `sincronizacao` e não desfaz a alteração.
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..lib.erros import (
    ErroValidacao,
    RegistroNaoEncontrado,
    UnidadeNaoEncontrada,
)
from ..lib.models import Ausencia, EntradaFila, FilaUnidade, para_dict
from ..lib.travas import RegistroTravas, travas
from .ausencias import esta_ausente, esta_elegivel, validar_periodo
from .crm_sync import ResultadoSync, sincronizar_membros
from .distribuicao_log import DistribuicaoLog

logger = logging.getLogger(__name__)


@dataclass
class ResultadoAlteracao:
    fila: FilaUnidade
    sincronizacao: ResultadoSync


@dataclass
class ResultadoAusencia:
    ausencia: Ausencia
    sincronizacao: ResultadoSync


def _utc(data: Optional[datetime]) -> Optional[datetime]:
    """Datas sem fuso são tratadas como UTC."""
    if data is None or data.tzinfo is not None:
        return data
    return data.replace(tzinfo=timezone.utc)


def _id_valido(valor, campo: str = "vendedor") -> int:
    try:
        if isinstance(valor, bool):
            raise ValueError
        numero = int(valor)
    except (TypeError, ValueError):
        raise ErroValidacao(f"Id de {campo} inválido: {valor!r}")
    if numero <= 0:
        raise ErroValidacao(f"Id de {campo} inválido: {valor!r}")
    return numero


def atualizar_disponibilidade(filas: List[Dict[str, Any]], agora: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """
    Recalcula `ausente` e `elegivel` de uma visão geral já montada (ex.: lida
    do cache), a partir de `ausencia_retorno` e `vendedor_ativo`.
    """
    agora = agora or datetime.now(timezone.utc)
    for fila in filas:
        for item in fila.get("vendedores", []):
            retorno = item.get("ausencia_retorno")
            if isinstance(retorno, str):
                retorno = _utc(datetime.fromisoformat(retorno))
            item["ausente"] = retorno is not None and agora < retorno
            item["elegivel"] = bool(item.get("vendedor_ativo", True)) and not item["ausente"]
    return filas


class FilaStore:

    def __init__(self, repositorio, registro_travas: RegistroTravas = travas):
        self.repositorio = repositorio
        self.travas = registro_travas
        self.log = DistribuicaoLog(repositorio)

    # ========================================================================
    # LEITURA
    # ========================================================================

    def obter_fila(self, unidade_id: int, agora: Optional[datetime] = None) -> FilaUnidade:
        fila = self.repositorio.obter_fila(unidade_id, agora)
        if fila is None:
            raise UnidadeNaoEncontrada(unidade_id)
        return fila

    def _descrever(self, fila: FilaUnidade, agora: datetime) -> Dict[str, Any]:
        entradas = []
        for entrada in fila.ordenadas():
            item = para_dict(entrada)
            item["ausente"] = esta_ausente(entrada, agora)
            item["elegivel"] = esta_elegivel(entrada, agora)
            entradas.append(item)

        return {
            "unidade_id": fila.unidade_id,
            "nome": fila.nome,
            "ativo": fila.ativo,
            "dpto_gestao": fila.dpto_gestao,
            "total_fila": fila.tamanho,
            "vendedores": entradas,
            **self.log.resumo(fila.unidade_id),
        }

    def detalhar(self, unidade_id: int) -> Dict[str, Any]:
        """Fila de uma unidade com estatísticas de distribuição."""
        agora = datetime.now(timezone.utc)
        return self._descrever(self.obter_fila(unidade_id, agora), agora)

    def visao_geral(self) -> List[Dict[str, Any]]:
        """Todas as filas, na ordem do nome da unidade."""
        agora = datetime.now(timezone.utc)
        return [self._descrever(fila, agora) for fila in self.repositorio.listar_filas(agora)]

    # ========================================================================
    # ESCRITA
    # ========================================================================

    def _alterar(self, unidade_id: int, alteracao) -> ResultadoAlteracao:
        """Executa `alteracao(fila)` sob trava, renumera, grava e sincroniza a roleta."""
        agora = datetime.now(timezone.utc)
        with self.travas.trava(unidade_id):
            with self.repositorio.sessao(unidade_id, agora) as sessao:
                if sessao.fila is None:
                    raise UnidadeNaoEncontrada(unidade_id)
                alteracao(sessao.fila)
                sessao.fila.renumerar()
                sessao.salvar()
                fila = sessao.fila

        sincronizacao = sincronizar_membros(self.repositorio, unidade_id, agora)
        if not sincronizacao.sucesso:
            logger.warning(f"⚠️ Fila da unidade {unidade_id} gravada, roleta não sincronizada: {sincronizacao.erro}")
        return ResultadoAlteracao(fila=fila, sincronizacao=sincronizacao)

    def _validar_membros(self, unidade_id: int, vendedor_ids: List[int]) -> None:
        membros = self.repositorio.membros_unidade(unidade_id)
        if not membros and self.repositorio.obter_fila(unidade_id) is None:
            raise UnidadeNaoEncontrada(unidade_id)
        fora = sorted({v for v in vendedor_ids if v not in membros})
        if fora:
            raise ErroValidacao(f"Vendedores não pertencem à unidade {unidade_id}: {fora}")

    def definir_fila(self, unidade_id: int, vendedores: List[Dict[str, Any]]) -> ResultadoAlteracao:
        """
        Substitui a fila inteira.

        A ordem da lista é a nova ordem de rotação; sequências enviadas são
        ignoradas. O contador de cada vendedor é mantido por ocorrência, na
        ordem; ocorrências novas começam em zero.
        """
        ids = [_id_valido(v.get("id", v.get("vendedor_id")) if isinstance(v, dict) else v) for v in vendedores]
        self._validar_membros(unidade_id, ids)
        cadastro = self.repositorio.buscar_vendedores(ids)
        nomes = [
            (v.get("nome") if isinstance(v, dict) else None) or (cadastro[i].nome if i in cadastro else "")
            for v, i in zip(vendedores, ids)
        ]

        def substituir(fila: FilaUnidade) -> None:
            contadores = defaultdict(deque)
            for entrada in fila.ordenadas():
                contadores[entrada.vendedor_id].append(entrada.total_distribuicoes)

            fila.entradas = [
                EntradaFila(
                    vendedor_id=vendedor_id,
                    nome=nome,
                    sequencia=posicao,
                    total_distribuicoes=contadores[vendedor_id].popleft() if contadores[vendedor_id] else 0,
                )
                for posicao, (vendedor_id, nome) in enumerate(zip(ids, nomes), start=1)
            ]

        resultado = self._alterar(unidade_id, substituir)
        logger.info(f"✅ Fila da unidade {unidade_id} substituída ({len(ids)} entradas)")
        return resultado

    def adicionar_vendedor(self, unidade_id: int, vendedor_id, nome: Optional[str] = None) -> ResultadoAlteracao:
        """Inclui o vendedor no fim da fila (sequência N+1)."""
        vendedor_id = _id_valido(vendedor_id)
        self._validar_membros(unidade_id, [vendedor_id])
        if not nome:
            cadastro = self.repositorio.buscar_vendedores([vendedor_id])
            nome = cadastro[vendedor_id].nome if vendedor_id in cadastro else ""

        def adicionar(fila: FilaUnidade) -> None:
            ultima = max((e.sequencia for e in fila.entradas), default=0)
            fila.entradas.append(EntradaFila(vendedor_id=vendedor_id, nome=nome, sequencia=ultima + 1))

        resultado = self._alterar(unidade_id, adicionar)
        logger.info(f"✅ Vendedor {vendedor_id} adicionado à fila da unidade {unidade_id}")
        return resultado

    def remover_vendedor(
        self,
        unidade_id: int,
        vendedor_id: Optional[int] = None,
        indice: Optional[int] = None
    ) -> ResultadoAlteracao:
        """
        Remove uma entrada da fila.

        Com `indice` (posição 0-based na ordem de rotação) remove exatamente
        aquela entrada; só com `vendedor_id` remove a primeira ocorrência.
        """
        if vendedor_id is None and indice is None:
            raise ErroValidacao("Informe o vendedor ou o índice da entrada")
        if vendedor_id is not None:
            vendedor_id = _id_valido(vendedor_id)

        def remover(fila: FilaUnidade) -> None:
            ordenadas = fila.ordenadas()
            if indice is not None:
                if not 0 <= indice < len(ordenadas):
                    raise RegistroNaoEncontrado(f"Índice {indice} fora da fila da unidade {unidade_id}")
                alvo = ordenadas[indice]
                if vendedor_id is not None and alvo.vendedor_id != vendedor_id:
                    raise ErroValidacao(
                        f"Entrada {indice} pertence ao vendedor {alvo.vendedor_id}, não ao {vendedor_id}"
                    )
            else:
                alvo = next((e for e in ordenadas if e.vendedor_id == vendedor_id), None)
                if alvo is None:
                    raise RegistroNaoEncontrado(f"Vendedor {vendedor_id} não está na fila da unidade {unidade_id}")
            ordenadas.remove(alvo)
            fila.entradas = ordenadas

        resultado = self._alterar(unidade_id, remover)
        logger.info(f"✅ Entrada removida da fila da unidade {unidade_id} (vendedor={vendedor_id}, indice={indice})")
        return resultado

    def definir_ativo(self, unidade_id: int, ativo: bool) -> ResultadoAlteracao:
        def alternar(fila: FilaUnidade) -> None:
            fila.ativo = bool(ativo)

        resultado = self._alterar(unidade_id, alternar)
        logger.info(f"✅ Fila da unidade {unidade_id} {'ativada' if ativo else 'desativada'}")
        return resultado

    # ========================================================================
    # AUSÊNCIAS
    # ========================================================================

    def registrar_ausencia(
        self,
        unidade_id: int,
        vendedor_id,
        data_fim: datetime,
        data_inicio: Optional[datetime] = None,
        motivo: str = "",
        created_by: Optional[int] = None
    ) -> ResultadoAusencia:
        """Registra uma ausência; o vendedor fica inelegível até `data_fim`."""
        vendedor_id = _id_valido(vendedor_id)
        data_inicio = _utc(data_inicio) or datetime.now(timezone.utc)
        data_fim = _utc(data_fim)
        validar_periodo(data_inicio, data_fim)

        cadastro = self.repositorio.buscar_vendedores([vendedor_id])
        if vendedor_id not in cadastro or not cadastro[vendedor_id].ativo:
            raise ErroValidacao(f"Vendedor {vendedor_id} não encontrado ou inativo")

        with self.travas.trava(unidade_id):
            fila = self.repositorio.obter_fila(unidade_id)
            if fila is None:
                raise UnidadeNaoEncontrada(unidade_id)
            na_fila = {e.vendedor_id for e in fila.entradas}
            if vendedor_id not in na_fila and vendedor_id not in self.repositorio.membros_unidade(unidade_id):
                raise ErroValidacao(f"Vendedor {vendedor_id} não pertence à unidade {unidade_id}")
            ausencia =self.repositorio.inserir_ausencia(Ausencia(
                id=None,
                unidade_id=unidade_id,
                vendedor_id=vendedor_id,
                data_inicio=data_inicio,
                data_fim=data_fim,
                motivo=motivo or "",
                created_by=created_by,
            ))

        logger.info(f"✅ Ausência {ausencia.id} registrada: vendedor {vendedor_id} até {data_fim.isoformat()}")
        return ResultadoAusencia(ausencia, sincronizar_membros(self.repositorio, unidade_id))

    def listar_ausencias(self, unidade_id: int) -> List[Ausencia]:
        return self.repositorio.listar_ausencias(unidade_id)

    def remover_ausencia(self, unidade_id: int, ausencia_id: int) -> ResultadoSync:
        with self.travas.trava(unidade_id):
            removida = self.repositorio.remover_ausencia(unidade_id, ausencia_id)
        if not removida:
            raise RegistroNaoEncontrado(f"Ausência {ausencia_id} não encontrada na unidade {unidade_id}")
        logger.info(f"🗑️ Ausência {ausencia_id} removida da unidade {unidade_id}")
        return sincronizar_membros(self.repositorio, unidade_id)
