"""
Distribuição de leads (orquestração).

Fluxo de `distribuir`:
1. consulta o estado atual do lead no CRM (fora da trava)
2. roda a rotação da unidade numa thread do executor (sob a trava)
3. envia a atribuição ao CRM (fora da trava)
4. monta a resposta; falhas de auditoria ou de CRM viram `avisos`

Os nomes legados dos parâmetros (`unidade`, `unidadeId`, `idlead`...) são
resolvidos só em `normalizar_requisicao`.
"""

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from functools import partial
from typing import Any, Dict, Mapping, Optional

from ..lib.crm_client import CrmClient
from ..lib.erros import ErroValidacao, UnidadeNaoEncontrada
from ..lib.travas import RegistroTravas, travas
from .crm_sync import consultar_lead, limpar_lead_id, push_atribuicao, snapshot_lead
from .distribuicao_log import DistribuicaoLog
from .rotacao import MotorRotacao

logger = logging.getLogger(__name__)

CHAVES_UNIDADE = ("unidade", "unidadeId", "unidade_id", "unit", "unitId")
CHAVES_LEAD = ("idlead", "leadId", "lead_id", "lead")

AVISO_AUDITORIA = "auditoria_nao_registrada"
AVISO_CRM_FALHOU = "crm_sync_falhou"
AVISO_CRM_IGNORADO = "crm_ignorado"
AVISO_LEAD_NAO_CONSULTADO = "lead_nao_consultado"


@dataclass
class RequisicaoDistribuicao:
    unidade_id: int
    lead_id: Optional[int] = None


def _primeiro(dados: Mapping, chaves) -> Any:
    for chave in chaves:
        valor = dados.get(chave)
        if valor not in (None, ""):
            return valor
    return None


def normalizar_requisicao(corpo: Optional[Mapping] = None, query: Optional[Mapping] = None) -> RequisicaoDistribuicao:
    """Resolve unidade e lead a partir do corpo JSON e, na falta, da query string."""
    corpo = corpo if isinstance(corpo, Mapping) else {}
    query = query or {}

    unidade = _primeiro(corpo, CHAVES_UNIDADE)
    if unidade is None:
        unidade = _primeiro(query, CHAVES_UNIDADE)
    lead = _primeiro(corpo, CHAVES_LEAD)
    if lead is None:
        lead = _primeiro(query, CHAVES_LEAD)

    if unidade is None:
        raise ErroValidacao("Parâmetro 'unidade' é obrigatório")
    try:
        if isinstance(unidade, bool):
            raise ValueError
        unidade_id = int(str(unidade).strip())
    except ValueError:
        raise ErroValidacao(f"Id de unidade inválido: {unidade!r}")
    if unidade_id <= 0:
        raise ErroValidacao(f"Id de unidade inválido: {unidade!r}")

    return RequisicaoDistribuicao(unidade_id=unidade_id, lead_id=limpar_lead_id(lead))


class Distribuidor:

    def __init__(
        self,
        repositorio,
        crm: CrmClient,
        executor: Optional[Executor] = None,
        registro_travas: RegistroTravas = travas
    ):
        self.repositorio = repositorio
        self.crm = crm
        self.executor = executor
        self.motor = MotorRotacao(repositorio, registro_travas)
        self.log = DistribuicaoLog(repositorio)

    async def _executar(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, partial(func, *args, **kwargs))

    async def distribuir(self, unidade_id: int, lead_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Atribui o lead ao próximo vendedor da unidade.

        Raises:
            FilaNaoConfigurada, NenhumVendedorDisponivel: nada foi alterado

        Qualquer retorno significa que a rotação aconteceu; `avisos` lista o
        que não pôde ser concluído (auditoria, CRM).
        """
        avisos = []
        lead = None
        erro_lead = None

        # Estado anterior do lead, lido uma vez e reaproveitado no log e no PUT
        if lead_id is not None and self.crm.configurado:
            lead, erro_lead = await consultar_lead(self.crm, lead_id)
            if lead is None:
                avisos.append(AVISO_LEAD_NAO_CONSULTADO)
        antes = snapshot_lead(lead)

        rotacao = await self._executar(
            self.motor.rotacionar,
            unidade_id,
            lead_id=lead_id,
            owner_anterior=antes["owner"] if antes else None,
            user_access_anterior=antes["userAccess"] if antes else (),
            department_access_anterior=antes["departmentAccess"] if antes else (),
        )
        if not rotacao.auditoria_registrada:
            avisos.append(AVISO_AUDITORIA)

        lead_atualizado = False
        depois = None
        erro = None
        if lead_id is None:
            avisos.append(AVISO_CRM_IGNORADO)
        elif lead is None and erro_lead is not None:
            # Sem o estado anterior o PUT apagaria nome e telefone do lead
            avisos.append(AVISO_CRM_FALHOU)
            erro = erro_lead
        else:
            sync = await push_atribuicao(
                self.crm,
                lead_id,
                rotacao.vendedor_id,
                rotacao.vendedor_nome,
                rotacao.dpto_gestao,
                filial=rotacao.unidade_nome,
                lead=lead,
            )
            lead_atualizado = sync.sucesso
            depois = sync.depois
            if not sync.sucesso:
                avisos.append(AVISO_CRM_FALHOU)
                erro = sync.erro

        if avisos:
            logger.warning(
                f"⚠️ Distribuição parcial na unidade {unidade_id} (lead {lead_id}, "
                f"vendedor {rotacao.vendedor_id}): {avisos}"
            )

        return {
            "sucesso": True,
            "unidade": {
                "id": rotacao.unidade_id,
                "nome": rotacao.unidade_nome,
                "dpto_gestao": rotacao.dpto_gestao,
            },
            "lead_id": lead_id,
            "vendedor_atribuido": {
                "vendedor_id": rotacao.vendedor_id,
                "nome": rotacao.vendedor_nome,
            },
            "departamento": [rotacao.dpto_gestao] if rotacao.dpto_gestao else [],
            "lead_atualizado": lead_atualizado,
            "antes": antes,
            "depois": depois,
            "posicao_fila": rotacao.posicao_fila,
            "total_fila": rotacao.total_fila,
            "log_id": rotacao.log_id,
            "avisos": avisos,
            "erro": erro or rotacao.erro_auditoria,
        }

    async def reenviar_crm(self, unidade_id: int, log_id: int) -> Dict[str, Any]:
        """
        Reenvia ao CRM a atribuição de um log já registrado.

        Não toca na fila. O PUT usa valores absolutos, então reenviar a mesma
        atribuição deixa o lead no mesmo estado final.
        """
        log = await self._executar(self.log.obter, unidade_id, log_id)
        if log.lead_id is None:
            raise ErroValidacao(f"Log {log_id} não possui lead associado")

        fila = await self._executar(self.repositorio.obter_fila, unidade_id)
        if fila is None:
            raise UnidadeNaoEncontrada(unidade_id)

        vendedor_nome = log.vendedor_nome
        if not vendedor_nome:
            vendedores = await self._executar(self.repositorio.buscar_vendedores, [log.vendedor_id])
            vendedor_nome = vendedores[log.vendedor_id].nome if log.vendedor_id in vendedores else ""

        sync = await push_atribuicao(
            self.crm,
            log.lead_id,
            log.vendedor_id,
            vendedor_nome,
            fila.dpto_gestao,
            filial=fila.nome,
        )
        logger.info(f"🔄 Reenvio ao CRM do log {log_id}: {'ok' if sync.sucesso else sync.erro}")
        return {
            "sucesso": sync.sucesso,
            "log_id": log_id,
            "lead_id": log.lead_id,
            "vendedor_id": log.vendedor_id,
            "lead_atualizado": sync.sucesso,
            "antes": sync.antes,
            "depois": sync.depois,
            "erro": sync.erro,
        }
