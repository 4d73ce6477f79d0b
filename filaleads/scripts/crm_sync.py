"""
Sincronização da fila com o CRM.

Duas responsabilidades:
- Atribuição: grava no lead do CRM o novo responsável, os acessos e o
  departamento da unidade, devolvendo o estado antes/depois.
- Membros: mantém a roleta legada (`roletas`/`fila_roleta`) igual ao conjunto
  de vendedores elegíveis da fila, para os sistemas que ainda a leem.

As funções de sincronização nunca lançam exceção para quem chama: falhas
voltam como ResultadoSync(sucesso=False, erro=...).
"""

import re
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..lib.crm_client import CrmClient
from ..lib.erros import ErroValidacao
from .ausencias import elegiveis

logger = logging.getLogger(__name__)

# Placeholders de automação não substituídos, ex.: "{contactfield=id}"
_PLACEHOLDER = re.compile(r"\{[^}]*\}")


# ============================================================================
# DATACLASSES
# ============================================================================

@dataclass
class ResultadoSync:
    """Resultado de uma chamada de sincronização."""
    sucesso: bool
    erro: Optional[str] = None
    antes: Optional[Dict[str, Any]] = None
    depois: Optional[Dict[str, Any]] = None
    resposta: Any = None


@dataclass
class ResultadoSyncGeral:
    total: int = 0
    sincronizadas: int = 0
    falhas: List[Dict[str, Any]] = field(default_factory=list)


# ============================================================================
# HELPERS
# ============================================================================

def limpar_lead_id(valor) -> Optional[int]:
    """
    Normaliza o id do lead recebido da automação.

    Placeholders `{...}` são descartados e o restante fica só com dígitos.
    Retorna None só quando o lead não foi informado (None ou string vazia).

    Raises:
        ErroValidacao: valor informado que não resulta num id positivo
            (inclusive o placeholder da automação sem substituição)
    """
    if valor is None or isinstance(valor, bool):
        return None
    if isinstance(valor, int):
        if valor <= 0:
            raise ErroValidacao(f"Id de lead inválido: {valor!r}")
        return valor
    if not str(valor).strip():
        return None

    texto = _PLACEHOLDER.sub("", str(valor))
    digitos = "".join(filter(str.isdigit, texto))
    if not digitos or int(digitos) <= 0:
        raise ErroValidacao(f"Id de lead inválido: {valor!r}")
    return int(digitos)


def _descrever_erro(e: Exception) -> str:
    if isinstance(e, httpx.HTTPStatusError):
        return f"CRM respondeu HTTP {e.response.status_code}: {e.response.text[:200]}"
    if isinstance(e, httpx.TimeoutException):
        return "timeout ao chamar o CRM"
    if isinstance(e, httpx.NetworkError):
        return f"falha de rede ao chamar o CRM: {e}"
    return str(e) or type(e).__name__


def _ids(valor) -> List[int]:
    if not isinstance(valor, list):
        return []
    ids = []
    for item in valor:
        item = item.get("id") if isinstance(item, dict) else item
        try:
            ids.append(int(item))
        except (TypeError, ValueError):
            continue
    return ids


def snapshot_lead(lead: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Campos de atribuição do lead: owner, owner_nome, userAccess, departmentAccess."""
    if lead is None:
        return None
    owner = lead.get("owner")
    if isinstance(owner, dict):
        owner_id, owner_nome = owner.get("id"), owner.get("name")
    else:
        owner_id, owner_nome = owner, None
    try:
        owner_id = int(owner_id) if owner_id is not None else None
    except (TypeError, ValueError):
        owner_id = None
    return {
        "owner": owner_id,
        "owner_nome": owner_nome,
        "userAccess": _ids(lead.get("userAccess")),
        "departmentAccess": _ids(lead.get("departmentAccess")),
    }


def montar_payload(
    vendedor_id: int,
    dpto_gestao: Optional[int],
    lead: Optional[Dict[str, Any]] = None,
    filial: Optional[str] = None
) -> Dict[str, Any]:
    """
    Monta o corpo do PUT do lead.

    Todos os valores são absolutos, então repetir o envio para o mesmo
    (unidade, vendedor, lead) leva o lead ao mesmo estado final.
    """
    lead = lead or {}
    payload = {
        "owner": vendedor_id,
        "userAccess": [vendedor_id],
        "departmentAccess": [dpto_gestao] if dpto_gestao else [],
        "whatsapp": lead.get("whatsapp") or lead.get("phone") or lead.get("mobile") or "",
    }
    if lead.get("firstname"):
        payload["firstname"] = lead["firstname"]
    if lead.get("lastname"):
        payload["lastname"] = lead["lastname"]
    if filial:
        payload["filial"] = filial
    return payload


# ============================================================================
# ATRIBUIÇÃO NO CRM
# ============================================================================

async def consultar_lead(crm: CrmClient, lead_id: int) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Busca o lead no CRM. Retorna (lead, None) ou (None, motivo da falha)."""
    try:
        lead = await crm.get_lead(lead_id)
    except Exception as e:
        erro = _descrever_erro(e)
        logger.warning(f"⚠️ Não foi possível consultar o lead {lead_id}: {erro}")
        return None, erro
    if lead is None:
        return None, f"lead {lead_id} não encontrado no CRM"
    return lead, None


async def push_atribuicao(
    crm: CrmClient,
    lead_id: int,
    vendedor_id: int,
    vendedor_nome: str,
    dpto_gestao: Optional[int],
    filial: Optional[str] = None,
    lead: Optional[Dict[str, Any]] = None
) -> ResultadoSync:
    """
    Envia a atribuição de um lead ao CRM.

    `lead` é o estado já consultado antes da rotação; quando ausente o lead é
    consultado aqui. A resposta nunca lança exceção.
    """
    if not crm.configurado:
        return ResultadoSync(sucesso=False, erro="configuração do CRM ausente")

    if lead is None:
        lead, erro = await consultar_lead(crm, lead_id)
        if lead is None:
            return ResultadoSync(sucesso=False, erro=erro)

    antes = snapshot_lead(lead)
    payload = montar_payload(vendedor_id, dpto_gestao, lead, filial)

    try:
        resposta = await crm.update_lead(lead_id, payload)
    except Exception as e:
        erro = _descrever_erro(e)
        logger.error(f"❌ Falha ao atualizar lead {lead_id} no CRM (vendedor {vendedor_id}): {erro}")
        return ResultadoSync(sucesso=False, erro=erro, antes=antes)

    depois = {
        "owner": vendedor_id,
        "owner_nome": vendedor_nome,
        "userAccess": payload["userAccess"],
        "departmentAccess": payload["departmentAccess"],
    }
    logger.info(f"✅ Lead {lead_id} atualizado no CRM: owner {antes['owner']} -> {vendedor_id}")
    return ResultadoSync(sucesso=True, antes=antes, depois=depois, resposta=resposta)


# ============================================================================
# ROLETA LEGADA (MEMBROS)
# ============================================================================

def sincronizar_membros(repositorio, unidade_id: int, agora: Optional[datetime] = None) -> ResultadoSync:
    """Substitui a fila da roleta legada pelos vendedores elegíveis da unidade."""
    agora = agora or datetime.now(timezone.utc)
    try:
        fila = repositorio.obter_fila(unidade_id, agora)
        if fila is None:
            return ResultadoSync(sucesso=False, erro=f"unidade {unidade_id} não encontrada")

        vendedores = []
        for entrada in elegiveis(fila.ordenadas(), agora):
            if entrada.vendedor_id not in vendedores:
                vendedores.append(entrada.vendedor_id)

        roleta_id = repositorio.substituir_roleta(unidade_id, vendedores, ativo=fila.ativo)
        logger.info(f"🔄 Roleta {roleta_id} sincronizada com {len(vendedores)} vendedores (unidade {unidade_id})")
        return ResultadoSync(
            sucesso=True,
            resposta={"roleta_id": roleta_id, "vendedores": vendedores},
        )
    except Exception as e:
        logger.error(f"❌ Erro ao sincronizar roleta da unidade {unidade_id}: {e}")
        return ResultadoSync(sucesso=False, erro=str(e))


def sincronizar_todas_roletas(repositorio) -> ResultadoSyncGeral:
    """Sincroniza a roleta de todas as unidades."""
    resultado = ResultadoSyncGeral()
    agora = datetime.now(timezone.utc)
    try:
        filas = repositorio.listar_filas(agora)
    except Exception as e:
        logger.error(f"❌ Erro ao listar unidades para sincronizar roletas: {e}")
        resultado.falhas.append({"unidade_id": None, "erro": str(e)})
        return resultado

    logger.info(f"🔄 Sincronizando {len(filas)} roletas...")
    for fila in filas:
        resultado.total += 1
        sync = sincronizar_membros(repositorio, fila.unidade_id, agora)
        if sync.sucesso:
            resultado.sincronizadas += 1
        else:
            resultado.falhas.append({"unidade_id": fila.unidade_id, "erro": sync.erro})

    logger.info(f"✅ Roletas sincronizadas: {resultado.sincronizadas}/{resultado.total}")
    return resultado


def remover_roleta_unidade(repositorio, unidade_id: int) -> ResultadoSync:
    """Remove a roleta de uma unidade (unidade excluída)."""
    try:
        removida = repositorio.remover_roleta(unidade_id)
    except Exception as e:
        logger.error(f"❌ Erro ao remover roleta da unidade {unidade_id}: {e}")
        return ResultadoSync(sucesso=False, erro=str(e))
    logger.info(f"🗑️ Roleta da unidade {unidade_id} {'removida' if removida else 'não existia'}")
    return ResultadoSync(sucesso=True, resposta={"removida": removida})
