"""
Fixtures compartilhadas: repositório em memória, CRM falso (httpx.MockTransport),
Redis falso e cliente HTTP da API.
"""

import asyncio
import fnmatch
import json
from datetime import datetime, timezone

import httpx
import pytest

from filaleads.lib.crm_client import CrmClient
from filaleads.lib.memoria_repository import MemoriaRepository
from filaleads.lib.travas import RegistroTravas

AGORA = datetime(2025, 3, 10, 14, 0, tzinfo=timezone.utc)

UNIDADE_CENTRO = 1
UNIDADE_SUL = 2
DPTO_CENTRO = 77


def rodar(coro):
    """Executa uma corrotina num event loop novo."""
    return asyncio.run(coro)


# ═══════════════════════════════════════════════════════════════
# Dublês
# ═══════════════════════════════════════════════════════════════

class RedisFalso:
    """Subconjunto do upstash_redis.Redis usado pelo CacheManager."""

    def __init__(self):
        self.dados = {}

    def ping(self):
        return "PONG"

    def get(self, key):
        return self.dados.get(key)

    def set(self, key, value, ex=None):
        self.dados[key] = value
        return True

    def keys(self, pattern):
        return [k for k in self.dados if fnmatch.fnmatch(k, pattern)]

    def delete(self, *keys):
        return sum(1 for k in keys if self.dados.pop(k, None) is not None)


class CrmFalso:
    """Servidor CRM em memória para httpx.MockTransport."""

    def __init__(self):
        self.leads = {}
        self.usuarios = [{"id": 11, "name": "Ana"}, {"id": 12, "name": "Bruno"}]
        self.requisicoes = []
        self.puts = []
        self.status_put = None
        self.status_get = None
        self.timeout_put = False

    def adicionar_lead(self, lead_id, **campos):
        lead = {
            "id": lead_id,
            "firstname": "Maria",
            "lastname": "Souza",
            "whatsapp": "",
            "phone": "5511999990000",
            "owner": {"id": 5, "name": "Antigo Dono"},
            "userAccess": [5],
            "departmentAccess": [3],
        }
        lead.update(campos)
        self.leads[lead_id] = lead
        return lead

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requisicoes.append(request)
        partes = request.url.path.strip("/").split("/")
        if partes[0] == "api":
            partes = partes[1:]

        if partes == ["user"]:
            return httpx.Response(200, json=self.usuarios)

        if partes[0] != "leads" or len(partes) != 2:
            return httpx.Response(404, json={"erro": "rota desconhecida"})
        lead_id = int(partes[1])

        if request.method == "GET":
            if self.status_get:
                return httpx.Response(self.status_get, text="falha simulada")
            if lead_id not in self.leads:
                return httpx.Response(404, json={"erro": "lead não encontrado"})
            return httpx.Response(200, json={"data": {"lead": self.leads[lead_id]}})

        if request.method == "PUT":
            corpo = json.loads(request.content)
            self.puts.append((lead_id, corpo))
            if self.timeout_put:
                raise httpx.ReadTimeout("timeout simulado", request=request)
            if self.status_put:
                return httpx.Response(self.status_put, text="falha simulada")
            lead = self.leads.setdefault(lead_id, {"id": lead_id})
            lead.update(corpo)
            lead["owner"] = {"id": corpo["owner"], "name": f"Usuário {corpo['owner']}"}
            return httpx.Response(200, json={"success": True, "data": {"lead": lead}})

        return httpx.Response(405)


# ═══════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def agora():
    return AGORA


@pytest.fixture
def repositorio():
    """
    Unidade Centro: Ana(11), Bruno(12), Carla(13) na fila, Diego(14) só membro.
    Unidade Sul: Eva(21), Fábio(22).
    """
    repo = MemoriaRepository()
    repo.adicionar_unidade(
        UNIDADE_CENTRO, "Unidade Centro", dpto_gestao=DPTO_CENTRO,
        fila_leads=[
            {"vendedor_id": 11, "nome": "Ana", "sequencia": 1, "total_distribuicoes": 0},
            {"vendedor_id": 12, "nome": "Bruno", "sequencia": 2, "total_distribuicoes": 0},
            {"vendedor_id": 13, "nome": "Carla", "sequencia": 3, "total_distribuicoes": 0},
        ],
    )
    repo.adicionar_unidade(
        UNIDADE_SUL, "Unidade Sul",
        fila_leads=[{"id": 21, "ordem": 1}, {"id": 22, "ordem": 2}],
    )
    repo.adicionar_vendedor(11, "Ana", unidades=[UNIDADE_CENTRO])
    repo.adicionar_vendedor(12, "Bruno", unidades=[UNIDADE_CENTRO])
    repo.adicionar_vendedor(13, "Carla", unidades=[UNIDADE_CENTRO])
    repo.adicionar_vendedor(14, "Diego", unidades=[UNIDADE_CENTRO])
    repo.adicionar_vendedor(21, "Eva", unidades=[UNIDADE_SUL])
    repo.adicionar_vendedor(22, "Fábio", unidades=[UNIDADE_SUL])
    return repo


@pytest.fixture
def travas():
    return RegistroTravas()


@pytest.fixture
def crm_falso():
    return CrmFalso()


@pytest.fixture
def crm(crm_falso):
    return CrmClient(
        base_url="https://crm.teste/api",
        api_token="token-secreto-1234",
        group_id="42",
        transport=httpx.MockTransport(crm_falso),
    )


@pytest.fixture
def crm_sem_config():
    return CrmClient(base_url="", api_token="", group_id="")


@pytest.fixture
def sem_espera(monkeypatch):
    """Zera o backoff do retry do CRM."""
    async def dormir(_):
        return None
    monkeypatch.setattr("filaleads.lib.crm_client.asyncio.sleep", dormir)


AUTH = ("admin", "senha-forte")


@pytest.fixture
def api(monkeypatch, repositorio, crm):
    from fastapi.testclient import TestClient
    from filaleads.main import criar_app, get_users

    monkeypatch.setenv("BASIC_AUTH_USERS", f"{AUTH[0]}:{AUTH[1]},leitor:outra")
    get_users.cache_clear()
    app = criar_app(repositorio=repositorio, redis=RedisFalso(), crm=crm)
    with TestClient(app) as client:
        yield client
    get_users.cache_clear()
