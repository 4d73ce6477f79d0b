"""
Cliente HTTP para integração com o CRM (SprintHub).

Fornece métodos para:
- Leads (consulta e atualização de responsável/acessos)
- Usuários (ids coincidem com os ids dos vendedores)

A autenticação é feita pelos query params `apitoken` e `i` (id do grupo).
"""

import httpx
import logging
from typing import Optional, Dict, Any, List
from functools import wraps
import asyncio

from .config import (
    CRM_BASE_URL,
    CRM_API_TOKEN,
    CRM_GROUP_ID,
    CRM_TIMEOUT,
    CRM_MAX_RETRIES,
    CRM_RETRY_DELAY,
    CRM_USER_AGENT,
)

logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def mascarar(token: Optional[str]) -> str:
    return "***" + token[-4:] if token else "NOT_SET"


def get_crm_headers() -> Dict[str, str]:
    """Retorna headers enviados ao CRM."""
    return {
        "Content-Type": "application/json",
        "User-Agent": CRM_USER_AGENT
    }


def with_retry(max_retries: int = CRM_MAX_RETRIES, delay: float = CRM_RETRY_DELAY):
    """Decorator para retry com backoff exponencial."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except (httpx.TimeoutException, httpx.NetworkError, httpx.HTTPStatusError) as e:
                    # Não fazer retry em erros de cliente (4xx)
                    if isinstance(e, httpx.HTTPStatusError) and 400 <= e.response.status_code < 500:
                        raise
                    if attempt + 1 >= max_retries:
                        logger.warning(f"Tentativa {attempt + 1}/{max_retries} falhou: {e}. Desistindo.")
                        raise
                    wait_time = delay * (2 ** attempt)
                    logger.warning(
                        f"Tentativa {attempt + 1}/{max_retries} falhou: {e}. "
                        f"Aguardando {wait_time}s..."
                    )
                    await asyncio.sleep(wait_time)
        return wrapper
    return decorator


class CrmNaoConfigurado(RuntimeError):
    """URL, token ou grupo do CRM ausentes."""


# ============================================================================
# CLIENTE CRM
# ============================================================================

class CrmClient:
    """Cliente HTTP para a API do CRM."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        group_id: Optional[str] = None,
        timeout: float = CRM_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url if base_url is not None else CRM_BASE_URL).rstrip("/")
        self.api_token = api_token if api_token is not None else CRM_API_TOKEN
        self.group_id = str(group_id if group_id is not None else CRM_GROUP_ID)
        self.timeout = timeout
        self.headers = get_crm_headers()
        # Permite injetar httpx.MockTransport nos testes
        self._transport = transport

        if not self.configurado:
            # Não impede a subida da API: a distribuição segue e o CRM é reportado como falho
            logger.error("❌ CRM não configurado (CRM_BASE_URL, CRM_API_TOKEN, CRM_GROUP_ID)")
        else:
            logger.info(
                f"✅ CrmClient inicializado - URL={self.base_url} "
                f"token={mascarar(self.api_token)} grupo={self.group_id}"
            )

    @property
    def configurado(self) -> bool:
        return bool(self.base_url and self.api_token and self.group_id)

    @with_retry()
    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Faz requisição para a API do CRM.

        Args:
            method: Método HTTP (GET, PUT)
            endpoint: Endpoint da API (ex: /leads/123)
            data: Dados para enviar no body (PUT)
            params: Query parameters extras; apitoken e i são sempre incluídos

        Returns:
            Resposta da API já decodificada

        Raises:
            CrmNaoConfigurado: configuração ausente
            httpx.HTTPStatusError: resposta não-2xx
        """
        if not self.configurado:
            raise CrmNaoConfigurado("configuração do CRM ausente")

        url = f"{self.base_url}{endpoint}"
        query = dict(params or {})
        query["apitoken"] = self.api_token
        query["i"] = self.group_id

        logger.info(f"📡 {method} {url} - apitoken={mascarar(self.api_token)}")
        if data:
            logger.info(f"📤 Data: {data}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.request(
                method=method,
                url=url,
                headers=self.headers,
                json=data,
                params=query
            )

            logger.info(f"📥 Response Status: {response.status_code}")

            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()

    # ========================================================================
    # LEADS
    # ========================================================================

    async def get_lead(self, lead_id: int) -> Optional[Dict[str, Any]]:
        """Obtém o lead com todos os campos (`data.lead` da resposta)."""
        resposta = await self._request("GET", f"/leads/{lead_id}", params={"allFields": 1})
        if isinstance(resposta, dict):
            return (resposta.get("data") or {}).get("lead")
        return None

    async def update_lead(self, lead_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Atualiza um lead.

        Args:
            data: {
                "owner": int (id do usuário responsável),
                "userAccess": List[int],
                "departmentAccess": List[int],
                "whatsapp": str,
                "firstname": str,
                "lastname": str,
                "filial": str
            }
        """
        try:
            return await self._request("PUT", f"/leads/{lead_id}", data=data)
        except httpx.HTTPStatusError as e:
            logger.error(f"Erro HTTP {e.response.status_code} ao atualizar lead {lead_id}: {e.response.text}")
            raise

    # ========================================================================
    # USUÁRIOS
    # ========================================================================

    async def list_users(self) -> List[Dict[str, Any]]:
        """Lista usuários do CRM (os ids coincidem com os ids dos vendedores)."""
        resposta = await self._request("GET", "/user")
        return resposta if isinstance(resposta, list) else []

    async def test_connection(self) -> bool:
        """Testa a conexão com a API do CRM."""
        try:
            await self.list_users()
            logger.info("✅ Conexão com CRM estabelecida")
            return True
        except Exception as e:
            logger.error(f"❌ Falha na conexão com CRM: {e}")
            return False
