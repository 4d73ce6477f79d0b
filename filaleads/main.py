from fastapi import FastAPI, HTTPException, Depends, Request, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from upstash_redis import Redis
from .lib.config import CacheConfig, MAX_WORKERS
from .lib.crm_client import CrmClient
from .lib.db_connection import close_all_connections
from .lib.erros import ErroFila
from .lib.fila_repository import FilaRepository, criar_repositorio
from .lib.models import para_dict
from .scripts.crm_sync import (
    ResultadoSync,
    sincronizar_todas_roletas,
    remover_roleta_unidade,
)
from .scripts.distribuicao import Distribuidor, normalizar_requisicao
from .scripts.fila_store import FilaStore, ResultadoAlteracao, atualizar_disponibilidade
import os
import json
from dataclasses import asdict
from decimal import Decimal
from dotenv import load_dotenv
import secrets
import logging
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from functools import lru_cache, partial
import asyncio
import threading
import time

from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Dict, List, Optional, Any, Callable
from pydantic import BaseModel, Field

# ============================================================================
# CONFIGURAÇÕES E CONSTANTES
# ============================================================================

load_dotenv()

# Logging estruturado
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"
CHAVE_VISAO_GERAL = "filas:visao_geral"

# ============================================================================
# MODELOS PYDANTIC
# ============================================================================

class VendedorFilaItem(BaseModel):
    id: int = Field(..., description="ID do vendedor (mesmo id do usuário no CRM)")
    nome: Optional[str] = Field(None, max_length=255)


class DefinirFilaRequest(BaseModel):
    """Nova fila completa; a ordem da lista é a ordem de rotação"""
    vendedores: List[VendedorFilaItem]


class AdicionarVendedorRequest(BaseModel):
    vendedor_id: int
    nome: Optional[str] = Field(None, max_length=255)


class DefinirAtivoRequest(BaseModel):
    ativo: bool


class AusenciaRequest(BaseModel):
    """Período em que o vendedor não recebe leads"""
    vendedor_id: int = Field(..., description="ID do vendedor")
    data_inicio: Optional[datetime] = Field(None, description="Início (padrão: agora)")
    data_fim: datetime = Field(..., description="Retorno previsto do vendedor")
    motivo: str = Field(..., min_length=1, max_length=500, description="Motivo da ausência")
    created_by: Optional[int] = None

# ============================================================================
# AUTENTICAÇÃO
# ============================================================================

security = HTTPBasic()

@lru_cache(maxsize=1)
def get_users() -> Dict[str, str]:
    """Carrega usuários do .env com cache"""
    users = {}
    users_env = os.getenv("BASIC_AUTH_USERS")
    if users_env:
        for pair in users_env.split(","):
            if ":" in pair:
                user, pwd = pair.split(":", 1)
                users[user.strip()] = pwd.strip()
    return users

def verify_basic_auth(credentials: HTTPBasicCredentials = Depends(security)):
    """Valida credenciais Basic Auth"""
    users = get_users()
    password = users.get(credentials.username)

    if not password or not secrets.compare_digest(credentials.password, password):
        raise HTTPException(
            status_code=401,
            detail="Credenciais inválidas",
            headers={"WWW-Authenticate": "Basic"}
        )
    return credentials

# ============================================================================
# GERENCIAMENTO DE CACHE
# ============================================================================

class CacheManager:
    """Cache da visão geral das filas no Redis, com lock para cálculo único"""

    def __init__(
        self,
        redis_client: Redis,
        executor: Optional[Executor] = None,
        intervalo_espera: float = CacheConfig.ESPERA_LOCK
    ):
        self.redis = redis_client
        self.executor = executor
        self.intervalo_espera = intervalo_espera
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def get_lock(self, cache_key: str) -> threading.Lock:
        """Obtém ou cria um lock para uma chave específica"""
        with self._locks_lock:
            if cache_key not in self._locks:
                self._locks[cache_key] = threading.Lock()
            return self._locks[cache_key]

    def get(self, key: str) -> Optional[Any]:
        """Busca valor do cache com tratamento de erros"""
        try:
            cached = self.redis.get(key)
            if cached:
                return json.loads(cached) if isinstance(cached, str) else cached
        except Exception as e:
            logger.warning(f"⚠️ Erro ao buscar cache {key}: {e}")
        return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        """Salva valor no cache com tratamento de erros"""
        try:
            def json_encoder(obj):
                if isinstance(obj, Decimal):
                    return float(obj)
                if isinstance(obj, datetime):
                    return obj.isoformat()
                raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

            cache_data = json.dumps(value, ensure_ascii=False, default=json_encoder)
            self.redis.set(key, cache_data, ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"⚠️ Erro ao salvar cache {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Deleta chaves que correspondem ao padrão"""
        try:
            keys = self.redis.keys(pattern)
            deleted = 0
            for key in keys:
                self.redis.delete(key)
                deleted += 1
            return deleted
        except Exception as e:
            logger.error(f"❌ Erro ao deletar cache {pattern}: {e}")
            return 0

    async def get_or_compute(self, cache_key: str, compute_func: Callable, ttl: int) -> Any:
        """
        Busca no cache ou calcula o valor; só uma requisição calcula por vez.

        A trava nunca é esperada dentro do executor: quem não consegue pegá-la
        aguarda o cache no event loop, deixando as threads livres para o
        cálculo e para a distribuição de leads.
        """
        cached = self.get(cache_key)
        if cached is not None:
            logger.info(f"✅ Cache hit: {cache_key}")
            return cached

        logger.info(f"❌ Cache miss: {cache_key}")
        lock = self.get_lock(cache_key)

        if not lock.acquire(blocking=False):
            logger.info(f"⏳ Aguardando processamento: {cache_key}")
            return await self._wait_for_cache(cache_key, lock, compute_func, ttl)

        try:
            # Verificar cache novamente após adquirir lock
            cached = self.get(cache_key)
            if cached is not None:
                logger.info(f"✅ Cache disponível após lock: {cache_key}")
                return cached
            return await self._compute(cache_key, compute_func, ttl)
        finally:
            lock.release()
            logger.debug(f"🔓 Lock liberado: {cache_key}")

    async def _compute(self, cache_key: str, compute_func: Callable, ttl: int) -> Any:
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(self.executor, compute_func)
        self.set(cache_key, result, ttl)
        logger.info(f"💾 Cache salvo: {cache_key} (TTL: {ttl}s)")
        return result

    async def _wait_for_cache(
        self,
        cache_key: str,
        lock: threading.Lock,
        compute_func: Callable,
        ttl: int,
        timeout: float = 60
    ) -> Any:
        """Aguarda outra requisição gravar o cache; assume o cálculo se ela desistir."""
        start_time = time.time()

        while time.time() - start_time < timeout:
            await asyncio.sleep(self.intervalo_espera)
            cached = self.get(cache_key)
            if cached is not None:
                elapsed = time.time() - start_time
                logger.info(f"✅ Cache disponível após {elapsed:.1f}s: {cache_key}")
                return cached

            # Trava livre e cache vazio: o cálculo anterior falhou
            if lock.acquire(blocking=False):
                try:
                    cached = self.get(cache_key)
                    if cached is not None:
                        return cached
                    return await self._compute(cache_key, compute_func, ttl)
                finally:
                    lock.release()

        logger.warning(f"⏰ Timeout aguardando cache: {cache_key}")
        return await self._compute(cache_key, compute_func, ttl)

    def invalidar_filas(self) -> None:
        deleted = self.delete_pattern("filas:*")
        if deleted:
            logger.info(f"🗑️ Cache das filas invalidado ({deleted} chaves)")

# ============================================================================
# HELPERS
# ============================================================================

async def em_thread(request: Request, func: Callable, *args, **kwargs) -> Any:
    """Executa código bloqueante (SQL) no thread pool da aplicação"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(request.app.state.executor, partial(func, *args, **kwargs))


def sync_dict(sync: ResultadoSync) -> Dict[str, Any]:
    return {"sucesso": sync.sucesso, "erro": sync.erro}


async def resposta_alteracao(request: Request, unidade_id: int, resultado: ResultadoAlteracao) -> Dict[str, Any]:
    request.app.state.cache.invalidar_filas()
    store: FilaStore = request.app.state.store
    fila = await em_thread(request, store.detalhar, unidade_id)
    return jsonable_encoder({
        "sucesso": True,
        "fila": fila,
        "sincronizacao": sync_dict(resultado.sincronizacao),
    })

# ============================================================================
# INICIALIZAÇÃO DA APLICAÇÃO
# ============================================================================

def criar_app(repositorio=None, redis: Optional[Redis] = None, crm: Optional[CrmClient] = None) -> FastAPI:
    """
    Cria a aplicação. Repositório, Redis e cliente do CRM podem ser injetados
    (testes); o que não for injetado é criado no lifespan a partir do ambiente.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Gerencia lifecycle da aplicação"""
        try:
            logger.info("🚀 Iniciando aplicação...")

            # Validar variáveis de ambiente
            required_vars = ["BASIC_AUTH_USERS"]
            if redis is None:
                required_vars += ["UPSTASH_REDIS_REST_URL", "UPSTASH_REDIS_REST_TOKEN"]
            missing = [var for var in required_vars if not os.getenv(var)]

            if missing:
                raise RuntimeError(f"Variáveis obrigatórias ausentes: {missing}")

            app.state.executor = ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="api_worker")

            app.state.redis = redis if redis is not None else Redis.from_env()
            app.state.redis.ping()
            logger.info("✅ Redis conectado")

            app.state.cache = CacheManager(app.state.redis, app.state.executor)
            logger.info("✅ Cache manager inicializado")

            app.state.repositorio = repositorio if repositorio is not None else criar_repositorio()
            app.state.repositorio.garantir_esquema()

            app.state.crm = crm if crm is not None else CrmClient()
            app.state.store = FilaStore(app.state.repositorio)
            app.state.distribuidor = Distribuidor(app.state.repositorio, app.state.crm, app.state.executor)

            logger.info(f"✅ Thread pool: {MAX_WORKERS} workers")
            logger.info("✅ Aplicação pronta!")

            yield

        except Exception as e:
            logger.error(f"❌ Erro na inicialização: {e}")
            raise
        finally:
            logger.info("🔴 Encerrando aplicação...")
            executor = getattr(app.state, "executor", None)
            if executor is not None:
                executor.shutdown(wait=True)
            if isinstance(getattr(app.state, "repositorio", None), FilaRepository):
                close_all_connections()
            logger.info("✅ Aplicação encerrada")

    app = FastAPI(
        title="Fila de Leads API",
        description="Distribuição de leads por unidade em rodízio entre vendedores",
        version=VERSION,
        lifespan=lifespan
    )

    # ========================================================================
    # MIDDLEWARES
    # ========================================================================

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Adiciona tempo de processamento nos headers"""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.3f}s"
        return response

    @app.exception_handler(ErroFila)
    async def erro_fila_handler(request: Request, exc: ErroFila):
        logger.warning(f"⚠️ {request.method} {request.url.path}: {exc.mensagem}")
        return JSONResponse(status_code=exc.status_code, content={"sucesso": False, "erro": exc.mensagem})

    # ========================================================================
    # ENDPOINTS
    # ========================================================================

    @app.get("/")
    async def root():
        """Endpoint raiz"""
        return {
            "message": "Fila de Leads API",
            "version": VERSION,
            "status": "online",
            "docs": "/docs"
        }

    @app.get("/health")
    async def health_check(request: Request, verificar_crm: bool = False):
        """Health check detalhado (banco, Redis e CRM)"""
        componentes = {}
        try:
            request.app.state.redis.ping()
            componentes["redis"] = "connected"
        except Exception as e:
            logger.error(f"Health check Redis falhou: {e}")
            componentes["redis"] = "error"

        try:
            await em_thread(request, request.app.state.repositorio.ping)
            componentes["database"] = "connected"
        except Exception as e:
            logger.error(f"Health check banco falhou: {e}")
            componentes["database"] = "error"

        crm: CrmClient = request.app.state.crm
        if not crm.configurado:
            componentes["crm"] = "not_configured"
        elif verificar_crm:
            componentes["crm"] = "connected" if await crm.test_connection() else "error"
        else:
            componentes["crm"] = "configured"

        if "error" in (componentes["redis"], componentes["database"]):
            raise HTTPException(status_code=503, detail={"status": "unhealthy", **componentes})

        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": os.getenv("ENVIRONMENT", "production"),
            **componentes,
            "workers": MAX_WORKERS,
            "version": VERSION
        }

    # ------------------------------------------------------------------------
    # Distribuição (chamado pelas automações do CRM, sem autenticação)
    # ------------------------------------------------------------------------

    @app.api_route("/filav2", methods=["GET", "POST"])
    async def distribuir_lead(request: Request):
        """
        Atribui um lead ao próximo vendedor da fila da unidade.

        Aceita JSON (`unidade`/`unidadeId`, `idlead`/`leadId`) ou query string.
        """
        corpo = None
        if request.method == "POST" and "application/json" in request.headers.get("content-type", ""):
            try:
                corpo = await request.json()
            except ValueError:
                logger.info("Corpo JSON inválido em /filav2, usando query string")

        try:
            requisicao = normalizar_requisicao(corpo, request.query_params)
            distribuidor: Distribuidor = request.app.state.distribuidor
            resultado = await distribuidor.distribuir(requisicao.unidade_id, requisicao.lead_id)
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em /filav2: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        request.app.state.cache.invalidar_filas()
        return jsonable_encoder(resultado)

    # ------------------------------------------------------------------------
    # Administração das filas
    # ------------------------------------------------------------------------

    @app.get("/fila", dependencies=[Depends(verify_basic_auth)])
    async def get_filas(request: Request):
        """Visão geral de todas as filas (cache)"""
        cache: CacheManager = request.app.state.cache
        store: FilaStore = request.app.state.store
        try:
            result = await cache.get_or_compute(CHAVE_VISAO_GERAL, store.visao_geral, CacheConfig.FILAS)
            # Ausências podem ter expirado depois que a visão foi para o cache
            result = atualizar_disponibilidade(result)
            return jsonable_encoder({"filas": result})
        except Exception as e:
            logger.error(f"Erro em /fila: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/fila/{unidade_id}", dependencies=[Depends(verify_basic_auth)])
    async def get_fila(request: Request, unidade_id: int):
        """Fila da unidade com estatísticas de distribuição"""
        store: FilaStore = request.app.state.store
        try:
            return jsonable_encoder(await em_thread(request, store.detalhar, unidade_id))
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em GET /fila/{unidade_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.put("/fila/{unidade_id}", dependencies=[Depends(verify_basic_auth)])
    async def put_fila(request: Request, unidade_id: int, request_data: DefinirFilaRequest):
        """Substitui a fila inteira da unidade"""
        store: FilaStore = request.app.state.store
        try:
            vendedores = [item.model_dump() for item in request_data.vendedores]
            resultado = await em_thread(request, store.definir_fila, unidade_id, vendedores)
            return await resposta_alteracao(request, unidade_id, resultado)
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em PUT /fila/{unidade_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/fila/{unidade_id}/vendedores", dependencies=[Depends(verify_basic_auth)])
    async def post_vendedor_fila(request: Request, unidade_id: int, request_data: AdicionarVendedorRequest):
        """Adiciona um vendedor no fim da fila"""
        store: FilaStore = request.app.state.store
        try:
            resultado = await em_thread(
                request, store.adicionar_vendedor, unidade_id, request_data.vendedor_id, request_data.nome
            )
            return await resposta_alteracao(request, unidade_id, resultado)
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em POST /fila/{unidade_id}/vendedores: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.delete("/fila/{unidade_id}/vendedores/{vendedor_id}", dependencies=[Depends(verify_basic_auth)])
    async def delete_vendedor_fila(
        request: Request,
        unidade_id: int,
        vendedor_id: int,
        indice: Optional[int] = Query(None, ge=0, description="Posição (0-based) da entrada a remover")
    ):
        """Remove a primeira ocorrência do vendedor, ou a entrada em `indice`"""
        store: FilaStore = request.app.state.store
        try:
            resultado = await em_thread(request, store.remover_vendedor, unidade_id, vendedor_id, indice)
            return await resposta_alteracao(request, unidade_id, resultado)
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em DELETE /fila/{unidade_id}/vendedores/{vendedor_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.put("/fila/{unidade_id}/ativo", dependencies=[Depends(verify_basic_auth)])
    async def put_fila_ativo(request: Request, unidade_id: int, request_data: DefinirAtivoRequest):
        """Ativa ou desativa a distribuição da unidade"""
        store: FilaStore = request.app.state.store
        try:
            resultado = await em_thread(request, store.definir_ativo, unidade_id, request_data.ativo)
            return await resposta_alteracao(request, unidade_id, resultado)
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em PUT /fila/{unidade_id}/ativo: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    # ------------------------------------------------------------------------
    # Ausências
    # ------------------------------------------------------------------------

    @app.get("/fila/{unidade_id}/ausencias", dependencies=[Depends(verify_basic_auth)])
    async def get_ausencias(request: Request, unidade_id: int):
        store: FilaStore = request.app.state.store
        try:
            ausencias = await em_thread(request, store.listar_ausencias, unidade_id)
            return jsonable_encoder({"unidade_id": unidade_id, "ausencias": [para_dict(a) for a in ausencias]})
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em GET /fila/{unidade_id}/ausencias: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/fila/{unidade_id}/ausencias", status_code=201, dependencies=[Depends(verify_basic_auth)])
    async def post_ausencia(request: Request, unidade_id: int, request_data: AusenciaRequest):
        """Registra ausência; o vendedor é pulado na rotação até `data_fim`"""
        store: FilaStore = request.app.state.store
        try:
            resultado = await em_thread(
                request,
                store.registrar_ausencia,
                unidade_id,
                request_data.vendedor_id,
                request_data.data_fim,
                data_inicio=request_data.data_inicio,
                motivo=request_data.motivo,
                created_by=request_data.created_by,
            )
            request.app.state.cache.invalidar_filas()
            return jsonable_encoder({
                "sucesso": True,
                "ausencia": para_dict(resultado.ausencia),
                "sincronizacao": sync_dict(resultado.sincronizacao),
            })
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em POST /fila/{unidade_id}/ausencias: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.delete("/fila/{unidade_id}/ausencias/{ausencia_id}", dependencies=[Depends(verify_basic_auth)])
    async def delete_ausencia(request: Request, unidade_id: int, ausencia_id: int):
        store: FilaStore = request.app.state.store
        try:
            sync = await em_thread(request, store.remover_ausencia, unidade_id, ausencia_id)
            request.app.state.cache.invalidar_filas()
            return {"sucesso": True, "ausencia_id": ausencia_id, "sincronizacao": sync_dict(sync)}
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em DELETE /fila/{unidade_id}/ausencias/{ausencia_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    # ------------------------------------------------------------------------
    # Log de distribuição
    # ------------------------------------------------------------------------

    @app.get("/fila/{unidade_id}/logs", dependencies=[Depends(verify_basic_auth)])
    async def get_logs(
        request: Request,
        unidade_id: int,
        limit: Optional[int] = Query(None, description="Registros por página (10 a 100, padrão 50)"),
        cursor: Optional[int] = Query(None, description="proximo_cursor da página anterior")
    ):
        """Logs de distribuição da unidade, do mais recente ao mais antigo"""
        store: FilaStore = request.app.state.store
        try:
            return jsonable_encoder(await em_thread(request, store.log.listar, unidade_id, limit, cursor))
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em GET /fila/{unidade_id}/logs: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.delete("/fila/{unidade_id}/logs", dependencies=[Depends(verify_basic_auth)])
    async def delete_logs(request: Request, unidade_id: int):
        """Manutenção: apaga todo o histórico de distribuição da unidade"""
        store: FilaStore = request.app.state.store
        try:
            removidos = await em_thread(request, store.log.limpar, unidade_id)
            request.app.state.cache.invalidar_filas()
            return {"sucesso": True, "unidade_id": unidade_id, "logs_removidos": removidos}
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em DELETE /fila/{unidade_id}/logs: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/fila/{unidade_id}/logs/{log_id}/reenviar-crm", dependencies=[Depends(verify_basic_auth)])
    async def post_reenviar_crm(request: Request, unidade_id: int, log_id: int):
        """Reenvia ao CRM a atribuição de um log, sem mexer na fila"""
        distribuidor: Distribuidor = request.app.state.distribuidor
        try:
            return jsonable_encoder(await distribuidor.reenviar_crm(unidade_id, log_id))
        except ErroFila:
            raise
        except Exception as e:
            logger.error(f"Erro em POST /fila/{unidade_id}/logs/{log_id}/reenviar-crm: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    # ------------------------------------------------------------------------
    # Roleta legada
    # ------------------------------------------------------------------------

    @app.post("/roletas/sync", dependencies=[Depends(verify_basic_auth)])
    async def post_sync_roletas(request: Request):
        """Sincroniza a roleta legada de todas as unidades"""
        try:
            resultado = await em_thread(request, sincronizar_todas_roletas, request.app.state.repositorio)
            return {"sucesso": not resultado.falhas, **asdict(resultado)}
        except Exception as e:
            logger.error(f"Erro em /roletas/sync: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.delete("/roletas/{unidade_id}", dependencies=[Depends(verify_basic_auth)])
    async def delete_roleta(request: Request, unidade_id: int):
        """Remove a roleta de uma unidade excluída"""
        try:
            sync = await em_thread(request, remover_roleta_unidade, request.app.state.repositorio, unidade_id)
        except Exception as e:
            logger.error(f"Erro em DELETE /roletas/{unidade_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        if not sync.sucesso:
            raise HTTPException(status_code=500, detail=sync.erro)
        return {"sucesso": True, "unidade_id": unidade_id, **sync.resposta}

    return app


app = criar_app()
