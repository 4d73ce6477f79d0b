"""
Configuração do serviço de fila de leads.

Todas as variáveis vêm do ambiente (arquivo .env carregado via python-dotenv).
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ============================================================================
# BANCO DE DADOS
# ============================================================================

DB_POOL_MIN = int(os.getenv("DB_POOL_MIN", "1"))
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "10"))

# postgres | memoria
FILA_STORAGE = os.getenv("FILA_STORAGE", "postgres").lower()

# ============================================================================
# CRM (SPRINTHUB)
# ============================================================================

# Nomes legados (URLPATCH, APITOKEN, I) continuam aceitos
CRM_BASE_URL = os.getenv("CRM_BASE_URL") or os.getenv("URLPATCH", "")
CRM_API_TOKEN = os.getenv("CRM_API_TOKEN") or os.getenv("APITOKEN", "")
CRM_GROUP_ID = os.getenv("CRM_GROUP_ID") or os.getenv("I", "")

CRM_TIMEOUT = float(os.getenv("CRM_TIMEOUT", "15"))
CRM_MAX_RETRIES = int(os.getenv("CRM_MAX_RETRIES", "3"))
CRM_RETRY_DELAY = float(os.getenv("CRM_RETRY_DELAY", "1"))
CRM_USER_AGENT = "filaleads/1.0"

# ============================================================================
# APLICAÇÃO
# ============================================================================

MAX_WORKERS = int(os.getenv("MAX_WORKERS", str(min(32, (os.cpu_count() or 1) + 4))))


class CacheConfig:
    FILAS = 60 * 5               # 5 minutos
    ESPERA_LOCK = 0.5            # polling enquanto outra requisição calcula


# Limites da listagem de logs
LOG_LIMIT_MINIMO = 10
LOG_LIMIT_PADRAO = 50
LOG_LIMIT_MAXIMO = 100
