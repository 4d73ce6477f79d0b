"""
Módulo de conexão com banco de dados PostgreSQL.

Fornece get_conn()/release_conn() e o gerenciador transacao(), usado pelo
repositório da fila para agrupar leitura com lock e escrita num único commit.
"""

import os
import psycopg2
import psycopg2.pool
from contextlib import contextmanager
from typing import Optional
import logging

from .config import DB_POOL_MIN, DB_POOL_MAX

logger = logging.getLogger(__name__)

# O pool é acessado a partir das threads do executor, por isso ThreadedConnectionPool
connection_pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None


def init_connection_pool():
    """Inicializa o pool de conexões se ainda não foi inicializado."""
    global connection_pool

    if connection_pool is None:
        try:
            connection_pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=DB_POOL_MIN,
                maxconn=DB_POOL_MAX,
                dbname=os.getenv("DB_NAME"),
                user=os.getenv("DB_USER"),
                password=os.getenv("DB_PASSWORD"),
                host=os.getenv("DB_HOST"),
                port=os.getenv("DB_PORT", "5432")
            )
            logger.info("✅ Pool de conexões PostgreSQL inicializado")
        except Exception as e:
            logger.error(f"❌ Erro ao inicializar pool de conexões: {e}")
            raise


def get_conn():
    """
    Obtém uma conexão do pool de conexões PostgreSQL.

    Raises:
        Exception: Se não conseguir obter conexão
    """
    if connection_pool is None:
        init_connection_pool()

    try:
        return connection_pool.getconn()
    except Exception as e:
        logger.error(f"❌ Erro ao obter conexão do pool: {e}")
        raise


def release_conn(conn):
    """Libera uma conexão de volta para o pool."""
    if connection_pool is not None:
        try:
            connection_pool.putconn(conn)
        except Exception as e:
            logger.error(f"❌ Erro ao liberar conexão: {e}")


@contextmanager
def transacao():
    """
    Abre uma conexão do pool e a entrega dentro de uma transação.

    Commit ao sair normalmente, rollback em qualquer exceção (que é relançada).
    A conexão sempre volta para o pool.
    """
    conn = get_conn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)


def close_all_connections():
    """Fecha todas as conexões do pool."""
    global connection_pool

    if connection_pool is not None:
        connection_pool.closeall()
        connection_pool = None
        logger.info("✅ Todas as conexões fechadas")
