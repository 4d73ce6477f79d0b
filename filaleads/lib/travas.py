"""
Registro de travas por unidade.

Toda escrita na fila de uma unidade (rotação, ausência, edição pelo admin)
passa pela mesma trava. Unidades diferentes nunca disputam a mesma trava.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict

logger = logging.getLogger(__name__)


class RegistroTravas:
    """Mapa unidade -> threading.Lock, criado sob demanda."""

    def __init__(self):
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def get_lock(self, unidade_id: int) -> threading.Lock:
        """Obtém ou cria o lock de uma unidade"""
        with self._locks_lock:
            if unidade_id not in self._locks:
                self._locks[unidade_id] = threading.Lock()
            return self._locks[unidade_id]

    @contextmanager
    def trava(self, unidade_id: int):
        lock = self.get_lock(unidade_id)
        lock.acquire()
        logger.debug(f"🔒 Lock adquirido: unidade {unidade_id}")
        try:
            yield
        finally:
            lock.release()
            logger.debug(f"🔓 Lock liberado: unidade {unidade_id}")


travas = RegistroTravas()
