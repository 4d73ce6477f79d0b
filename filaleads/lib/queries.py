# ============================================================================
# IMPORTAÇÃO DE TODAS AS QUERIES ORGANIZADAS POR RECURSO
# ============================================================================

# Queries da fila de leads (unidades, ausências, log, roleta)
from .fila_queries import *
