"""
Erros da fila de leads.

Erros terminais viram exceções; falhas parciais (auditoria, CRM) são
retornadas como valores nos resultados e nunca sobem como exceção.
"""


class ErroFila(Exception):
    """Base de todos os erros do domínio da fila."""
    status_code = 500

    def __init__(self, mensagem: str):
        super().__init__(mensagem)
        self.mensagem = mensagem


class ErroValidacao(ErroFila):
    """Identificadores de unidade, vendedor ou lead malformados."""
    status_code = 400


class FilaNaoConfigurada(ErroFila):
    """Unidade inexistente, inativa ou com fila vazia."""
    status_code = 404

    def __init__(self, unidade_id: int, mensagem: str = None):
        super().__init__(mensagem or f"Nenhuma fila configurada para a unidade {unidade_id}")
        self.unidade_id = unidade_id


class NenhumVendedorDisponivel(ErroFila):
    """Todos os vendedores da fila estão ausentes ou inativos."""
    status_code = 404

    def __init__(self, unidade_id: int):
        super().__init__(
            f"Nenhum vendedor disponível na fila da unidade {unidade_id} (todos inativos ou ausentes)"
        )
        self.unidade_id = unidade_id


class UnidadeNaoEncontrada(ErroFila):
    status_code = 404

    def __init__(self, unidade_id: int):
        super().__init__(f"Unidade {unidade_id} não encontrada")
        self.unidade_id = unidade_id


class RegistroNaoEncontrado(ErroFila):
    """Entrada da fila, ausência ou log inexistente."""
    status_code = 404
