"""
Filtro de elegibilidade: ausências e vendedores inativos.
"""

from datetime import timedelta

import pytest

from conftest import AGORA
from filaleads.lib.erros import ErroValidacao
from filaleads.lib.models import EntradaFila
from filaleads.scripts.ausencias import elegiveis, esta_ausente, validar_periodo


def entrada(vendedor_id, sequencia, retorno=None, ativo=True):
    return EntradaFila(
        vendedor_id=vendedor_id,
        nome=f"V{vendedor_id}",
        sequencia=sequencia,
        ausencia_retorno=retorno,
        vendedor_ativo=ativo,
    )


class TestElegiveis:

    def test_sem_ausencia_todos_elegiveis(self):
        fila = [entrada(1, 1), entrada(2, 2), entrada(3, 3)]
        assert [e.vendedor_id for e in elegiveis(fila, AGORA)] == [1, 2, 3]

    def test_ausencia_em_curso_exclui(self):
        fila = [entrada(1, 1), entrada(2, 2, retorno=AGORA + timedelta(hours=1)), entrada(3, 3)]
        assert [e.vendedor_id for e in elegiveis(fila, AGORA)] == [1, 3]

    def test_ausencia_encerrada_equivale_a_sem_ausencia(self):
        fila = [entrada(1, 1, retorno=AGORA - timedelta(seconds=1))]
        assert elegiveis(fila, AGORA) == fila

    def test_retorno_exatamente_agora_ja_elegivel(self):
        fila = [entrada(1, 1, retorno=AGORA)]
        assert not esta_ausente(fila[0], AGORA)
        assert elegiveis(fila, AGORA) == fila

    def test_vendedor_inativo_exclui(self):
        fila = [entrada(1, 1, ativo=False), entrada(2, 2)]
        assert [e.vendedor_id for e in elegiveis(fila, AGORA)] == [2]

    def test_todos_ausentes_retorna_vazio(self):
        retorno = AGORA + timedelta(days=2)
        fila = [entrada(1, 1, retorno=retorno), entrada(2, 2, retorno=retorno)]
        assert elegiveis(fila, AGORA) == []

    def test_preserva_ordem_e_nao_altera_sequencia(self):
        fila = [entrada(3, 1), entrada(1, 2, retorno=AGORA + timedelta(hours=1)), entrada(2, 3)]
        resultado = elegiveis(fila, AGORA)
        assert [(e.vendedor_id, e.sequencia) for e in resultado] == [(3, 1), (2, 3)]


class TestValidarPeriodo:

    def test_fim_antes_do_inicio(self):
        with pytest.raises(ErroValidacao):
            validar_periodo(AGORA, AGORA - timedelta(hours=1))

    def test_fim_igual_ao_inicio(self):
        with pytest.raises(ErroValidacao):
            validar_periodo(AGORA, AGORA)

    def test_fim_ausente(self):
        with pytest.raises(ErroValidacao):
            validar_periodo(AGORA, None)

    def test_periodo_valido(self):
        validar_periodo(AGORA, AGORA + timedelta(days=1))
