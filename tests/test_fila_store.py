"""
Administração da fila: normalização do JSON legado e sequência 1..N após
qualquer alteração.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from conftest import UNIDADE_CENTRO, UNIDADE_SUL
from filaleads.lib.erros import ErroValidacao, RegistroNaoEncontrado, UnidadeNaoEncontrada
from filaleads.lib.models import Ausencia, normalizar_entradas
from filaleads.scripts.fila_store import FilaStore, atualizar_disponibilidade


# As operações do admin usam o relógio real
AGORA = datetime.now(timezone.utc)


def sequencias(fila):
    return sorted(e.sequencia for e in fila.entradas)


def ordem(fila):
    return [e.vendedor_id for e in fila.ordenadas()]


@pytest.fixture
def store(repositorio, travas):
    return FilaStore(repositorio, travas)


class TestNormalizarEntradas:

    def test_formatos_legados(self):
        raw = '[{"id": "12", "ordem": 2}, {"vendedor_id": 11, "sequencia": 1, "total_distribuicoes": 4}]'
        entradas = normalizar_entradas(raw)
        assert [(e.vendedor_id, e.sequencia, e.total_distribuicoes) for e in entradas] == [
            (11, 1, 4), (12, 2, 0)
        ]

    def test_ids_soltos_e_invalidos(self):
        entradas = normalizar_entradas([13, "x", None, {"nome": "sem id"}, "14", 0])
        assert [e.vendedor_id for e in entradas] == [13, 14]
        assert [e.sequencia for e in entradas] == [1, 2]

    def test_sequencia_esparsa_vira_densa(self):
        entradas = normalizar_entradas([
            {"vendedor_id": 1, "sequencia": 10},
            {"vendedor_id": 2, "sequencia": 3},
            {"vendedor_id": 3, "sequencia": 7},
        ])
        assert [(e.vendedor_id, e.sequencia) for e in entradas] == [(2, 1), (3, 2), (1, 3)]

    def test_json_invalido_vira_fila_vazia(self):
        assert normalizar_entradas("{nao é json") == []
        assert normalizar_entradas(None) == []
        assert normalizar_entradas({"vendedores": []}) == []


class TestLeitura:

    def test_obter_fila_com_projecao_de_ausencia(self, store, repositorio):
        store.registrar_ausencia(UNIDADE_CENTRO, 12, data_fim=AGORA + timedelta(days=365), motivo="férias")
        fila = store.obter_fila(UNIDADE_CENTRO)
        bruno = next(e for e in fila.entradas if e.vendedor_id == 12)
        assert bruno.ausencia_retorno == AGORA + timedelta(days=365)

    def test_unidade_inexistente(self, store):
        with pytest.raises(UnidadeNaoEncontrada):
            store.obter_fila(999)

    def test_detalhar_inclui_estatisticas(self, store):
        detalhe = store.detalhar(UNIDADE_CENTRO)
        assert detalhe["total_fila"] == 3
        assert detalhe["total_leads_distribuidos"] == 0
        assert detalhe["ultima_distribuicao"] is None
        assert [v["vendedor_id"] for v in detalhe["vendedores"]] == [11, 12, 13]
        assert all(v["elegivel"] for v in detalhe["vendedores"])

    def test_visao_geral_lista_todas(self, store):
        nomes = [f["nome"] for f in store.visao_geral()]
        assert nomes == ["Unidade Centro", "Unidade Sul"]


class TestDefinirFila:

    def test_ordem_do_chamador_e_sequencias_ignoradas(self, store):
        resultado = store.definir_fila(UNIDADE_CENTRO, [
            {"id": 13, "sequencia": 99}, {"id": 11, "sequencia": 1}, {"id": 14},
        ])
        assert ordem(resultado.fila) == [13, 11, 14]
        assert sequencias(resultado.fila) == [1, 2, 3]
        assert resultado.sincronizacao.sucesso

    def test_rejeita_vendedor_de_outra_unidade(self, store, repositorio):
        antes = repositorio.fila_gravada(UNIDADE_CENTRO)
        with pytest.raises(ErroValidacao):
            store.definir_fila(UNIDADE_CENTRO, [{"id": 11}, {"id": 21}])
        assert repositorio.fila_gravada(UNIDADE_CENTRO) == antes

    def test_rejeita_id_invalido(self, store):
        with pytest.raises(ErroValidacao):
            store.definir_fila(UNIDADE_CENTRO, [{"id": "abc"}])

    def test_contadores_mantidos_por_ocorrencia(self, store, repositorio):
        repositorio.adicionar_unidade(5, "Unidade Peso", fila_leads=[
            {"vendedor_id": 11, "sequencia": 1, "total_distribuicoes": 7},
            {"vendedor_id": 12, "sequencia": 2, "total_distribuicoes": 3},
            {"vendedor_id": 11, "sequencia": 3, "total_distribuicoes": 2},
        ])
        repositorio.adicionar_vendedor(11, "Ana", unidades=[UNIDADE_CENTRO, 5])
        repositorio.adicionar_vendedor(12, "Bruno", unidades=[UNIDADE_CENTRO, 5])

        resultado = store.definir_fila(5, [{"id": 12}, {"id": 11}, {"id": 11}, {"id": 11}])
        contadores = [(e.vendedor_id, e.total_distribuicoes) for e in resultado.fila.ordenadas()]
        assert contadores == [(12, 3), (11, 7), (11, 2), (11, 0)]

    def test_nome_vem_do_cadastro(self, store):
        resultado = store.definir_fila(UNIDADE_CENTRO, [{"id": 14}])
        assert resultado.fila.entradas[0].nome == "Diego"


class TestAdicionarRemover:

    def test_adicionar_vai_para_o_fim(self, store):
        resultado = store.adicionar_vendedor(UNIDADE_CENTRO, 14)
        assert ordem(resultado.fila) == [11, 12, 13, 14]
        assert resultado.fila.ordenadas()[-1].sequencia == 4

    def test_adicionar_duplicado_e_permitido(self, store):
        resultado = store.adicionar_vendedor(UNIDADE_CENTRO, 11)
        assert ordem(resultado.fila) == [11, 12, 13, 11]
        assert sequencias(resultado.fila) == [1, 2, 3, 4]

    def test_adicionar_nao_membro(self, store):
        with pytest.raises(ErroValidacao):
            store.adicionar_vendedor(UNIDADE_CENTRO, 22)

    def test_remover_renumera_preservando_ordem(self, store):
        resultado = store.remover_vendedor(UNIDADE_CENTRO, vendedor_id=12)
        assert ordem(resultado.fila) == [11, 13]
        assert sequencias(resultado.fila) == [1, 2]

    def test_remover_primeira_ocorrencia(self, store):
        store.adicionar_vendedor(UNIDADE_CENTRO, 11)
        resultado = store.remover_vendedor(UNIDADE_CENTRO, vendedor_id=11)
        assert ordem(resultado.fila) == [12, 13, 11]

    def test_remover_por_indice(self, store):
        store.adicionar_vendedor(UNIDADE_CENTRO, 11)
        resultado = store.remover_vendedor(UNIDADE_CENTRO, indice=3)
        assert ordem(resultado.fila) == [11, 12, 13]

    def test_indice_de_outro_vendedor(self, store):
        with pytest.raises(ErroValidacao):
            store.remover_vendedor(UNIDADE_CENTRO, vendedor_id=13, indice=0)

    def test_remover_inexistente(self, store, repositorio):
        with pytest.raises(RegistroNaoEncontrado):
            store.remover_vendedor(UNIDADE_CENTRO, vendedor_id=14)
        with pytest.raises(RegistroNaoEncontrado):
            store.remover_vendedor(UNIDADE_CENTRO, indice=10)
        assert len(repositorio.fila_gravada(UNIDADE_CENTRO)) == 3

    def test_unidade_inexistente(self, store):
        with pytest.raises(UnidadeNaoEncontrada):
            store.adicionar_vendedor(999, 11)


class TestMembrosERoleta:

    def test_alteracao_sincroniza_roleta(self, store, repositorio):
        store.remover_vendedor(UNIDADE_CENTRO, vendedor_id=11)
        roleta = repositorio.roleta(UNIDADE_CENTRO)
        assert [item["vendedor_id"] for item in roleta["fila"]] == [12, 13]

    def test_falha_na_roleta_nao_desfaz_alteracao(self, store, repositorio, monkeypatch):
        def quebrar(*args, **kwargs):
            raise RuntimeError("roletas indisponível")
        monkeypatch.setattr(repositorio, "substituir_roleta", quebrar)

        resultado = store.adicionar_vendedor(UNIDADE_CENTRO, 14)
        assert not resultado.sincronizacao.sucesso
        assert "roletas indisponível" in resultado.sincronizacao.erro
        assert [e["vendedor_id"] for e in repositorio.fila_gravada(UNIDADE_CENTRO)] == [11, 12, 13, 14]

    def test_definir_ativo(self, store):
        resultado = store.definir_ativo(UNIDADE_SUL, False)
        assert resultado.fila.ativo is False
        assert store.obter_fila(UNIDADE_SUL).ativo is False


class TestAusencias:

    def test_registrar_e_listar(self, store):
        resultado = store.registrar_ausencia(
            UNIDADE_CENTRO, 13, data_fim=AGORA + timedelta(days=400),
            data_inicio=AGORA - timedelta(days=1), motivo="licença",
        )
        assert resultado.ausencia.id is not None
        assert resultado.sincronizacao.sucesso
        ausencias = store.listar_ausencias(UNIDADE_CENTRO)
        assert [(a.vendedor_id, a.motivo, a.vendedor_nome) for a in ausencias] == [(13, "licença", "Carla")]

    def test_data_sem_fuso_e_utc(self, store):
        resultado = store.registrar_ausencia(
            UNIDADE_CENTRO, 13, data_fim=(AGORA + timedelta(days=400)).replace(tzinfo=None)
        )
        assert resultado.ausencia.data_fim.tzinfo is not None

    def test_periodo_invalido(self, store):
        with pytest.raises(ErroValidacao):
            store.registrar_ausencia(
                UNIDADE_CENTRO, 13, data_fim=AGORA, data_inicio=AGORA + timedelta(hours=1)
            )

    def test_vendedor_inativo_nao_recebe_ausencia(self, store, repositorio):
        repositorio.definir_vendedor_ativo(13, False)
        with pytest.raises(ErroValidacao):
            store.registrar_ausencia(UNIDADE_CENTRO, 13, data_fim=AGORA + timedelta(days=400))

    def test_vendedor_de_outra_unidade(self, store):
        with pytest.raises(ErroValidacao):
            store.registrar_ausencia(UNIDADE_CENTRO, 21, data_fim=AGORA + timedelta(days=400))
        assert store.listar_ausencias(UNIDADE_CENTRO) == []

    def test_membro_fora_da_fila_pode_se_ausentar(self, store):
        resultado = store.registrar_ausencia(UNIDADE_CENTRO, 14, data_fim=AGORA + timedelta(days=400))
        assert resultado.ausencia.vendedor_id == 14

    def test_remover(self, store):
        resultado = store.registrar_ausencia(UNIDADE_CENTRO, 12, data_fim=AGORA + timedelta(days=400))
        store.remover_ausencia(UNIDADE_CENTRO, resultado.ausencia.id)
        assert store.listar_ausencias(UNIDADE_CENTRO) == []
        with pytest.raises(RegistroNaoEncontrado):
            store.remover_ausencia(UNIDADE_CENTRO, resultado.ausencia.id)

    def test_ausente_sai_da_roleta(self, store, repositorio):
        store.registrar_ausencia(UNIDADE_CENTRO, 12, data_fim=AGORA + timedelta(days=400))
        roleta = repositorio.roleta(UNIDADE_CENTRO)
        assert [item["vendedor_id"] for item in roleta["fila"]] == [11, 13]


class TestVisaoGeralEmCache:

    def test_ausencia_expirada_depois_do_cache(self, store, repositorio):
        agora = datetime.now(timezone.utc)
        repositorio.inserir_ausencia(Ausencia(
            id=None, unidade_id=UNIDADE_CENTRO, vendedor_id=12,
            data_inicio=agora - timedelta(hours=1), data_fim=agora + timedelta(minutes=1),
        ))
        # mesmo caminho do Redis: JSON com datas em ISO
        visao = json.loads(json.dumps(store.visao_geral(), default=str))
        bruno = visao[0]["vendedores"][1]
        assert bruno["vendedor_id"] == 12
        assert bruno["ausente"] and not bruno["elegivel"]

        atualizar_disponibilidade(visao, agora + timedelta(minutes=2))
        assert not bruno["ausente"]
        assert bruno["elegivel"]

    def test_inativo_continua_inelegivel(self, store, repositorio):
        repositorio.definir_vendedor_ativo(13, False)
        visao = atualizar_disponibilidade(json.loads(json.dumps(store.visao_geral(), default=str)))
        carla = visao[0]["vendedores"][2]
        assert not carla["ausente"]
        assert not carla["elegivel"]
