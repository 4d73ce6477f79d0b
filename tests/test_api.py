"""
Endpoints HTTP (FastAPI TestClient com repositório em memória e CRM falso).
"""

from datetime import datetime, timedelta, timezone

from conftest import AUTH, DPTO_CENTRO, UNIDADE_CENTRO, UNIDADE_SUL


class TestBasico:

    def test_root(self, api):
        resposta = api.get("/")
        assert resposta.status_code == 200
        assert resposta.json()["status"] == "online"

    def test_health(self, api):
        resposta = api.get("/health")
        assert resposta.status_code == 200
        corpo = resposta.json()
        assert (corpo["status"], corpo["database"], corpo["redis"], corpo["crm"]) == (
            "healthy", "connected", "connected", "configured"
        )
        assert "X-Process-Time" in resposta.headers

    def test_health_verificando_crm(self, api):
        assert api.get("/health", params={"verificar_crm": True}).json()["crm"] == "connected"

    def test_admin_exige_autenticacao(self, api):
        assert api.get("/fila").status_code == 401
        assert api.get("/fila", auth=("admin", "errada")).status_code == 401
        assert api.get("/fila", auth=AUTH).status_code == 200


class TestFilav2:

    def test_post_json(self, api, crm_falso):
        crm_falso.adicionar_lead(100)
        resposta = api.post("/filav2", json={"unidade": UNIDADE_CENTRO, "idlead": 100})
        assert resposta.status_code == 200
        corpo = resposta.json()
        assert corpo["sucesso"]
        assert corpo["vendedor_atribuido"]["vendedor_id"] == 11
        assert corpo["departamento"] == [DPTO_CENTRO]
        assert corpo["avisos"] == []

    def test_get_query_string_legada(self, api, crm_falso):
        crm_falso.adicionar_lead(100)
        resposta = api.get("/filav2", params={"unidadeId": UNIDADE_CENTRO, "leadId": 100})
        assert resposta.status_code == 200
        assert resposta.json()["lead_atualizado"]

    def test_rodizio_entre_chamadas(self, api):
        escolhidos = [
            api.post("/filav2", json={"unidade": UNIDADE_CENTRO}).json()["vendedor_atribuido"]["vendedor_id"]
            for _ in range(4)
        ]
        assert escolhidos == [11, 12, 13, 11]

    def test_sem_unidade(self, api):
        resposta = api.post("/filav2", json={"idlead": 100})
        assert resposta.status_code == 400
        assert resposta.json() == {"sucesso": False, "erro": "Parâmetro 'unidade' é obrigatório"}

    def test_placeholder_nao_gira_a_fila(self, api, repositorio):
        antes = repositorio.fila_gravada(UNIDADE_CENTRO)
        resposta = api.get("/filav2", params={"unidade": UNIDADE_CENTRO, "idlead": "{contactfield=id}"})
        assert resposta.status_code == 400
        assert resposta.json()["sucesso"] is False
        assert repositorio.fila_gravada(UNIDADE_CENTRO) == antes
        assert repositorio.resumo_logs(UNIDADE_CENTRO)["total"] == 0

    def test_fila_nao_configurada(self, api):
        resposta = api.post("/filav2", json={"unidade": 999})
        assert resposta.status_code == 404
        assert resposta.json()["sucesso"] is False

    def test_nenhum_vendedor_disponivel(self, api, repositorio):
        for vendedor_id in (21, 22):
            repositorio.definir_vendedor_ativo(vendedor_id, False)
        resposta = api.post("/filav2", json={"unidade": UNIDADE_SUL})
        assert resposta.status_code == 404
        assert resposta.json()["sucesso"] is False

    def test_falha_no_crm_e_parcial(self, api, crm_falso):
        crm_falso.adicionar_lead(100)
        crm_falso.status_put = 403
        resposta = api.post("/filav2", json={"unidade": UNIDADE_CENTRO, "idlead": 100})
        assert resposta.status_code == 200
        assert resposta.json()["avisos"] == ["crm_sync_falhou"]


class TestAdministracao:

    def test_visao_geral_em_cache(self, api):
        primeira = api.get("/fila", auth=AUTH).json()
        assert [f["unidade_id"] for f in primeira["filas"]] == [UNIDADE_CENTRO, UNIDADE_SUL]

        api.post("/filav2", json={"unidade": UNIDADE_CENTRO})
        depois = api.get("/fila", auth=AUTH).json()
        centro = depois["filas"][0]
        assert centro["total_leads_distribuidos"] == 1

    def test_detalhar(self, api):
        corpo = api.get(f"/fila/{UNIDADE_CENTRO}", auth=AUTH).json()
        assert [v["nome"] for v in corpo["vendedores"]] == ["Ana", "Bruno", "Carla"]

    def test_detalhar_inexistente(self, api):
        resposta = api.get("/fila/999", auth=AUTH)
        assert resposta.status_code == 404
        assert resposta.json()["sucesso"] is False

    def test_substituir_fila(self, api, repositorio):
        resposta = api.put(
            f"/fila/{UNIDADE_CENTRO}", auth=AUTH,
            json={"vendedores": [{"id": 14}, {"id": 11}]},
        )
        assert resposta.status_code == 200
        corpo = resposta.json()
        assert [v["vendedor_id"] for v in corpo["fila"]["vendedores"]] == [14, 11]
        assert corpo["sincronizacao"] == {"sucesso": True, "erro": None}
        assert [i["vendedor_id"] for i in repositorio.roleta(UNIDADE_CENTRO)["fila"]] == [14, 11]

    def test_substituir_com_vendedor_de_fora(self, api):
        resposta = api.put(f"/fila/{UNIDADE_CENTRO}", auth=AUTH, json={"vendedores": [{"id": 21}]})
        assert resposta.status_code == 400

    def test_corpo_invalido(self, api):
        resposta = api.put(f"/fila/{UNIDADE_CENTRO}", auth=AUTH, json={"vendedores": "todos"})
        assert resposta.status_code == 422

    def test_adicionar_e_remover(self, api):
        adicionado = api.post(f"/fila/{UNIDADE_CENTRO}/vendedores", auth=AUTH, json={"vendedor_id": 14})
        assert [v["sequencia"] for v in adicionado.json()["fila"]["vendedores"]] == [1, 2, 3, 4]

        removido = api.delete(f"/fila/{UNIDADE_CENTRO}/vendedores/12", auth=AUTH)
        assert [v["vendedor_id"] for v in removido.json()["fila"]["vendedores"]] == [11, 13, 14]

    def test_remover_por_indice(self, api):
        api.post(f"/fila/{UNIDADE_CENTRO}/vendedores", auth=AUTH, json={"vendedor_id": 11})
        resposta = api.delete(f"/fila/{UNIDADE_CENTRO}/vendedores/11", params={"indice": 3}, auth=AUTH)
        assert [v["vendedor_id"] for v in resposta.json()["fila"]["vendedores"]] == [11, 12, 13]

    def test_remover_ausente_da_fila(self, api):
        resposta = api.delete(f"/fila/{UNIDADE_CENTRO}/vendedores/14", auth=AUTH)
        assert resposta.status_code == 404

    def test_desativar_bloqueia_distribuicao(self, api):
        resposta = api.put(f"/fila/{UNIDADE_CENTRO}/ativo", auth=AUTH, json={"ativo": False})
        assert resposta.json()["fila"]["ativo"] is False
        assert api.post("/filav2", json={"unidade": UNIDADE_CENTRO}).status_code == 404


class TestAusencias:

    def test_ciclo_da_ausencia(self, api):
        fim = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
        criada = api.post(
            f"/fila/{UNIDADE_CENTRO}/ausencias", auth=AUTH,
            json={"vendedor_id": 11, "data_fim": fim, "motivo": "férias"},
        )
        assert criada.status_code == 201
        ausencia_id = criada.json()["ausencia"]["id"]

        # Ana ausente: a primeira distribuição vai para Bruno
        vendedor = api.post("/filav2", json={"unidade": UNIDADE_CENTRO}).json()["vendedor_atribuido"]
        assert vendedor["vendedor_id"] == 12

        listadas = api.get(f"/fila/{UNIDADE_CENTRO}/ausencias", auth=AUTH).json()["ausencias"]
        assert [a["id"] for a in listadas] == [ausencia_id]

        removida = api.delete(f"/fila/{UNIDADE_CENTRO}/ausencias/{ausencia_id}", auth=AUTH)
        assert removida.json()["sucesso"]
        assert api.delete(f"/fila/{UNIDADE_CENTRO}/ausencias/{ausencia_id}", auth=AUTH).status_code == 404

    def test_motivo_obrigatorio(self, api):
        fim = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
        resposta = api.post(
            f"/fila/{UNIDADE_CENTRO}/ausencias", auth=AUTH,
            json={"vendedor_id": 11, "data_fim": fim},
        )
        assert resposta.status_code == 422

    def test_periodo_invalido(self, api):
        agora = datetime.now(timezone.utc)
        resposta = api.post(
            f"/fila/{UNIDADE_CENTRO}/ausencias", auth=AUTH,
            json={
                "vendedor_id": 11,
                "data_inicio": agora.isoformat(),
                "data_fim": (agora - timedelta(days=1)).isoformat(),
                "motivo": "erro de digitação",
            },
        )
        assert resposta.status_code == 400


class TestLogs:

    def test_paginacao(self, api):
        for _ in range(12):
            api.post("/filav2", json={"unidade": UNIDADE_CENTRO})

        primeira = api.get(f"/fila/{UNIDADE_CENTRO}/logs", params={"limit": 10}, auth=AUTH).json()
        assert len(primeira["logs"]) == 10
        segunda = api.get(
            f"/fila/{UNIDADE_CENTRO}/logs",
            params={"limit": 10, "cursor": primeira["proximo_cursor"]}, auth=AUTH,
        ).json()
        assert len(segunda["logs"]) == 2
        assert segunda["proximo_cursor"] is None

    def test_limpar(self, api):
        api.post("/filav2", json={"unidade": UNIDADE_CENTRO})
        resposta = api.delete(f"/fila/{UNIDADE_CENTRO}/logs", auth=AUTH)
        assert resposta.json()["logs_removidos"] == 1
        assert api.get(f"/fila/{UNIDADE_CENTRO}/logs", auth=AUTH).json()["logs"] == []

    def test_reenviar_crm(self, api, crm_falso):
        crm_falso.adicionar_lead(100)
        crm_falso.status_put = 409
        distribuicao = api.post("/filav2", json={"unidade": UNIDADE_CENTRO, "idlead": 100}).json()
        assert not distribuicao["lead_atualizado"]

        crm_falso.status_put = None
        resposta = api.post(f"/fila/{UNIDADE_CENTRO}/logs/{distribuicao['log_id']}/reenviar-crm", auth=AUTH)
        assert resposta.status_code == 200
        assert resposta.json()["lead_atualizado"]

    def test_reenviar_log_inexistente(self, api):
        resposta = api.post(f"/fila/{UNIDADE_CENTRO}/logs/999/reenviar-crm", auth=AUTH)
        assert resposta.status_code == 404


class TestRoletas:

    def test_sincronizar_todas(self, api, repositorio):
        corpo = api.post("/roletas/sync", auth=AUTH).json()
        assert (corpo["sucesso"], corpo["total"], corpo["sincronizadas"]) == (True, 2, 2)
        assert repositorio.roleta(UNIDADE_SUL) is not None

    def test_remover(self, api, repositorio):
        api.post("/roletas/sync", auth=AUTH)
        corpo = api.delete(f"/roletas/{UNIDADE_SUL}", auth=AUTH).json()
        assert corpo == {"sucesso": True, "unidade_id": UNIDADE_SUL, "removida": True}
        assert repositorio.roleta(UNIDADE_SUL) is None
