# ============================================================================
# QUERIES SQL - FILA DE LEADS
# ============================================================================

# Criação idempotente das tabelas usadas pela fila
CRIAR_TABELAS_FILA = """
CREATE TABLE IF NOT EXISTS unidades (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    ativo BOOLEAN NOT NULL DEFAULT TRUE,
    dpto_gestao INTEGER,
    fila_leads JSONB NOT NULL DEFAULT '[]'::jsonb,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS vendedores (
    id INTEGER PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    "lastName" VARCHAR(255),
    ativo BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS vendedores_unidades (
    vendedor_id INTEGER NOT NULL,
    unidade_id INTEGER NOT NULL,
    PRIMARY KEY (vendedor_id, unidade_id)
);

CREATE TABLE IF NOT EXISTS vendedores_ausencias (
    id SERIAL PRIMARY KEY,
    unidade_id INTEGER NOT NULL,
    vendedor_id INTEGER NOT NULL,
    data_inicio TIMESTAMPTZ NOT NULL,
    data_fim TIMESTAMPTZ NOT NULL,
    motivo TEXT NOT NULL DEFAULT '',
    created_by INTEGER,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    CHECK (data_fim > data_inicio)
);

CREATE INDEX IF NOT EXISTS idx_ausencias_unidade_vendedor
    ON vendedores_ausencias (unidade_id, vendedor_id, data_fim);

CREATE TABLE IF NOT EXISTS fila_leads_log (
    id BIGSERIAL PRIMARY KEY,
    unidade_id INTEGER NOT NULL,
    vendedor_id INTEGER NOT NULL,
    lead_id BIGINT,
    posicao_fila INTEGER NOT NULL,
    total_fila INTEGER NOT NULL,
    owner_anterior INTEGER,
    user_access_anterior JSONB NOT NULL DEFAULT '[]'::jsonb,
    department_access_anterior JSONB NOT NULL DEFAULT '[]'::jsonb,
    distribuido_em TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_fila_leads_log_unidade
    ON fila_leads_log (unidade_id, id DESC);

CREATE TABLE IF NOT EXISTS roletas (
    id SERIAL PRIMARY KEY,
    unidade_id INTEGER NOT NULL UNIQUE,
    ativo BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS fila_roleta (
    id SERIAL PRIMARY KEY,
    roleta_id INTEGER NOT NULL REFERENCES roletas(id) ON DELETE CASCADE,
    vendedor_id INTEGER NOT NULL,
    ordem INTEGER NOT NULL
);
"""

# ----------------------------------------------------------------------------
# Unidades / fila
# ----------------------------------------------------------------------------

# Carrega a unidade travando a linha até o fim da transação
BUSCAR_UNIDADE_PARA_ATUALIZAR = """
SELECT id, name, ativo, dpto_gestao, fila_leads, updated_at
FROM unidades
WHERE id = %s
FOR UPDATE
"""

BUSCAR_UNIDADE = """
SELECT id, name, ativo, dpto_gestao, fila_leads, updated_at
FROM unidades
WHERE id = %s
"""

LISTAR_UNIDADES = """
SELECT id, name, ativo, dpto_gestao, fila_leads, updated_at
FROM unidades
ORDER BY name
"""

# Grava a fila inteira numa única escrita
ATUALIZAR_FILA_UNIDADE = """
UPDATE unidades
SET fila_leads = %s::jsonb, ativo = %s, updated_at = NOW()
WHERE id = %s
"""

# ----------------------------------------------------------------------------
# Vendedores
# ----------------------------------------------------------------------------

BUSCAR_VENDEDORES_POR_IDS = """
SELECT id, name, "lastName", ativo
FROM vendedores
WHERE id = ANY(%s)
"""

BUSCAR_MEMBROS_UNIDADE = """
SELECT vendedor_id
FROM vendedores_unidades
WHERE unidade_id = %s
"""

# ----------------------------------------------------------------------------
# Ausências
# ----------------------------------------------------------------------------

# Retorno previsto: maior data_fim entre as ausências já iniciadas e não encerradas
BUSCAR_RETORNO_AUSENCIAS = """
SELECT vendedor_id, MAX(data_fim) AS retorno
FROM vendedores_ausencias
WHERE unidade_id = %s
  AND data_inicio <= %s
  AND data_fim > %s
GROUP BY vendedor_id
"""

INSERIR_AUSENCIA = """
INSERT INTO vendedores_ausencias (
    unidade_id, vendedor_id, data_inicio, data_fim, motivo, created_by
) VALUES (%s, %s, %s, %s, %s, %s)
RETURNING id, created_at
"""

LISTAR_AUSENCIAS = """
SELECT
    a.id, a.unidade_id, a.vendedor_id, a.data_inicio, a.data_fim,
    a.motivo, a.created_by, a.created_at,
    TRIM(CONCAT(v.name, ' ', COALESCE(v."lastName", ''))) AS vendedor_nome
FROM vendedores_ausencias a
LEFT JOIN vendedores v ON v.id = a.vendedor_id
WHERE a.unidade_id = %s
ORDER BY a.data_inicio DESC
"""

REMOVER_AUSENCIA = """
DELETE FROM vendedores_ausencias
WHERE id = %s AND unidade_id = %s
"""

# ----------------------------------------------------------------------------
# Log de distribuição
# ----------------------------------------------------------------------------

INSERIR_LOG_DISTRIBUICAO = """
INSERT INTO fila_leads_log (
    unidade_id, vendedor_id, lead_id, posicao_fila, total_fila,
    owner_anterior, user_access_anterior, department_access_anterior,
    distribuido_em
) VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb, %s::jsonb, %s)
RETURNING id
"""

_COLUNAS_LOG = """
    l.id, l.unidade_id, l.vendedor_id, l.lead_id, l.posicao_fila, l.total_fila,
    l.owner_anterior, l.user_access_anterior, l.department_access_anterior,
    l.distribuido_em,
    TRIM(CONCAT(v.name, ' ', COALESCE(v."lastName", ''))) AS vendedor_nome
"""

# Paginação por cursor (id do último registro da página anterior)
LISTAR_LOGS_DISTRIBUICAO = f"""
SELECT {_COLUNAS_LOG}
FROM fila_leads_log l
LEFT JOIN vendedores v ON v.id = l.vendedor_id
WHERE l.unidade_id = %s
  AND (%s::bigint IS NULL OR l.id < %s::bigint)
ORDER BY l.id DESC
LIMIT %s
"""

BUSCAR_LOG_DISTRIBUICAO = f"""
SELECT {_COLUNAS_LOG}
FROM fila_leads_log l
LEFT JOIN vendedores v ON v.id = l.vendedor_id
WHERE l.id = %s AND l.unidade_id = %s
"""

CONTAR_LOGS_DISTRIBUICAO = """
SELECT COUNT(*) FROM fila_leads_log WHERE unidade_id = %s
"""

BUSCAR_ULTIMO_LOG_DISTRIBUICAO = f"""
SELECT {_COLUNAS_LOG}
FROM fila_leads_log l
LEFT JOIN vendedores v ON v.id = l.vendedor_id
WHERE l.unidade_id = %s
ORDER BY l.id DESC
LIMIT 1
"""

LIMPAR_LOGS_DISTRIBUICAO = """
DELETE FROM fila_leads_log WHERE unidade_id = %s
"""

# ----------------------------------------------------------------------------
# Roleta legada
# ----------------------------------------------------------------------------

GARANTIR_ROLETA = """
INSERT INTO roletas (unidade_id, ativo)
VALUES (%s, %s)
ON CONFLICT (unidade_id) DO UPDATE SET ativo = EXCLUDED.ativo
RETURNING id
"""

LIMPAR_FILA_ROLETA = """
DELETE FROM fila_roleta WHERE roleta_id = %s
"""

INSERIR_FILA_ROLETA = """
INSERT INTO fila_roleta (roleta_id, vendedor_id, ordem)
VALUES (%s, %s, %s)
"""

REMOVER_ROLETA = """
DELETE FROM roletas WHERE unidade_id = %s
"""
