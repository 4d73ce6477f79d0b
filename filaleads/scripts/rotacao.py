"""
Motor de rotação da fila de leads.

Para uma unidade, escolhe o vendedor elegível com a menor sequência (o que
espera há mais tempo), incrementa seu contador e o move para o fim da fila.
Vendedores ausentes ou inativos são pulados sem perder a posição.

Toda a leitura-alteração-gravação acontece sob a trava da unidade; unidades
diferentes não se bloqueiam.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ..lib.erros import FilaNaoConfigurada, NenhumVendedorDisponivel
from ..lib.models import LogDistribuicao
from ..lib.travas import RegistroTravas, travas
from .ausencias import elegiveis
from .distribuicao_log import DistribuicaoLog

logger = logging.getLogger(__name__)


@dataclass
class ResultadoRotacao:
    """Resultado de uma rotação já gravada."""
    unidade_id: int
    unidade_nome: str
    dpto_gestao: Optional[int]
    vendedor_id: int
    vendedor_nome: str
    posicao_fila: int
    total_fila: int
    total_distribuicoes: int
    log_id: Optional[int] = None
    auditoria_registrada: bool = True
    erro_auditoria: Optional[str] = None
    fila: List[dict] = field(default_factory=list)


class MotorRotacao:

    def __init__(self, repositorio, registro_travas: RegistroTravas = travas):
        self.repositorio = repositorio
        self.travas = registro_travas
        self.log = DistribuicaoLog(repositorio)

    def rotacionar(
        self,
        unidade_id: int,
        lead_id: Optional[int] = None,
        owner_anterior: Optional[int] = None,
        user_access_anterior: Sequence[int] = (),
        department_access_anterior: Sequence[int] = (),
        agora: Optional[datetime] = None
    ) -> ResultadoRotacao:
        """
        Seleciona e avança o próximo vendedor da unidade.

        Raises:
            FilaNaoConfigurada: unidade inexistente, inativa ou sem vendedores
            NenhumVendedorDisponivel: todos ausentes ou inativos

        Nada é gravado quando uma dessas exceções é lançada. Falha ao gravar
        o log não desfaz a rotação: volta em `auditoria_registrada=False`.
        """
        agora = agora or datetime.now(timezone.utc)

        with self.travas.trava(unidade_id):
            with self.repositorio.sessao(unidade_id, agora) as sessao:
                fila = sessao.fila
                if fila is None:
                    raise FilaNaoConfigurada(unidade_id, f"Unidade {unidade_id} não encontrada")
                if not fila.ativo:
                    raise FilaNaoConfigurada(unidade_id, f"Unidade {unidade_id} está inativa")
                if not fila.entradas:
                    raise FilaNaoConfigurada(unidade_id)

                ordenadas = fila.ordenadas()
                assert len({e.sequencia for e in ordenadas}) == len(ordenadas), "sequências repetidas na fila"

                candidatas = elegiveis(ordenadas, agora)
                if not candidatas:
                    logger.warning(f"⚠️ Unidade {unidade_id}: nenhum vendedor disponível ({len(ordenadas)} na fila)")
                    raise NenhumVendedorDisponivel(unidade_id)

                escolhida = candidatas[0]
                posicao = escolhida.sequencia
                total_fila = fila.tamanho

                escolhida.total_distribuicoes += 1
                # Vai para o fim considerando todas as entradas, inclusive as puladas
                escolhida.sequencia = ordenadas[-1].sequencia + 1
                fila.renumerar()
                sessao.salvar()

            resultado = ResultadoRotacao(
                unidade_id=unidade_id,
                unidade_nome=fila.nome,
                dpto_gestao=fila.dpto_gestao,
                vendedor_id=escolhida.vendedor_id,
                vendedor_nome=escolhida.nome,
                posicao_fila=posicao,
                total_fila=total_fila,
                total_distribuicoes=escolhida.total_distribuicoes,
                fila=[e.para_json() for e in fila.entradas],
            )

            # Ainda sob a trava: a ordem dos logs acompanha a ordem das rotações
            try:
                resultado.log_id = self.log.registrar(LogDistribuicao(
                    unidade_id=unidade_id,
                    vendedor_id=escolhida.vendedor_id,
                    lead_id=lead_id,
                    posicao_fila=posicao,
                    total_fila=total_fila,
                    owner_anterior=owner_anterior,
                    user_access_anterior=list(user_access_anterior),
                    department_access_anterior=list(department_access_anterior),
                    distribuido_em=agora,
                ))
            except Exception as e:
                resultado.auditoria_registrada = False
                resultado.erro_auditoria = str(e)
                logger.warning(
                    f"⚠️ Rotação da unidade {unidade_id} mantida sem auditoria "
                    f"(vendedor {escolhida.vendedor_id}, lead {lead_id})"
                )

        logger.info(
            f"🎯 Unidade {unidade_id}: lead {lead_id} -> vendedor {resultado.vendedor_id} "
            f"({resultado.vendedor_nome}) posição {posicao}/{total_fila}"
        )
        return resultado
