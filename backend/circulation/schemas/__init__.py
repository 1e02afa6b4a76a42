"""
Schemas Pydantic da aplicação.

Os módulos são importados diretamente (circulation.schemas.transaction,
circulation.schemas.reservation, ...): core.config depende de
circulation.schemas.policy, então este pacote não importa models.
"""
