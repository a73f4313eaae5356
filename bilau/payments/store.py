"""Lista de PIX pendentes no Redis (sobrevive a reinícios) para reconciliar na inicialização."""

import json
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

logger = logging.getLogger(__name__)

# Rodadas de WATCH/MULTI antes de desistir quando outra instância escreve ao mesmo tempo
MAX_WATCH_ROUNDS = 5


def _decode(raw: str | bytes | None) -> list[str]:
    """Lista de ids a partir do JSON gravado; qualquer coisa inválida vira lista vazia."""
    if raw is None:
        return []
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Lista de pagamentos pendentes corrompida; tratando como vazia")
        return []
    if not isinstance(data, list):
        logger.warning("Lista de pagamentos pendentes com formato inesperado; tratando como vazia")
        return []
    ids: list[str] = []
    for item in data:
        if isinstance(item, str) and item and item not in ids:
            ids.append(item)
    return ids


class PendingPaymentStore:
    """
    Registro único (chave Redis) com a lista ordenada de PIX aguardando confirmação.
    add/remove fazem read-modify-write com WATCH para tolerar escrita concorrente.
    """

    def __init__(self, redis: Redis, key: str):
        self._redis = redis
        self.key = key

    async def list(self) -> list[str]:
        try:
            raw = await self._redis.get(self.key)
        except RedisError as e:
            logger.warning("Erro ao ler pagamentos pendentes (%s): %s", self.key, e)
            return []
        return _decode(raw)

    async def add(self, payment_id: str) -> None:
        await self._update(payment_id, add=True)

    async def remove(self, payment_id: str) -> None:
        await self._update(payment_id, add=False)

    async def _update(self, payment_id: str, *, add: bool) -> None:
        action = "salvar" if add else "remover"
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(MAX_WATCH_ROUNDS):
                    try:
                        await pipe.watch(self.key)
                        ids = _decode(await pipe.get(self.key))
                        if add == (payment_id in ids):
                            await pipe.unwatch()
                            return
                        if add:
                            ids.append(payment_id)
                        else:
                            ids = [i for i in ids if i != payment_id]
                        pipe.multi()
                        if ids:
                            pipe.set(self.key, json.dumps(ids))
                        else:
                            pipe.delete(self.key)
                        await pipe.execute()
                        return
                    except WatchError:
                        logger.info("Lista de pendentes alterada durante %s %s; relendo", action, payment_id)
                        continue
        except RedisError as e:
            logger.error("Erro ao %s pagamento pendente %s: %s", action, payment_id, e)
            return
        logger.error(
            "Não foi possível %s pagamento pendente %s após %d tentativas", action, payment_id, MAX_WATCH_ROUNDS
        )


async def stored_scopes(redis: Redis, prefix: str) -> list[str]:
    """Chaves de sessões com pendentes gravados (SCAN pelo prefixo)."""
    keys: list[str] = []
    try:
        async for key in redis.scan_iter(match=f"{prefix}:*"):
            keys.append(key.decode() if isinstance(key, bytes) else key)
    except RedisError as e:
        logger.warning("Erro ao listar sessões com pagamentos pendentes: %s", e)
    return keys
