from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, TypeVar, Union
from loguru import logger

from fastorm.config import ConnectionConfig
from fastorm.connection import Connection
from fastorm.model import Model

T = TypeVar("T")

ModelFactory = Callable[[str], Model]
TransactionCallback = Callable[[Connection, ModelFactory], Awaitable[T]]


class FastOrm:
    def __init__(self, config: Union[ConnectionConfig, Mapping[str, Any]]):
        self.connection = Connection(config)

    def model(self, table_name: str) -> Model:
        """Create a model bound to the shared pool-backed connection"""
        return Model(table_name, self.connection)

    async def transaction(self, callback: TransactionCallback[T]) -> T:
        """Run ``callback`` inside one transaction.

        The callback receives a transaction-bound connection and a model
        factory bound to it. The transaction is committed when the callback
        returns and rolled back when it raises; the underlying connection goes
        back to the pool either way.
        """
        handle = None
        try:
            handle = await self.connection.begin_transaction()
            trx_connection = Connection(handle)

            def model_factory(table_name: str) -> Model:
                return Model(table_name, trx_connection)

            result = await callback(trx_connection, model_factory)
            await self.connection.commit_transaction(handle)
            return result
        except BaseException:
            if handle is not None:
                logger.warning("Rolling back transaction")
                await self.connection.rollback_transaction(handle)
            raise
        finally:
            if handle is not None:
                self.connection.release_connection(handle)

    async def disconnect(self):
        await self.connection.end()

    async def __aenter__(self) -> "FastOrm":
        return self

    async def __aexit__(self, *exc_info):
        await self.disconnect()
