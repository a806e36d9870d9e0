from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FieldInfo:
    name: str
    type_oid: int
    type_name: Optional[str] = None


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    command: str = ""
    fields: List[FieldInfo] = field(default_factory=list)


class Database(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    async def init(self, *args: Any, **kwargs: Any) -> None:
        ...

    @abc.abstractmethod
    async def connection(self) -> Connection:
        ...

    @abc.abstractmethod
    async def close(self) -> None:
        ...


class Connection(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    async def execute(self, query: str, *args: Any) -> QueryResult:
        ...

    @abc.abstractmethod
    async def transaction(self, readonly: bool = False) -> Transaction:
        ...

    @abc.abstractmethod
    async def release(self) -> None:
        ...


class Transaction(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    async def commit(self) -> None:
        ...

    @abc.abstractmethod
    async def rollback(self) -> None:
        ...
