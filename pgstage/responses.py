from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Literal, Optional, Union

from pgstage.errors import PgStageError

Status = Literal["success", "error", "warning"]


@dataclass
class _Envelope:
    status: ClassVar[Status]
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.status != "success"

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"status": self.status}
        if self.message is not None:
            result["message"] = self.message
        result.update(self.data)
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False, default=str)


@dataclass
class SuccessResponse(_Envelope):
    status: ClassVar[Status] = "success"


@dataclass
class WarningResponse(_Envelope):
    status: ClassVar[Status] = "warning"


@dataclass
class ErrorResponse(_Envelope):
    status: ClassVar[Status] = "error"
    code: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.setdefault("code", self.code)
        return result


Response = Union[SuccessResponse, WarningResponse, ErrorResponse]


def error_response(exc: Exception, **data: Any) -> ErrorResponse:
    if isinstance(exc, PgStageError):
        return ErrorResponse(message=exc.message, code=exc.code, data=data)
    return ErrorResponse(message=str(exc), data=data)
