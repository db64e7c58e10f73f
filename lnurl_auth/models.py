from typing import Literal, Optional

from pydantic import BaseModel

OK = "OK"
ERROR = "ERROR"


class StatusResponse(BaseModel):
    status: Literal["OK", "ERROR"]
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "StatusResponse":
        return cls(status=OK)

    @classmethod
    def error(cls, reason: str) -> "StatusResponse":
        return cls(status=ERROR, reason=reason)

    def to_dict(self) -> dict:
        return self.model_dump(exclude_none=True)
