"""Pydantic models describing DNS-over-HTTPS JSON payloads."""

from __future__ import annotations

import re
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field

_QUOTED_SEGMENT = re.compile(r'"((?:[^"\\]|\\.)*)"')


class RecordType(IntEnum):
    A = 1
    CNAME = 5
    TXT = 16
    AAAA = 28


class ResponseCode(IntEnum):
    NOERROR = 0
    FORMERR = 1
    SERVFAIL = 2
    NXDOMAIN = 3
    NOTIMP = 4
    REFUSED = 5


class DohBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class DohQuestion(DohBaseModel):
    name: str
    type: int


class DohAnswer(DohBaseModel):
    name: str
    type: int
    ttl: int = Field(default=0, alias="TTL")
    data: str

    @property
    def text(self) -> str:
        """Record data with TXT quoting removed and split segments joined."""

        if self.type != RecordType.TXT:
            return self.data
        segments = _QUOTED_SEGMENT.findall(self.data)
        if not segments:
            return self.data
        return "".join(segment.replace('\\"', '"') for segment in segments)

    @property
    def hostname(self) -> str:
        return self.data.rstrip(".").lower()


class DohResponse(DohBaseModel):
    status: int = Field(alias="Status")
    truncated: bool = Field(default=False, alias="TC")
    question: list[DohQuestion] = Field(default_factory=list, alias="Question")
    answer: list[DohAnswer] = Field(default_factory=list, alias="Answer")
    comment: str | list[str] | None = Field(default=None, alias="Comment")

    @property
    def is_nxdomain(self) -> bool:
        return self.status == ResponseCode.NXDOMAIN

    @property
    def is_success(self) -> bool:
        return self.status in (ResponseCode.NOERROR, ResponseCode.NXDOMAIN)

    def answers_of(self, record_type: RecordType) -> list[DohAnswer]:
        return [answer for answer in self.answer if answer.type == record_type]
