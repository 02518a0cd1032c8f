"""
Document base classes for the auth collections.

`users` and `audit-logs` let MongoDB assign an ObjectId; `refresh-tokens`,
`verification-sessions` and `verification-codes` are keyed by a string the
service generates (jti, session token, ``{token}:{type}``).
"""

from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic_core import core_schema

DocT = TypeVar("DocT", bound="_Document")


class PyObjectId(ObjectId):
    """ObjectId accepted from BSON or its 24-hex string, dumped as a string."""

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.to_string_ser_schema(),
        )

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    def to_mongo(self) -> dict:
        """Field dict keyed by `_id`; an unset id is left for the server to assign."""
        data = self.model_dump(by_alias=True)
        if data.get("_id") is None:
            data.pop("_id", None)
        return data

    @classmethod
    def from_mongo(cls: Type[DocT], data: Optional[dict]) -> Optional[DocT]:
        """None for a find_one miss, otherwise the validated document."""
        return None if data is None else cls.model_validate(data)


class MongoBaseModel(_Document):
    id: Optional[PyObjectId] = Field(default=None, alias="_id")


class StringIdDoc(_Document):
    id: Optional[str] = Field(default=None, alias="_id")
