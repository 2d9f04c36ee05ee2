"""
presskit/models/base.py
Shared request-model base: camelCase on the wire, snake_case in Python.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    def to_document(self, **kwargs) -> dict:
        """Dump with camelCase keys, the shape stored in JSON columns."""
        return self.model_dump(by_alias=True, **kwargs)
