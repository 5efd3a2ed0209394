from datetime import date
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from abcid.core.identifiers import strip_uid_prefix


class _IdentityBase(BaseModel):
    id: int
    name: str
    email: str
    phone: str

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class AdminIdentity(_IdentityBase):
    kind: Literal["admin"] = "admin"

    @property
    def role(self) -> str:
        return "admin"


class StudentIdentity(_IdentityBase):
    kind: Literal["student"] = "student"
    uid: str
    dob: date | None = None
    abc_id: str = ""
    is_approved: bool = False

    @property
    def role(self) -> str:
        return "student"

    @property
    def path_uid(self) -> str:
        """UID as it appears in the student's page URL (tag stripped)."""
        return strip_uid_prefix(self.uid)


# Resolved once at the directory boundary; everything downstream matches on `kind`.
Identity = Annotated[Union[AdminIdentity, StudentIdentity], Field(discriminator="kind")]

identity_adapter: TypeAdapter[Identity] = TypeAdapter(Identity)
