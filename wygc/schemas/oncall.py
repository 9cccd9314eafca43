"""On-call lookup schemas.

Serialized in camelCase, matching the Opsgenie-facing API.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from wygc.services.opsgenie_channel import OnCallInfo


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserPhoneNumberResponse(_CamelModel):
    name: str
    phone: list[str]


class OnCallResponse(_CamelModel):
    """Who is on call for a schedule and how to reach them."""

    username: str
    phone_number: str
    full_information: list[UserPhoneNumberResponse]

    @classmethod
    def from_info(cls, info: OnCallInfo) -> "OnCallResponse":
        return cls(
            username=info.username,
            phone_number=info.phone_number,
            full_information=[
                UserPhoneNumberResponse(name=p.name, phone=p.phone)
                for p in info.full_information
            ],
        )
