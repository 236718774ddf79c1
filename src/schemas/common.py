from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class FrozenSchema(BaseSchema):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)
