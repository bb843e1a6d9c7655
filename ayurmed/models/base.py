from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model exchanged with the front-end and the AI providers.

    Keys are camelCase on the wire (``healthId``, ``riskLevel``) and
    snake_case in Python. Either spelling is accepted on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
