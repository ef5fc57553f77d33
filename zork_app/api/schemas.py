# zork_app/api/schemas.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ValidationError

MAX_MESSAGE_LENGTH = 4000


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    message: StrictStr
    conversation_id: Optional[StrictStr] = Field(default=None, alias='conversationId', max_length=255)

    @field_validator('message')
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('El campo "message" es obligatorio y debe ser una cadena no vacía')
        return v

    @field_validator('conversation_id')
    @classmethod
    def conversation_id_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


def parse_chat_request(payload, max_length: int = MAX_MESSAGE_LENGTH) -> ChatRequest:
    if not isinstance(payload, dict):
        raise ValidationError('El cuerpo de la solicitud debe ser un objeto JSON.')
    try:
        chat_request = ChatRequest.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = '.'.join(str(part) for part in first.get('loc', ())) or 'body'
        raise ValidationError(f"{field}: {first.get('msg')}", detail=str(e)) from e

    if len(chat_request.message) > max_length:
        raise ValidationError(f'El mensaje no puede exceder {max_length} caracteres')
    return chat_request
