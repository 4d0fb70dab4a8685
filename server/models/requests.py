from pydantic import BaseModel, ConfigDict, Field


class ProcessUrlRequest(BaseModel):
    url: str = ""


class ChatQueryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = ""
    document_id: str = Field(default="", alias="documentId")


class KeyVerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(default="", alias="apiKey")
