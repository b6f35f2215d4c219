from pydantic import BaseModel


class ErrorInnerModel(BaseModel):
    details: list[str]
    kind: str
    message: str


class ErrorModel(BaseModel):
    error: ErrorInnerModel
