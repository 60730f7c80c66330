from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)


class VerifyCodeRequest(BaseModel):
    email: str = Field(min_length=3)
    otp: str = Field(min_length=1)


class ResendCodeRequest(BaseModel):
    email: str = Field(min_length=3)


class CodeSentOut(BaseModel):
    success: bool = True
    message: str
    email: str


class RegisteredUserOut(BaseModel):
    success: bool = True
    name: str
    email: str
