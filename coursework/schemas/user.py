from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    full_name: str | None = None
    # staff register with the invitation code, everyone else as a pending student
    invite_code: str | None = None


class UserRead(BaseModel):
    id: int
    email: EmailStr
    full_name: str | None = None
    role: str
    approved: bool
    muted: bool

    model_config = ConfigDict(from_attributes=True)
