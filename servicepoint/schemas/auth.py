from pydantic import BaseModel, EmailStr, Field, field_validator


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class AdminRegister(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class GarageClaim(BaseModel):
    garage_id: str = Field(min_length=3)
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator("garage_id")
    @classmethod
    def normalize_garage_id(cls, v):
        return v.strip().upper()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class GaragePasswordReset(BaseModel):
    garage_id: int
    new_password: str = Field(min_length=6)
