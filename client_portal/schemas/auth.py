"""
Authentication request schemas.
"""

from pydantic import BaseModel, EmailStr, model_validator


class Credentials(BaseModel):
    """Login request."""
    
    email: EmailStr
    password: str


class Registration(BaseModel):
    """Registration request; email verification happens out of band."""
    
    email: EmailStr
    password: str
    confirm_password: str
    
    @model_validator(mode="after")
    def passwords_match(self) -> "Registration":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self
