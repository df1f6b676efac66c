from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["student", "instructor", "admin"]


class AuthUser(BaseModel):
    """
    Represents an authenticated user from a verified bearer token.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: Role = "student"

    @property
    def is_staff(self) -> bool:
        return self.role in ("instructor", "admin")
