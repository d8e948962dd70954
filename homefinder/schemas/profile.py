from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field

UserType = Literal["buyer", "agent"]


class BuyerProfile(BaseModel):
    id: str
    email: Optional[str] = None
    user_type: Literal["buyer"] = "buyer"


class AgentProfile(BaseModel):
    id: str
    email: Optional[str] = None
    user_type: Literal["agent"] = "agent"
    name: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None


Profile = Annotated[Union[BuyerProfile, AgentProfile], Field(discriminator="user_type")]


def resolve_profile(row: dict, agent: dict | None = None) -> BuyerProfile | AgentProfile:
    """
    Build the profile variant for a ``users`` row.
    Agent extension fields win over anything on the users row.
    """
    if row.get("user_type") == "agent":
        agent = agent or {}
        return AgentProfile(
            id=row["id"],
            email=row.get("email"),
            name=agent.get("name") or row.get("name"),
            phone=agent.get("phone") or row.get("phone"),
            whatsapp=agent.get("whatsapp") or row.get("whatsapp"),
        )
    return BuyerProfile(id=row["id"], email=row.get("email"))
