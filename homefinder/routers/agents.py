from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from ..schemas.agent import AgentOut
from ..supabase_client import get_supabase_client

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("", response_model=list[AgentOut])
def list_agents(supabase: Client = Depends(get_supabase_client)):
    """List all agents alphabetically."""
    response = supabase.table("agents").select("*").order("name").execute()
    return response.data or []


@router.get("/{agent_id}", response_model=AgentOut)
def get_agent(agent_id: str, supabase: Client = Depends(get_supabase_client)):
    response = supabase.table("agents").select("*").eq("id", agent_id).limit(1).execute()
    if not response.data:
        raise HTTPException(status_code=404, detail="Agent not found")
    return response.data[0]
