from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase


def get_db(request: Request) -> AsyncIOMotorDatabase:
    """
    Resolve the Mongo database from FastAPI app state.
    """
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise RuntimeError("Database is not initialized in app.state.db")
    return db


def get_supervisor(request: Request):
    """
    Resolve the running RebalanceSupervisor (wired services live on it).
    """
    supervisor = getattr(request.app.state, "supervisor", None)
    if supervisor is None:
        raise RuntimeError("Supervisor is not initialized in app.state.supervisor")
    return supervisor
