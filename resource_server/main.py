"""
Resource Server (protected API).
Bearer tokens verified with the token server's public key; scopes enforced per route.
Port 7000.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from resource_server.auth import RequireAdmin, RequireRead, RequireReports, RequireWrite, build_verifier


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the verification key once at startup unless a verifier was injected."""
    if getattr(app.state, "token_verifier", None) is None:
        app.state.token_verifier = build_verifier()
    yield


app = FastAPI(title="Resource Server", version="1.0.0", lifespan=lifespan)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "resource_server"}


@app.get("/public")
def public():
    """Public endpoint; no authentication required."""
    return {"message": "Public data", "access": "anonymous"}


@app.get("/me")
def me(claims: dict = RequireRead):
    """Requires scope read. Returns caller identity from token."""
    return {"message": "Authenticated", "client_id": claims.get("sub", "unknown")}


@app.post("/items", status_code=201)
def create_item(claims: dict = RequireWrite):
    """Requires scope write."""
    return {"message": "Created", "client_id": claims.get("sub", "unknown")}


@app.get("/admin")
def admin(claims: dict = RequireAdmin):
    """Requires scope admin."""
    return {"message": "Admin access", "client_id": claims.get("sub", "unknown")}


@app.get("/reports")
def reports(claims: dict = RequireReports):
    """Requires both read and write."""
    return {"message": "Reports", "client_id": claims.get("sub", "unknown"), "scope": claims.get("scope")}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "resource_server.main:app",
        host="127.0.0.1",
        port=7000,
        reload=True,
    )
