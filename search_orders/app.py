import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from search_orders.infrastructure import HttpRegistryClient, configure_registry_client
from search_orders.routes import orders


def create_app() -> FastAPI:
    app = FastAPI(title="Search Orders API", version="0.1.0")

    api_base = os.getenv("REGISTRY_API_BASE")
    if api_base:
        client = HttpRegistryClient(
            api_base,
            token=os.getenv("REGISTRY_API_TOKEN") or None,
            abr_guid=os.getenv("ABR_GUID") or None,
            abr_base=os.getenv("ABR_API_BASE") or "https://abr.business.gov.au",
            timeout=float(os.getenv("REGISTRY_TIMEOUT") or 30),
        )
        configure_registry_client(client)

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(orders.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Search Orders API",
                "docs": "/docs",
                "health": "/api/orders",
            }
        )

    return app


app = create_app()
