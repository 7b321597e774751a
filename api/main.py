from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cadastre import router as cadastre_router
from core import db, log, settings
from registry import service as registry_service
from search import router as search_router


@asynccontextmanager
async def lifespan(_: FastAPI):
    log.configure_logging()
    # One DB pool and one registry rate limiter per process.
    await db.init_pool()
    registry_service.init_enricher()
    try:
        yield
    finally:
        registry_service.close_enricher()
        await db.close_pool()


app = FastAPI(title="Cadastre API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search_router.router, tags=["search"])
app.include_router(cadastre_router.router, tags=["geo"])


@app.get("/health")
async def health():
    if not await db.ping():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "disconnected"},
        )
    return {"status": "healthy", "database": "connected"}


@app.get("/")
def root() -> dict:
    return {
        "name": "Cadastre API",
        "description": "Recherche de propriétaires cadastraux avec enrichissement entreprises",
        "auth": "Header X-API-Key requis sauf pour / et /health",
        "endpoints": {
            "GET /health": "État de l'API et de la base",
            "GET /departments": "Départements disponibles",
            "GET /search/address": "Propriétaires par adresse (adresse, departement, code_postal, limit)",
            "GET /search/siren": "Propriétés d'un SIREN (siren, departement)",
            "GET /search/owner": "Propriétaires par dénomination (denomination, departement, limit)",
            "POST /search/geo": "Propriétaires dans un polygone (polygon, limit, stream)",
            "POST /search/geo/radius": "Propriétaires dans un rayon (longitude, latitude, radius_meters, limit)",
            "GET /search/geo/stats": "Couverture du géocodage",
        },
    }
