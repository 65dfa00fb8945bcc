import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront.routers import cart, coupons, orders
from storefront.storage import models  # noqa: F401  # Mantener import para registrar modelos
from storefront.storage.db import Base, engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# --- Lifespan ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Se ejecuta al iniciar la app
    Base.metadata.create_all(bind=engine)
    logger.info("Base de datos inicializada y tablas creadas (si no existen).")
    yield
    # Al apagar la app
    logger.info("App finalizada correctamente.")


# --- Inicializacion de la app ---
app = FastAPI(
    title="Storefront Cart API",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Routers ---
app.include_router(cart.router)
app.include_router(coupons.router)
app.include_router(orders.router)


@app.get("/")
async def root():
    return {"message": "API del carrito de la tienda en linea"}


@app.get("/health")
async def health():
    return {"status": "healthy", "service": "storefront-cart"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000, reload=True)
