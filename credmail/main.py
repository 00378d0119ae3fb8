import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from credmail.core.config import VERSION, load_config
from credmail.observability.logger import init_sentry
from credmail.routes.delivery import router as delivery_router
from credmail.routes.health import router as health_router
from credmail.services.delivery import DeliveryOrchestrator

logger = logging.getLogger("credmail")
logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()
    init_sentry(config)
    # one token cache per process
    app.state.orchestrator = DeliveryOrchestrator(config=config)
    logger.info("credmail started (environment=%s)", config.environment)
    yield


app = FastAPI(title="Credential Mail", version=VERSION, lifespan=lifespan)

app.include_router(health_router)
app.include_router(delivery_router, prefix="/credentials")


@app.get("/")
def root():
    return {"status": "ok"}
