from contextlib import asynccontextmanager

from fastapi import FastAPI

from compliancefoundry.api.v1.routes import router as v1_router
from compliancefoundry.database.config import init_db
from compliancefoundry.logging_config import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    yield


app = FastAPI(title="ComplianceFoundry", lifespan=lifespan)
app.include_router(v1_router)


@app.get("/healthz", include_in_schema=False)
def healthz():
    return {"ok": True}
