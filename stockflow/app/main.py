from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from stockflow.app.api.v1.router import router as v1_router
from stockflow.app.core.config import settings
from stockflow.app.core.logging import get_logger, setup_logging
from stockflow.services.errors import StockFlowError

setup_logging()
logger = get_logger("api")

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)


@app.exception_handler(StockFlowError)
async def stockflow_error_handler(request: Request, exc: StockFlowError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


app.include_router(v1_router, prefix=settings.API_V1_STR)
