from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backoffice.app.api.v1.router import router as v1_router
from backoffice.app.core.config import get_settings
from backoffice.app.core.errors import BackofficeError
from backoffice.app.core.logging_setup import setup_logging

setup_logging(get_settings())

app = FastAPI(title="Back-office Achats & Transferts", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(BackofficeError)
def backoffice_error_handler(request: Request, exc: BackofficeError):
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())
