from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import logging
import time

from db import Base, SessionLocal, engine
from dependencies import get_db
from errors import LoanError
from routers import ALL_ROUTERS

import orm  # noqa: F401  (registers tables on Base.metadata)

app = FastAPI(title="Equipment Loan API")

Base.metadata.create_all(bind=engine)

# -----------------------
# Logging
# -----------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("app")

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    elapsed_ms = int((time.time() - start) * 1000)
    logger.info(
        "method=%s path=%s status=%s elapsed_ms=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response

@app.exception_handler(LoanError)
async def loan_error_handler(request: Request, exc: LoanError):
    headers = {"Retry-After": "1"} if exc.status_code == 503 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

@app.get("/")
def root():
    return {"message": "Equipment Loan API", "docs": "/docs"}

for router in ALL_ROUTERS:
    app.include_router(router)

__all__ = ["app", "get_db", "SessionLocal"]
