from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request

from lesson_ledger.config import settings
from lesson_ledger.db import Base, engine
from lesson_ledger.metrics import flush_metrics
from lesson_ledger.route_logging import EndpointNameRoute
from lesson_ledger.routers import groups, lessons
from lesson_ledger.services.ledger_service import cache_invalidation

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    with cache_invalidation():
        yield
    flush_metrics()


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
app.router.route_class = EndpointNameRoute


@app.middleware('http')
async def slow_request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    if duration_ms >= settings.metrics_slow_ms:
        logger.warning('slow_request method=%s path=%s duration_ms=%.2f', request.method, request.url.path, duration_ms)
    return response


@app.get('/health')
def health():
    return {'status': 'ok'}


app.include_router(lessons.router)
app.include_router(groups.router)
