import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taskchat.config import settings
from taskchat.database.connection import close_mongo_connection, connect_to_mongo, get_database
from taskchat.repositories.store import ChatStore
from taskchat.routers.chat import router as chat_router
from taskchat.routers.conversations import router as conversations_router
from taskchat.utils.errors import STORE_ERRORS
from taskchat.utils.realtime_bus import close_bus, get_bus


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await connect_to_mongo()
    try:
        await ChatStore.from_database(get_database(), await get_bus()).ensure_indexes()
        yield
    finally:
        await close_bus()
        await close_mongo_connection()


app = FastAPI(title="Task marketplace chat", lifespan=lifespan)


async def store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=503, content={"detail": "Store unavailable, please retry"})


for _error in STORE_ERRORS:
    app.add_exception_handler(_error, store_error_handler)


app.include_router(conversations_router)
app.include_router(chat_router)

