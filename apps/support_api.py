import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response

from apps.chat_router import chat_router
from apps.console_ws import console_router
from observability.langfuse_client import flush_traces

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.reconciler = None
    try:
        yield
    finally:
        # let detached read marks land before the loop goes away
        reconciler = app.state.reconciler
        if reconciler is not None:
            await reconciler.drain()
        flush_traces()


app = FastAPI(lifespan=lifespan)
app.include_router(chat_router)  # faqs, conversations, messages
app.include_router(console_router)  # agent console websocket


@app.get("/health")
def health_check():
    return JSONResponse(content={"status": "ok"}, status_code=200)


@app.head("/health")
def head_health():
    return Response(status_code=200)
