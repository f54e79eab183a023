"""
Twilio <-> OpenAI Realtime call bridge.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from config import HOST, PORT
from logging_config import setup_logging
from routes import Routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield


app = FastAPI(title="Realtime Call Bridge", lifespan=lifespan)
Routes(app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
