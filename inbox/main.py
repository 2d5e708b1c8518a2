from dotenv import load_dotenv

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .chat import routers as chat_router
from .chat.resolver import PairLocks
from .core.errors import register_exception_handlers
from .core.middleware import logging_middleware
from .utils.env_helper import env_list
from .utils.logging_config import setup_logging

load_dotenv()

DEFAULT_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:8080",
]


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(title="inbox")
    app.state.pair_locks = PairLocks()

    app.include_router(chat_router.router, prefix="/chat", tags=["Chat"])
    register_exception_handlers(app)

    app.middleware("http")(logging_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=env_list("CORS_ORIGINS", DEFAULT_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
