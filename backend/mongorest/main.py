from contextlib import asynccontextmanager
from typing import List, Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .auth import login_required
from .binding import CollectionBinding
from .config import Settings, load_settings
from .logging_config import configure_logging
from .routers.rest import BoundCollection, bind
from .services.mongo import MongodbService

logger = logging.getLogger(__name__)


def bindings_from_settings(settings: Settings) -> List[CollectionBinding]:
    guard = None if settings.no_login else login_required
    return [
        CollectionBinding(
            path=res.path,
            collection=res.collection,
            index_key=res.index_key,
            overwrite_on_duplicated=res.overwrite_on_duplicated,
            admin_id=settings.admin_id,
            guard=guard,
        )
        for res in settings.resources
    ]


def create_app(settings: Optional[Settings] = None, store: Optional[MongodbService] = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level, settings.log_file)
    store = store or MongodbService(
        settings.mongo_uri,
        settings.db_name,
        server_selection_timeout_ms=settings.server_selection_timeout_ms,
        retries=settings.connect_retries,
        backoff_s=settings.connect_backoff_s,
    )
    bound: List[BoundCollection] = []

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # fail fast: StoreUnavailable aborts startup
        store.connect()
        for b in bound:
            b.ensure_index()
        yield
        store.close()

    app = FastAPI(title="MongoDB REST Backend", version="0.1.0", lifespan=lifespan)
    app.state.store = store
    app.state.bound = bound

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for binding in bindings_from_settings(settings):
        bound.append(bind(app, binding, store))

    @app.get("/api/health")
    def health():
        return {"status": "ok", "mongo": store.connected}

    return app


app = create_app()
