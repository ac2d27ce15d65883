"""FastAPI counts & comments service backing the reader's engagement features."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marginalia.config import AppConfig, load_config
from marginalia.service.routes.comments import router as comments_router
from marginalia.service.routes.health import router as health_router
from marginalia.service.routes.likes import router as likes_router
from marginalia.service.store import EngagementStore

log = logging.getLogger(__name__)


def create_app(
    store: Optional[EngagementStore] = None, config: Optional[AppConfig] = None
) -> FastAPI:
    config = config or load_config()
    app = FastAPI(title="Marginalia counts & comments service")
    app.state.config = config
    app.state.store = store or EngagementStore(max_body_length=config.max_comment_length)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.site_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(likes_router)
    app.include_router(comments_router)
    app.include_router(health_router)
    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s", level=logging.INFO
    )
    config = load_config()
    log.info("Starting service on %s:%s", config.service_host, config.service_port)
    uvicorn.run(create_app(config=config), host=config.service_host, port=config.service_port)


if __name__ == "__main__":
    main()
