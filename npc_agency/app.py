from pathlib import Path

from fastapi import FastAPI

from npc_agency.config import (
    build_registry,
    configure_logging,
    get_config,
    load_env,
    resolve_data_dir,
)
from npc_agency.engine import Engine
from npc_agency.routes import router
from npc_agency.storage import Storage

load_env()


def create_app(data_dir: Path | None = None) -> FastAPI:
    resolved = resolve_data_dir(data_dir)
    configure_logging()
    storage = Storage(resolved)
    config = get_config(resolved)

    app = FastAPI(title="NPC Agency")
    app.state.data_dir = resolved
    app.state.engine = Engine(
        registry=build_registry(config),
        storage=storage,
        persist_timed_actions=config["persist_timed_actions"],
    )
    app.include_router(router, prefix="/api")
    return app
