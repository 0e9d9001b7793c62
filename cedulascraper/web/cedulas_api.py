import logging
import os
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from playwright.sync_api import Error as PlaywrightError
from pydantic import BaseModel

from cedulascraper import (
    CedulaScraperError,
    Config,
    FormSession,
    PageError,
    PageProvider,
    Query,
    QueryError,
    ResultSet,
    apply_env,
    load_config,
)

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


class ConsultaRequest(BaseModel):
    nombre: str | None = None
    paterno: str | None = None
    materno: str | None = None
    curp: str | None = None


def _runtime_config() -> Config:
    path = os.environ.get("CEDULAS_CONFIG", "")
    cfg = load_config(path) if path else Config()
    return apply_env(cfg)


def _failure(exc: CedulaScraperError) -> JSONResponse:
    logger.warning("lookup failed: %s: %s", exc.kind, exc)
    return JSONResponse(status_code=502, content=exc.to_dict())


def _run(provider: PageProvider, job):
    """Run ``job`` on the provider, tagging stray browser errors as :class:`PageError`."""
    try:
        return provider.run(job)
    except PlaywrightError as exc:
        raise PageError(f"Error del navegador: {exc}") from exc


def consulta_payload(
    query: Query, result: ResultSet, unresolved: list[str],
) -> dict[str, Any]:
    """Shape a lookup result like the portal client expects it."""
    if not result.total_count:
        return {
            "ok": True,
            "query": query.to_dict(),
            "coincidencias": 0,
            "resultados": [],
            "camposNoLocalizados": unresolved,
        }
    return {
        "ok": True,
        "query": query.to_dict(),
        "coincidencias": result.total_count,
        "resumen": result.summary(),
        "resultados": [r.to_dict() for r in result.records],
        "camposNoLocalizados": unresolved,
    }


def create_app(
    cfg: Config | None = None, provider: PageProvider | None = None,
) -> FastAPI:
    """
    Build the HTTP app around one shared :class:`PageProvider`.

    The provider launches its browser on the first lookup and is shut
    down when the app stops.
    """
    cfg = cfg or _runtime_config()
    provider = provider or PageProvider(cfg.browser)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        provider.shutdown()

    app = FastAPI(title="cedulas-api", lifespan=lifespan)
    app.state.cfg = cfg
    app.state.provider = provider

    @app.get("/")
    def root() -> dict[str, Any]:
        return {"ok": True, "msg": "cedulas-api up"}

    @app.get("/diag/ping")
    def ping() -> dict[str, Any]:
        return {"ok": True, "pid": os.getpid(), "ts": int(time.time() * 1000)}

    @app.get("/inspect-campos")
    def inspect_campos():
        try:
            frames = _run(provider, lambda page: FormSession(page, cfg).inspect())
        except CedulaScraperError as exc:
            return _failure(exc)
        return {"ok": True, "frames": frames}

    @app.post("/consulta-cedula")
    def consulta_cedula(body: ConsultaRequest):
        query = Query(
            nombre=body.nombre or "",
            paterno=body.paterno or "",
            materno=body.materno or "",
            curp=body.curp or "",
        )
        try:
            query.validate()
        except QueryError as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})

        def job(page):
            session = FormSession(page, cfg)
            return session.run(query), list(session.unresolved_fields)

        try:
            result, unresolved = _run(provider, job)
        except CedulaScraperError as exc:
            return _failure(exc)
        return consulta_payload(query, result, unresolved)

    return app


server = create_app()


def main() -> None:
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8080"))
    logger.info("cedulas-api listening on %s:%s", host, port)
    uvicorn.run(server, host=host, port=port, timeout_keep_alive=75)


if __name__ == "__main__":
    main()
