from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from .config import Settings, settings
from .routers import files, pages
from .schemas import Failure, envelope
from .services.file_ops import FileOps
from .services.upload_policy import placement_for

logger = logging.getLogger(__name__)

_SECURITY_HEADERS = {
    'X-Frame-Options': 'DENY',
    'X-Content-Type-Options': 'nosniff',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
}


def _parse_cors_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(',') if origin.strip()]


def _apply_security_headers(response):
    for key, value in _SECURITY_HEADERS.items():
        response.headers[key] = value
    return response


async def security_middleware(request: Request, call_next):
    response = await call_next(request)
    return _apply_security_headers(response)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = '.'.join(str(part) for part in err.get('loc', ())[1:])
        problems.append(f"{loc}: {err.get('msg', 'invalid')}" if loc else str(err.get('msg', 'invalid')))
    return envelope(Failure(error='; '.join(problems) or 'Invalid request'))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception('Unhandled error on %s %s', request.method, request.url.path, exc_info=exc)
    if request.url.path.startswith('/api/'):
        return envelope(Failure(error='Internal server error. Please try again.'), status_code=500)
    return PlainTextResponse('Unexpected error', status_code=500)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ops: FileOps = app.state.file_ops
    logger.info('Serving %s with %s upload placement', ops.root, ops.placement.name)
    yield
    logger.info('Shutting down')


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings
    app = FastAPI(title=config.app_name, lifespan=lifespan)

    # resolved once; handlers only ever read it through get_file_ops
    app.state.settings = config
    app.state.file_ops = FileOps(config.served_dir, placement_for(config.upload_policy, config.asset_bucket))

    cors_origins = _parse_cors_origins(config.cors_origins)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=['GET', 'POST', 'PUT', 'OPTIONS'],
            allow_headers=['Content-Type'],
        )
    app.middleware('http')(security_middleware)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get('/healthz')
    def healthz():
        return {'ok': True}

    app.include_router(pages.router)
    app.include_router(files.router)
    return app
