from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

router = APIRouter(tags=['pages'])
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / 'templates'))


def _context(request: Request) -> dict:
    return {'app_name': request.app.state.settings.app_name}


@router.get('/', response_class=HTMLResponse)
def index_page(request: Request):
    return templates.TemplateResponse(request, 'index.html', _context(request))


@router.get('/editor', response_class=HTMLResponse)
def editor_page(request: Request):
    return templates.TemplateResponse(request, 'editor.html', _context(request))
