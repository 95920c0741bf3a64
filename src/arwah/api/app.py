from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from arwah.assembly.render import CIRCLE_SIZE_RANGE, FEATHER_RANGE, CompositionParameters
from arwah.errors import DecodeError
from arwah.session import CardSession

logger = logging.getLogger(__name__)

app = FastAPI(title="arwah memorial card generator")

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

# Local single-user tool: one card in the making per process.
session = CardSession()


def _to_percent(value: float) -> int:
    return int(round(value * 100))


def _state() -> dict[str, Any]:
    return {
        "has_photo": session.has_photo,
        "photo_name": session.photo_name,
        "circle_size": _to_percent(session.params.circle_size),
        "feather": _to_percent(session.params.feather),
        "caption": session.params.caption,
        "preview_id": session.preview.output_id if session.preview else None,
        "final_id": session.final.output_id if session.final else None,
        "is_processing": session.is_processing,
        "generation": session.driver.generation,
    }


@app.get("/", response_class=HTMLResponse)
def index(request: Request):
    return templates.TemplateResponse(
        request=request,
        name="index.html",
        context={
            "state": _state(),
            "circle_range": [_to_percent(v) for v in CIRCLE_SIZE_RANGE],
            "feather_range": [_to_percent(v) for v in FEATHER_RANGE],
            "download_name": session.download_filename(),
        },
    )


@app.get("/state")
def state():
    return _state()


@app.post("/photo")
async def upload_photo(file: UploadFile = File(...)):
    content = await file.read()
    try:
        await session.open_photo(content, filename=file.filename or "")
    except DecodeError as exc:
        logger.warning("rejected upload %r: %s", file.filename, exc)
        raise HTTPException(status_code=400, detail="file is not a readable image") from exc
    except FileNotFoundError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return RedirectResponse(url="/", status_code=303)


@app.post("/params")
async def update_params(
    circle_size: float = Form(...),
    feather: float = Form(...),
    caption: str = Form(""),
):
    try:
        params = CompositionParameters.from_percent(circle_size, feather, caption)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    generation = session.update(circle_size=params.circle_size, feather=params.feather, caption=params.caption)
    return JSONResponse({"generation": generation})


@app.get("/outputs/{output_id}")
def get_output(output_id: str):
    try:
        out = session.store.get(output_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="output not found") from None
    return Response(content=out.png, media_type="image/png", headers={"Cache-Control": "no-store"})


@app.post("/render")
async def render_card():
    if not session.has_photo:
        raise HTTPException(status_code=400, detail="upload a photo first")
    if session.is_processing:
        raise HTTPException(status_code=409, detail="a render is already in progress")
    out = await session.finalize()
    if out is None:
        raise HTTPException(status_code=500, detail="rendering produced no output")
    return RedirectResponse(url="/", status_code=303)


@app.get("/download")
def download_card():
    if session.final is None:
        raise HTTPException(status_code=404, detail="no card has been generated")
    filename = session.download_filename()
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=session.final.png, media_type="image/png", headers=headers)


@app.post("/reset")
async def reset_session():
    session.reset()
    return RedirectResponse(url="/", status_code=303)
