import os
import shutil
import tempfile
import uvicorn
from dataclasses import replace
from typing import List, Optional
from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.background import BackgroundTask

from kindle_send.config import load_config
from kindle_send.models import log, GenerationError, KindleSendError
from kindle_send.core.pipeline import generate

app = FastAPI()
config = load_config()

@app.middleware("http")
async def log_requests(request, call_next):
    log.info(f"Incoming request: {request.method} {request.url}")
    return await call_next(request)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

class GenerateRequest(BaseModel):
    urls: List[str]
    title: Optional[str] = None
    cover_url: Optional[str] = None

@app.get("/ping")
async def ping(): return {"status": "ok"}

@app.post("/generate")
async def generate_epub(req: GenerateRequest):
    urls = [u.strip() for u in req.urls if u and u.strip()]
    if not urls:
        raise HTTPException(status_code=422, detail="No urls given.")
    log.info(f"Received request: {len(urls)} urls")

    out_dir = tempfile.mkdtemp(prefix="kindle-send-")
    run_config = replace(config, storage_path=out_dir, staging_root=out_dir)
    try:
        path = await generate(urls, req.title or "", req.cover_url or "", config=run_config)
    except GenerationError as e:
        shutil.rmtree(out_dir, ignore_errors=True)
        raise HTTPException(status_code=422, detail=str(e))
    except KindleSendError as e:
        shutil.rmtree(out_dir, ignore_errors=True)
        raise HTTPException(status_code=500, detail=str(e))

    filename = os.path.basename(path)
    log.info(f"Sending: {filename}")
    return FileResponse(
        path=path, filename=filename, media_type='application/epub+zip',
        background=BackgroundTask(shutil.rmtree, out_dir, ignore_errors=True)
    )

if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
