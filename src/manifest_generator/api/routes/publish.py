"""
Publishing endpoints.

POST /file runs the pipeline for each uploaded package, POST /link
downloads a package first. Blocking work (disk staging, archive decoding,
S3 calls) runs on the bounded worker pool, never on the event loop.
Failures answer with the generic error page; no error detail is exposed.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse

from manifest_generator.core.exceptions import FetchFailureError
from manifest_generator.core.models import PipelineResult
from manifest_generator.manifest.generator import render_result_page
from manifest_generator.pipeline.orchestrator import release_local_file

router = APIRouter()
logger = logging.getLogger(__name__)


async def run_blocking(request: Request, func: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking call on the application's worker pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(request.app.state.executor, func, *args)


def stage_upload(upload: UploadFile) -> Path:
    """Copy an uploaded file into a new local temporary .ipa file."""
    fd, name = tempfile.mkstemp(prefix="upload-", suffix=".ipa")
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as out:
            upload.file.seek(0)
            shutil.copyfileobj(upload.file, out)
    except OSError:
        release_local_file(path)
        raise
    return path


def error_response(request: Request, status_code: int = 500) -> HTMLResponse:
    templates = request.app.state.orchestrator.templates
    return HTMLResponse(templates.error_page(), status_code=status_code)


def render_results(request: Request, results: list[PipelineResult]) -> HTMLResponse:
    """
    Build the response for one or more pipeline runs.

    Any failed run turns the whole response into the error page.
    """
    failures = [r for r in results if not r.succeeded]
    if not results or failures:
        error = failures[0].error if failures else None
        return error_response(request, error.status_code if error else 500)

    orchestrator = request.app.state.orchestrator
    page = render_result_page(
        orchestrator.templates.result_template(),
        [r.install_link for r in results],
        orchestrator.expiration,
    )
    return HTMLResponse(page)


@router.post("/file", response_class=HTMLResponse)
async def upload_file(
    request: Request,
    file: list[UploadFile] = File(..., description="Application package(s)"),
) -> HTMLResponse:
    """Publish uploaded packages and return their install links."""
    orchestrator = request.app.state.orchestrator
    results: list[PipelineResult] = []

    for upload in file:
        try:
            path = await run_blocking(request, stage_upload, upload)
        except OSError as e:
            logger.error(f"Failed to stage upload '{upload.filename}': {e}")
            return error_response(request)
        finally:
            await upload.close()

        result = await run_blocking(request, orchestrator.run, path, upload.filename)
        results.append(result)

    return render_results(request, results)


@router.post("/link", response_class=HTMLResponse)
async def upload_link(
    request: Request,
    link: str = Form(..., description="URL of an application package"),
) -> HTMLResponse:
    """Download a package from a link, publish it and return its install link."""
    state = request.app.state
    try:
        path = await run_blocking(request, state.fetcher.fetch, link)
    except FetchFailureError as e:
        return error_response(request, e.status_code)

    result = await run_blocking(request, state.orchestrator.run, path, link)
    return render_results(request, [result])
