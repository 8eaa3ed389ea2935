"""FastAPI application exposing sprite builds as background jobs.

WHY: Asset servers and editor plugins that cannot shell out to the CLI
still need sprites. Uploading the clips over HTTP, polling a job, and
downloading the exported files covers that without sharing a filesystem.

HOW: POST /sprites stores the uploaded clips in a fresh job directory,
validates the form options into a BuildConfig, and schedules the build as
a FastAPI background task. The task runs the same SpriteBuilder the CLI
uses and records the outputs (audio files plus <output>.json) on the job.
Other endpoints poll, list, download, and delete.

RULES:
- Clip order on the track is the upload order
- Options are validated before the job is created (422 on bad options)
- Uploaded filenames are reduced to their basename and must be unique
- Manifest resources are bare filenames unless a public path is given
- A failed build leaves the job in 'failed' with the error message
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse, Response
from pydantic import ValidationError

from audiosprite import __version__
from audiosprite.config import DEFAULT_EXPORT_FORMATS, FFMPEG_BINARY, SUPPORTED_EXPORT_FORMATS
from audiosprite.core.models import BuildConfig
from audiosprite.core.pipeline import (
    DuplicateClipNameError,
    SpriteBuilder,
    prepare_inputs,
    write_manifest,
)
from audiosprite.manifests import MANIFESTS, build_manifest
from audiosprite.server.jobs import JobLimitError, JobStatus, JobStore, SpriteJob, remove_work_dir
from audiosprite.server.models import (
    ErrorResponse,
    FileInfo,
    FileListResponse,
    FormatInfo,
    HealthResponse,
    JobCreatedResponse,
    SpriteJobResponse,
)
from audiosprite.transcoder.runner import Command, Transcoder

logger = logging.getLogger(__name__)

DEFAULT_SPRITE_NAME = "sprite"
CLEANUP_INTERVAL_S = 300

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

job_store = JobStore()


async def _periodic_cleanup() -> None:
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_S)
        job_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="audiosprite API",
    description=(
        "Upload audio clips, get back one sprite track in several "
        "containers plus a JSON manifest for howler.js, SoundJS, or the "
        "default jukebox layout."
    ),
    version=__version__,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_to_response(job: SpriteJob) -> SpriteJobResponse:
    completed = job.status == JobStatus.COMPLETED
    return SpriteJobResponse(
        id=job.id,
        status=job.status.value,
        clips=job.clips,
        created_at=job.created_at,
        options=job.options,
        error=job.error,
        output_files=job.output_files if completed else None,
        manifest=job.manifest if completed else None,
    )


def _get_job_or_404(job_id: str) -> SpriteJob:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return job


def _require_completed(job: SpriteJob) -> None:
    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail="Job is not completed (current status: {}).".format(job.status.value),
        )


def _split_list(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _infer_media_type(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    mapping = {
        ".json": "application/json",
        ".mp3": "audio/mpeg",
        ".ogg": "audio/ogg",
        ".opus": "audio/ogg",
        ".m4a": "audio/mp4",
        ".mp4": "audio/mp4",
        ".ac3": "audio/ac3",
        ".wav": "audio/wav",
        ".webm": "audio/webm",
        ".caf": "audio/x-caf",
    }
    return mapping.get(ext, "application/octet-stream")


async def _run_build_pipeline(
    job_id: str,
    store: JobStore,
    command: Optional[Command] = None,
) -> None:
    """Build the sprite for one job and record the result on the store.

    RULES:
    - Status moves to BUILDING before the first decode
    - Every exception marks the job FAILED; nothing propagates
    - Output files are listed as bare filenames inside the job's output_dir
    - A job deleted while building gets no manifest; whatever the build
      recreated in its work directory is removed
    """
    job = store.get_job(job_id)
    if job is None:
        return

    store.set_status(job_id, JobStatus.BUILDING)
    try:
        options: Dict[str, Any] = dict(job.options)
        stem = options.pop("output", DEFAULT_SPRITE_NAME)
        config = BuildConfig(output=str(job.output_dir / stem), **options)
        transcoder = Transcoder(config, command=command, log=logger)
        builder = SpriteBuilder(config, transcoder=transcoder, log=logger)
        result = await builder.build(job.input_paths())
        if store.get_job(job_id) is None:
            logger.info("Sprite job %s was deleted while building", job_id)
            remove_work_dir(job.work_dir)
            return

        # Resources in the job directory are only meaningful as download names.
        timeline = replace(
            result.timeline,
            resources=tuple(Path(r).name for r in result.timeline.resources),
        )
        manifest = build_manifest(timeline, config)
        manifest_file = write_manifest(manifest, config.output)
    except Exception as exc:
        logger.exception("Sprite build failed for job %s", job_id)
        if store.set_status(job_id, JobStatus.FAILED, error=str(exc)) is None:
            remove_work_dir(job.work_dir)
        return

    files = [p.name for p in result.outputs] + [manifest_file.name]
    if store.set_status(job_id, JobStatus.COMPLETED, output_files=files, manifest=manifest) is None:
        remove_work_dir(job.work_dir)
        return
    logger.info("Sprite job %s completed with %d files", job_id, len(files))


def _run_build_sync(job_id: str, store: JobStore) -> None:
    """BackgroundTasks entry point: run the async build in its own loop."""
    asyncio.run(_run_build_pipeline(job_id, store))


# ---------------------------------------------------------------------------
# Endpoints: Sprites
# ---------------------------------------------------------------------------


@app.post(
    "/sprites",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["sprites"],
    summary="Submit a sprite build",
    description=(
        "Upload the clips (in track order) with build options. Returns a "
        "job ID immediately; poll GET /sprites/{id} until it is completed."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid clip filenames"},
        422: {"model": ErrorResponse, "description": "Invalid build options"},
        429: {"model": ErrorResponse, "description": "Too many jobs held"},
    },
)
async def create_sprite(
    background_tasks: BackgroundTasks,
    clips: Annotated[List[UploadFile], File(description="Audio clips, in track order.")],
    output: Annotated[str, Form(description="Stem of the output filenames.")] = DEFAULT_SPRITE_NAME,
    path: Annotated[Optional[str], Form(description="Public path prefix for resources.")] = None,
    export: Annotated[Optional[str], Form(description="Comma-separated export containers.")] = None,
    format: Annotated[Optional[str], Form(description="Manifest schema (jukebox, howler, howler2, createjs).")] = None,
    autoplay: Annotated[Optional[str], Form(description="Clip that loops on start.")] = None,
    loop: Annotated[Optional[str], Form(description="Comma-separated looping clip names.")] = None,
    silence: Annotated[Optional[float], Form(description="Leading silence clip duration (s).")] = None,
    gap: Annotated[Optional[float], Form(description="Silence between clips (s).")] = None,
    minlength: Annotated[Optional[float], Form(description="Minimum clip duration (s).")] = None,
    bitrate: Annotated[Optional[int], Form(description="Bitrate in kbit/s.")] = None,
    vbr: Annotated[Optional[int], Form(description="mp3 VBR quality 0-9.")] = None,
    vbr_vorbis: Annotated[Optional[int], Form(description="webm vorbis qscale 0-10.")] = None,
    samplerate: Annotated[Optional[int], Form(description="Sample rate (Hz).")] = None,
    channels: Annotated[Optional[int], Form(description="1=mono, 2=stereo.")] = None,
    rawparts: Annotated[Optional[str], Form(description="Comma-separated raw-part containers.")] = None,
    ignorerounding: Annotated[Optional[bool], Form(description="Skip whole-second rounding.")] = None,
) -> JobCreatedResponse:
    stem = Path(output).name
    if not stem or stem in (".", ".."):
        raise HTTPException(status_code=400, detail="Invalid output name '{}'".format(output))

    filenames = [Path(upload.filename or "").name for upload in clips]
    if not all(filenames):
        raise HTTPException(status_code=400, detail="Every clip needs a filename")
    if len(set(filenames)) != len(filenames):
        raise HTTPException(status_code=400, detail="Clip filenames must be unique")

    given = {
        "path": path,
        "export": _split_list(export),
        "format": format,
        "autoplay": autoplay,
        "loop": _split_list(loop),
        "silence": silence,
        "gap": gap,
        "minlength": minlength,
        "bitrate": bitrate,
        "vbr": vbr,
        "vbr_vorbis": vbr_vorbis,
        "samplerate": samplerate,
        "channels": channels,
        "rawparts": _split_list(rawparts),
        "ignorerounding": ignorerounding,
    }
    options: Dict[str, Any] = {k: v for k, v in given.items() if v is not None}

    try:
        config = BuildConfig(output=stem, **options)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    try:
        prepare_inputs(filenames, config)
    except DuplicateClipNameError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    options["output"] = stem
    try:
        job = job_store.create_job(filenames, options)
    except JobLimitError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    for upload, name in zip(clips, filenames):
        (job.inputs_dir / name).write_bytes(await upload.read())

    background_tasks.add_task(_run_build_sync, job.id, job_store)

    return JobCreatedResponse(id=job.id, status=job.status.value, clips=job.clips)


@app.get(
    "/sprites/{job_id}",
    response_model=SpriteJobResponse,
    tags=["sprites"],
    summary="Get sprite job status",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def get_sprite(job_id: str) -> SpriteJobResponse:
    return _job_to_response(_get_job_or_404(job_id))


@app.get(
    "/sprites/{job_id}/files",
    response_model=FileListResponse,
    tags=["sprites"],
    summary="List the files of a completed sprite job",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def list_sprite_files(job_id: str) -> FileListResponse:
    job = _get_job_or_404(job_id)
    _require_completed(job)

    files = []
    for name in job.output_files:
        fpath = job.output_dir / name
        if fpath.exists():
            files.append(FileInfo(
                filename=name,
                media_type=_infer_media_type(name),
                size=fpath.stat().st_size,
            ))
    return FileListResponse(job_id=job.id, files=files)


@app.get(
    "/sprites/{job_id}/files/{filename}",
    tags=["sprites"],
    summary="Download one output file",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid filename"},
        404: {"model": ErrorResponse, "description": "Job or file not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def download_sprite_file(job_id: str, filename: str) -> FileResponse:
    if "/" in filename or "\\" in filename or ".." in filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    job = _get_job_or_404(job_id)
    _require_completed(job)

    fpath = job.output_dir / filename
    if filename not in job.output_files or not fpath.exists():
        raise HTTPException(
            status_code=404,
            detail="File '{}' not found in job output files.".format(filename),
        )
    return FileResponse(fpath, media_type=_infer_media_type(filename), filename=filename)


@app.delete(
    "/sprites/{job_id}",
    status_code=204,
    tags=["sprites"],
    summary="Delete a sprite job and its files",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def delete_sprite(job_id: str) -> Response:
    if not job_store.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Formats and health
# ---------------------------------------------------------------------------


@app.get(
    "/formats",
    response_model=FormatInfo,
    tags=["formats"],
    summary="List export containers and manifest schemas",
)
async def list_formats() -> FormatInfo:
    return FormatInfo(
        export_formats=list(SUPPORTED_EXPORT_FORMATS),
        default_export=list(DEFAULT_EXPORT_FORMATS),
        manifest_formats={fmt.value: builder().name for fmt, builder in MANIFESTS.items()},
    )


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__, transcoder=FFMPEG_BINARY)


def run_api():
    """Entry point for the audiosprite-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
