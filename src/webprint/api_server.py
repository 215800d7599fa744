"""
FastAPI Queue Server
REST API for uploads, the print queue, agent dispatch and previews
"""

import asyncio
import logging
import os
import re
import socket
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
from fastapi import APIRouter, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import Field, ValidationError
from pypdf.errors import PdfReadError

from . import __version__
from .content_types import KIND_IMAGE, KIND_OFFICE, KIND_PDF, detect_kind, media_type_for_path
from .errors import JobNotFound, JobNotPending, PageRangeError, WebPrintError
from .job_store import PrintJobStore
from .liveness import LivenessTracker
from .models import Job, PrintSettings, WireModel
from .normalizer import DocumentNormalizer
from .page_range import resolve_pages, validate_pages
from .pdf_subset import count_pages, extract_pages, subset_bytes
from .print_executor import PrintExecutor

UPLOAD_CHUNK_SIZE = 1024 * 1024
UNSAFE_NAME_CHARS = re.compile(r"[^\w.\-]+")


# Request models
class PingRequest(WireModel):
    agent_id: Optional[str] = Field(None, description="Identifier of the pinging agent")


class ErrorReport(WireModel):
    reason: str = Field("print failed", description="Why the agent gave up on the job")


class PreviewCleanupRequest(WireModel):
    file_name: str = Field(..., description="Preview file name returned by /preview")


def _stored_name(original_name: str) -> str:
    """Timestamp-prefixed file name that is safe to place in the upload directory"""
    base = UNSAFE_NAME_CHARS.sub("_", Path(original_name or "upload").name).strip("._") or "upload"
    return f"{int(time.time() * 1000)}-{base}"


async def _save_upload(upload: UploadFile, destination: Path):
    async with aiofiles.open(destination, "wb") as out:
        while True:
            chunk = await upload.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            await out.write(chunk)


def _discard(path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def _parse_total(num_pages: Optional[str]) -> Optional[int]:
    if num_pages is None:
        return None
    try:
        total = int(str(num_pages).strip())
    except ValueError:
        return None
    return total if total > 0 else None


def _parse_copies(copies: Optional[str]) -> int:
    """Copy count from the form; blank, zero or non-numeric means one copy"""
    try:
        return int(str(copies).strip()) or 1
    except ValueError:
        return 1


def create_api_app(config: Dict[str, Any], store: PrintJobStore = None, liveness: LivenessTracker = None,
                   normalizer: DocumentNormalizer = None, executor: PrintExecutor = None) -> FastAPI:
    """Create FastAPI application with all endpoints"""

    logger = logging.getLogger(__name__)

    store = store or PrintJobStore(history_limit=config.get("history_limit", 100))
    liveness = liveness or LivenessTracker(config.get("agent_offline_after_seconds", 20))
    normalizer = normalizer or DocumentNormalizer(
        office_timeout=config.get("office_timeout_seconds", 120),
        image_timeout=config.get("image_timeout_seconds", 30),
    )
    executor = executor or PrintExecutor(config)

    upload_dir = Path(config["upload_directory"])
    preview_dir = Path(config["preview_directory"])
    temp_dir = Path(config["temp_directory"])
    for directory in (upload_dir, preview_dir, temp_dir):
        directory.mkdir(parents=True, exist_ok=True)

    ttl_seconds = config.get("pending_ttl_seconds", 0)
    sweep_interval = config.get("expiry_sweep_interval", 60)

    async def expiry_sweep():
        while True:
            await asyncio.sleep(sweep_interval)
            expired = await store.expire_stale(ttl_seconds)
            if expired:
                logger.info(f"Expired {len(expired)} pending job(s) older than {ttl_seconds}s")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweep_task = None
        if ttl_seconds > 0:
            sweep_task = asyncio.create_task(expiry_sweep(), name="expiry_sweep")
            logger.info(f"Pending job expiry enabled ({ttl_seconds}s)")
        yield
        if sweep_task:
            sweep_task.cancel()
            try:
                await sweep_task
            except asyncio.CancelledError:
                pass

    app = FastAPI(
        title="WebPrint Queue API",
        description="Upload documents and dispatch them to print agents",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.liveness = liveness

    # Add CORS middleware
    if config.get("enable_cors", True):
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    router = APIRouter(prefix=config.get("api_prefix", "/api"))

    # Intake
    @router.post("/upload", summary="Upload and Queue a Document")
    async def upload(
        file: Optional[UploadFile] = File(None),
        copies: Optional[str] = Form(None),
        color: str = Form("bw"),
        paperSize: str = Form("A4"),
        orientation: str = Form("portrait"),
        printer: Optional[str] = Form(None),
        pages: str = Form(""),
        numPages: Optional[str] = Form(None),
    ):
        """Store the upload, validate its page range and add it to the queue"""
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail="No file uploaded")

        stored_name = _stored_name(file.filename)
        stored_path = upload_dir / stored_name
        try:
            await _save_upload(file, stored_path)
        except OSError as e:
            logger.error(f"Failed to store upload {file.filename}: {e}")
            _discard(stored_path)
            raise HTTPException(status_code=500, detail="Failed to store upload")

        total = _parse_total(numPages)
        pages = (pages or "").strip()

        try:
            if total:
                validate_pages(pages, total)
            settings = PrintSettings(
                copies=_parse_copies(copies),
                color=color,
                paper_size=paperSize or "A4",
                orientation=orientation or "portrait",
                printer=(printer or "").strip() or None,
                page_range_text=pages,
            )
        except (PageRangeError, ValidationError) as e:
            _discard(stored_path)
            message = str(e) if isinstance(e, PageRangeError) else "Invalid print settings"
            logger.info(f"Rejected upload {file.filename}: {message}")
            raise HTTPException(status_code=400, detail=message)

        kind = detect_kind(file.filename, file.content_type)
        if kind == KIND_OFFICE or (kind == KIND_IMAGE and config.get("convert_images_to_pdf", False)):
            result = await normalizer.normalize(str(stored_path), kind)
            if result.converted:
                stored_path = Path(result.output_path)
                stored_name = stored_path.name
                kind = KIND_PDF

        resolve_total = total
        if kind == KIND_PDF and not resolve_total and pages:
            try:
                resolve_total = await count_pages(str(stored_path))
            except (PdfReadError, OSError) as e:
                logger.warning(f"Could not count pages of {stored_name}: {e}")
        settings.resolved_pages = resolve_pages(pages, resolve_total)

        job = Job(
            original_name=file.filename,
            stored_file_name=stored_name,
            stored_file_path=str(stored_path),
            kind=kind,
            settings=settings,
            total_pages=total,
        )
        store.enqueue(job)
        return {"message": "File uploaded and queued", "job": job.to_public()}

    # Dispatch
    @router.get("/queue", summary="List Pending Jobs")
    async def get_queue():
        return [job.to_public() for job in store.list_pending()]

    @router.post("/queue/{job_id}/done", summary="Mark Job Done")
    async def mark_done(job_id: str):
        try:
            await store.mark_done(job_id)
        except JobNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"message": "Job printed and files deleted"}

    @router.post("/queue/{job_id}/error", summary="Mark Job Failed")
    async def mark_error(job_id: str, report: Optional[ErrorReport] = None):
        reason = report.reason if report else "print failed"
        try:
            await store.mark_error(job_id, reason)
        except JobNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"message": "Job marked as failed"}

    @router.get("/print-file/{job_id}", summary="Download Printable File")
    async def get_print_file(job_id: str):
        """Stream the job's file, cut down to its resolved pages when it is a PDF"""
        try:
            job = store.get(job_id)
        except JobNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))

        path = job.stored_file_path
        if not os.path.exists(path):
            raise HTTPException(status_code=410, detail="File is no longer available")

        pages = job.settings.resolved_pages
        if pages and job.kind == KIND_PDF:
            try:
                data = await subset_bytes(path, pages)
            except FileNotFoundError:
                raise HTTPException(status_code=410, detail="File is no longer available")
            except PdfReadError as e:
                logger.warning(f"Could not extract pages of job {job_id}, sending full document: {e}")
                data = None
            except OSError as e:
                logger.error(f"Failed to prepare pages of job {job_id}: {e}")
                raise HTTPException(status_code=500, detail="Failed to prepare file for printing")

            if data is not None:
                stem = Path(job.stored_file_name).stem
                return Response(
                    content=data,
                    media_type="application/pdf",
                    headers={"Content-Disposition": f'inline; filename="{stem}_subset.pdf"'},
                )

        if not os.path.exists(path):
            raise HTTPException(status_code=410, detail="File is no longer available")
        return FileResponse(path, media_type=media_type_for_path(path), filename=job.stored_file_name)

    @router.post("/print/{job_id}", summary="Print Job on the Server")
    async def print_job(job_id: str):
        """Print a pending job with the server's own printers"""
        try:
            job = store.mark_printing(job_id)
        except JobNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except JobNotPending as e:
            raise HTTPException(status_code=409, detail=str(e))

        outcome = None
        failure = None
        subset_path = None
        try:
            file_path = job.stored_file_path
            if job.settings.resolved_pages and job.kind == KIND_PDF:
                try:
                    extracted = await extract_pages(file_path, job.settings.resolved_pages, str(temp_dir))
                except PdfReadError as e:
                    logger.warning(f"Could not extract pages of job {job_id}, printing full document: {e}")
                    extracted = file_path
                if extracted != file_path:
                    subset_path = file_path = extracted

            outcome = await executor.execute(file_path, job.settings, job.id)
            if not outcome.success:
                failure = outcome.error or "print failed"
        except (OSError, WebPrintError) as e:
            logger.error(f"Server-side print of job {job_id} failed: {e}")
            failure = str(e)
        finally:
            if subset_path:
                _discard(subset_path)

        try:
            if failure:
                await store.mark_error(job_id, failure)
            else:
                await store.mark_done(job_id)
        except JobNotFound:
            logger.warning(f"Job {job_id} was finished elsewhere while printing")

        if failure:
            raise HTTPException(status_code=500, detail=f"Print failed: {failure}")
        return {"message": "Job printed", "jobId": job_id, "copiesPrinted": outcome.copies_printed}

    # Liveness
    @router.post("/agent/ping", summary="Agent Heartbeat")
    async def agent_ping(request: Optional[PingRequest] = None):
        liveness.ping(request.agent_id if request else None)
        return {"ok": True}

    @router.get("/health", summary="Health Check")
    async def health():
        return {
            "ok": True,
            "agentOnline": liveness.is_online(),
            "lastAgentPing": liveness.last_ping_iso(),
            "queueLength": len(store.list_pending()),
        }

    # Preview
    @router.post("/preview", summary="Prepare a Preview")
    async def preview(file: Optional[UploadFile] = File(None)):
        """Store a previewable copy of the upload, converting office documents to PDF"""
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail="No file uploaded")

        kind = detect_kind(file.filename, file.content_type)
        if kind not in (KIND_PDF, KIND_IMAGE, KIND_OFFICE):
            raise HTTPException(status_code=400, detail="Unsupported file type for preview")

        preview_path = preview_dir / _stored_name(file.filename)
        try:
            await _save_upload(file, preview_path)
        except OSError as e:
            logger.error(f"Failed to store preview {file.filename}: {e}")
            _discard(preview_path)
            raise HTTPException(status_code=500, detail="Failed to store preview")

        converted = False
        if kind == KIND_OFFICE:
            result = await normalizer.normalize(str(preview_path), kind)
            if not result.converted:
                _discard(preview_path)
                return JSONResponse(
                    status_code=422,
                    content={"message": "Document conversion failed", "conversionError": result.error},
                )
            preview_path = Path(result.output_path)
            converted = True

        return {
            "previewUrl": f"/uploads/previews/{preview_path.name}",
            "fileName": preview_path.name,
            "converted": converted,
        }

    @router.post("/preview/cleanup", summary="Delete a Preview")
    async def preview_cleanup(request: PreviewCleanupRequest):
        name = request.file_name
        target = (preview_dir / name).resolve()
        if not name or Path(name).name != name or target.parent != preview_dir.resolve():
            raise HTTPException(status_code=400, detail="Invalid preview file name")

        removed = target.exists()
        _discard(target)
        return {"removed": removed}

    app.include_router(router)

    # Static files; the previews mount must come first to win the longer prefix
    app.mount("/uploads/previews", StaticFiles(directory=str(preview_dir)), name="previews")
    app.mount("/uploads", StaticFiles(directory=str(upload_dir)), name="uploads")

    return app


class APIServer:
    """Manages the FastAPI server lifecycle"""

    def __init__(self, config_manager, store: PrintJobStore = None):
        self.config_manager = config_manager
        self.store = store
        self.logger = logging.getLogger(__name__)
        self.app = None
        self.server = None
        self.server_task = None

    def _check_port_available(self, host: str, port: int) -> bool:
        """Check if port is available"""
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind((host, port))
                return True
        except OSError:
            return False

    async def start_server(self, host: str = None, port: int = None):
        """Start uvicorn and wait until it stops"""
        import uvicorn

        config = self.config_manager.get_server_config()
        host = host or config.get("host", "0.0.0.0")
        port = port or config.get("port", 5000)

        if not self._check_port_available(host, port):
            self.logger.error(f"Port {port} is already in use!")
            raise OSError(f"Port {port} is not available")

        self.app = create_api_app(config, store=self.store)
        self.logger.info(f"Starting queue server on http://{host}:{port}")

        server_config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
            loop="asyncio",
        )
        self.server = uvicorn.Server(server_config)
        self.server_task = asyncio.create_task(self.server.serve())

        # Give server a moment to start
        await asyncio.sleep(0.5)
        await self._verify_server_running(host, port, config.get("api_prefix", "/api"))

        await self.server_task

    async def _verify_server_running(self, host: str, port: int, api_prefix: str):
        """Verify that the server is actually responding"""
        import aiohttp

        probe_host = "127.0.0.1" if host in ("0.0.0.0", "") else host
        url = f"http://{probe_host}:{port}{api_prefix}/health"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=5)) as response:
                    response.raise_for_status()
            self.logger.info(f"Queue server ready at {url}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Queue server verification failed: {e}")
            raise

    async def stop_server(self):
        """Stop the uvicorn server"""
        if not self.server:
            return

        self.logger.info("Stopping queue server...")
        self.server.should_exit = True

        if self.server_task and not self.server_task.done():
            try:
                await asyncio.wait_for(self.server_task, timeout=5.0)
            except asyncio.TimeoutError:
                self.server_task.cancel()

        self.logger.info("Queue server stopped")
