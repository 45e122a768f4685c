from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import requests
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from . import adapters
from .admin_routes import router as admin_router
from .config import (
    Settings,
    bitbucket_config,
    health_config,
    jenkins_build_config,
    jenkins_job_list_config,
    load_environment,
    load_settings,
    parse_settings,
    save_settings,
    settings_path_from_env,
)
from .errors import AdapterRequestError, InputValidationError, MissingConfigError
from .exporter import DEFAULT_EXPORT_NAME, export_table
from .logging_utils import logger
from .models import IDENTITY_COLUMN, AdapterResult
from .pipeline import process_inputs
from .table_state import TableState


# Load .env if present (local dev). Credentials never go into the settings file.
load_environment()

APP_NAME = "service-matcher"


class NamedFile(BaseModel):
    name: str
    text: str


class ProcessRequest(BaseModel):
    deploymentLinks: Optional[Union[str, List[str]]] = None
    serviceFiles: List[NamedFile] = Field(default_factory=list)
    trackerFile: Optional[NamedFile] = None
    manifestFiles: List[NamedFile] = Field(default_factory=list)


class FiltersRequest(BaseModel):
    unhealthyOnly: Optional[bool] = None
    unequalVersionsOnly: Optional[bool] = None
    unequalBundlesOnly: Optional[bool] = None
    onlyChanges: Optional[bool] = None
    ignoreEmptyColumns: Optional[bool] = None
    custom: Optional[Dict[str, str]] = None


class SortRequest(BaseModel):
    column: str = ""
    direction: str = "asc"


class DeleteRowsRequest(BaseModel):
    indices: List[int]


class EditCellRequest(BaseModel):
    rowIndex: int
    column: str
    value: str = ""


class ColumnRequest(BaseModel):
    column: str


class MoveColumnRequest(BaseModel):
    src: int
    dst: int


class BuildsRequest(BaseModel):
    onlyServices: Optional[List[str]] = None
    onlyFiltered: bool = False


class RefreshLinksRequest(BaseModel):
    target: str = "deployment"


class ImportSettingsRequest(BaseModel):
    text: str
    format: str = "json"


_FILTER_FIELDS = {
    "unhealthyOnly": "unhealthy_only",
    "unequalVersionsOnly": "unequal_versions_only",
    "unequalBundlesOnly": "unequal_bundles_only",
    "onlyChanges": "only_changes",
    "ignoreEmptyColumns": "ignore_empty_columns",
    "custom": "custom",
}


def create_app(
    settings_path: Optional[Union[str, Path]] = None,
    session_factory: Optional[Callable[[], requests.Session]] = None,
) -> FastAPI:
    app = FastAPI(title=APP_NAME)

    # CORS for a local UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:8000",
            "http://127.0.0.1:8000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(admin_router)

    app.state.table = TableState()
    app.state.settings_path = Path(settings_path) if settings_path else settings_path_from_env()
    app.state.session_factory = session_factory

    @app.exception_handler(InputValidationError)
    async def _input_error(request: Request, exc: InputValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(MissingConfigError)
    async def _config_error(request: Request, exc: MissingConfigError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(AdapterRequestError)
    async def _adapter_error(request: Request, exc: AdapterRequestError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    def settings() -> Settings:
        return load_settings(app.state.settings_path)

    def table() -> TableState:
        state: TableState = app.state.table
        if state.is_empty:
            raise HTTPException(status_code=400, detail="No data to process. Process inputs first.")
        return state

    def outbound_session() -> Optional[requests.Session]:
        # None lets each adapter open its own sessions
        factory = app.state.session_factory
        return factory() if factory is not None else None

    def apply(result: AdapterResult) -> Dict[str, Any]:
        state = table()
        state.apply_adapter_result(result)
        return state.snapshot()

    @app.get("/api/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "service": APP_NAME}

    @app.post("/api/process")
    def process(req: ProcessRequest) -> Dict[str, Any]:
        current = settings()
        links = req.deploymentLinks if req.deploymentLinks is not None else current.deployment_links
        state = process_inputs(
            links,
            [(f.name, f.text) for f in req.serviceFiles],
            (req.trackerFile.name, req.trackerFile.text) if req.trackerFile else None,
            [(f.name, f.text) for f in req.manifestFiles],
            env_filter=current.env_filter_regex,
        )
        app.state.table = state
        return state.snapshot()

    @app.get("/api/table")
    def get_table() -> Dict[str, Any]:
        return app.state.table.snapshot()

    @app.put("/api/table/filters")
    def put_filters(req: FiltersRequest) -> Dict[str, Any]:
        state = table()
        changes = {
            _FILTER_FIELDS[name]: value
            for name, value in req.model_dump(exclude_none=True).items()
        }
        state.set_filters(**changes)
        return state.snapshot()

    @app.put("/api/table/sort")
    def put_sort(req: SortRequest) -> Dict[str, Any]:
        state = table()
        state.set_sort(req.column, req.direction)
        return state.snapshot()

    @app.post("/api/table/rows/delete")
    def delete_rows(req: DeleteRowsRequest) -> Dict[str, Any]:
        state = table()
        deleted = state.delete_rows(req.indices)
        return {"deleted": deleted, **state.snapshot()}

    @app.post("/api/table/rows/restore")
    def restore_rows() -> Dict[str, Any]:
        state = table()
        restored = state.restore_deleted_rows()
        return {"restored": restored, **state.snapshot()}

    @app.put("/api/table/cell")
    def edit_cell(req: EditCellRequest) -> Dict[str, Any]:
        state = table()
        row = state.edit_cell(req.rowIndex, req.column, req.value)
        return {"row": row}

    @app.post("/api/table/columns/hide")
    def hide_column(req: ColumnRequest) -> Dict[str, Any]:
        state = table()
        state.hide_column(req.column)
        return state.snapshot()

    @app.post("/api/table/columns/show")
    def show_column(req: ColumnRequest) -> Dict[str, Any]:
        state = table()
        state.show_column(req.column)
        return state.snapshot()

    @app.post("/api/table/columns/move")
    def move_column(req: MoveColumnRequest) -> Dict[str, Any]:
        state = table()
        state.move_column(req.src, req.dst)
        return state.snapshot()

    @app.post("/api/table/add-missing")
    def add_missing() -> Dict[str, Any]:
        state = table()
        result = state.add_missing_services(settings().deployment_links)
        return {"added": result.count, **state.snapshot()}

    @app.post("/api/enrich/builds")
    def enrich_builds(req: BuildsRequest) -> Dict[str, Any]:
        state = table()
        cfg = jenkins_build_config(settings())
        only = set(req.onlyServices) if req.onlyServices is not None else None
        if req.onlyFiltered:
            only = {row.get(IDENTITY_COLUMN, "") for row in state.filtered_records()}
        result = adapters.fetch_build_info(
            state.records, state.headers, cfg, only,
            session=outbound_session(),
        )
        return apply(result)

    @app.post("/api/enrich/health")
    def enrich_health() -> Dict[str, Any]:
        state = table()
        cfg = health_config(settings())
        result = adapters.fetch_health_status(state.records, state.headers, cfg, session=outbound_session())
        return apply(result)

    @app.post("/api/enrich/versions")
    def enrich_versions() -> Dict[str, Any]:
        state = table()
        cfg = health_config(settings())
        result = adapters.fetch_build_versions(state.records, state.headers, cfg, session=outbound_session())
        return apply(result)

    @app.post("/api/enrich/committers")
    def enrich_committers() -> Dict[str, Any]:
        state = table()
        cfg = bitbucket_config(settings())
        result = adapters.fetch_last_committer(state.records, state.headers, cfg, session=outbound_session())
        return apply(result)

    @app.post("/api/settings/refresh-links")
    def refresh_links(req: RefreshLinksRequest) -> Dict[str, Any]:
        if req.target not in ("deployment", "build"):
            raise HTTPException(status_code=400, detail='target must be "deployment" or "build"')
        current = settings()
        for_build_links = req.target == "build"
        cfg = jenkins_job_list_config(current, for_build_links=for_build_links)
        urls = adapters.fetch_deployment_links(cfg, session=outbound_session())
        field_name = "build_links" if for_build_links else "deployment_links"
        updated = current.model_copy(update={field_name: urls})
        save_settings(updated, app.state.settings_path)
        return {"target": req.target, "count": len(urls), "links": urls}

    @app.get("/api/export.csv")
    def export_csv(expandLinks: bool = False) -> Response:
        state = table()
        text = export_table(state, expand_links=expandLinks)
        logger.info("table_exported", rows=len(state.view()), expand_links=expandLinks)
        return Response(
            content=text,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{DEFAULT_EXPORT_NAME}"'},
        )

    @app.get("/api/settings")
    def get_settings() -> Dict[str, Any]:
        return settings().model_dump()

    @app.put("/api/settings")
    def put_settings(body: Settings) -> Dict[str, Any]:
        save_settings(body, app.state.settings_path)
        app.state.table.env_filter = body.env_filter_regex
        return body.model_dump()

    @app.get("/api/settings/export")
    def export_settings() -> Response:
        return Response(
            content=settings().model_dump_json(indent=2),
            media_type="application/json",
            headers={"Content-Disposition": 'attachment; filename="service_matcher_settings.json"'},
        )

    @app.post("/api/settings/import")
    def import_settings(req: ImportSettingsRequest) -> Dict[str, Any]:
        imported = parse_settings(req.text, fmt=req.format.lower(), source="import")
        save_settings(imported, app.state.settings_path)
        app.state.table.env_filter = imported.env_filter_regex
        return imported.model_dump()

    return app


app = create_app()
