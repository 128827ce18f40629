"""Main FastAPI application."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from common.logging import LoggingManager
from devinsight.config import get_config
from devinsight.errors import (
    AuthorizationError,
    DeliveryError,
    DevInsightError,
    NotFoundError,
    TransportError,
    UpstreamError,
    ValidationError,
)
from devinsight.service import DevInsightService

logger = LoggingManager.get_logger('app.api')

ERROR_STATUS = (
    (NotFoundError, 404),
    (AuthorizationError, 403),
    (ValidationError, 400),
    (UpstreamError, 502),
    (TransportError, 504),
    (DeliveryError, 502),
)


# Pydantic models
class AuthenticateRequest(BaseModel):
    access_token: str


class ConnectRequest(BaseModel):
    owner: str
    name: str


class AlertStatusRequest(BaseModel):
    status: str


class ThresholdsRequest(BaseModel):
    noActivityDays: Optional[int] = None
    longOpenPRsDays: Optional[int] = None
    commitDropPercentage: Optional[int] = None


class ReportSettingsRequest(BaseModel):
    enabled: Optional[bool] = None
    frequency: Optional[str] = None


class GenerateReportRequest(BaseModel):
    report_type: str = "weekly"


class UserResponse(BaseModel):
    id: int
    github_id: str
    username: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    email_reports: Dict[str, Any]


class RepositoryResponse(BaseModel):
    id: int
    owner: str
    name: str
    full_name: str
    description: Optional[str] = None
    url: Optional[str] = None
    default_branch: str
    stars: int
    forks: int
    watchers: int
    open_issues: int
    last_fetched: Optional[datetime] = None
    metrics: Dict[str, Any]
    alerts: Dict[str, bool]
    thresholds: Dict[str, int]


class AlertResponse(BaseModel):
    id: int
    user_id: int
    repository_id: int
    type: str
    message: str
    threshold: float
    value: float
    status: str
    created_at: datetime
    resolved_at: Optional[datetime] = None


class ReportResponse(BaseModel):
    id: int
    user_id: int
    repository_id: int
    report_type: str
    start_date: datetime
    end_date: datetime
    data: Dict[str, Any]
    status: str
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime


class ReportSettingsResponse(BaseModel):
    enabled: bool
    frequency: str
    last_sent: Optional[datetime] = None


def error_status(exc: DevInsightError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


def create_app(config=None, service: Optional[DevInsightService] = None) -> FastAPI:
    """Builds the API around a service; the service is wired from configuration when not given."""
    if service is None:
        service = DevInsightService.from_config(config or get_config())

    app = FastAPI(
        title="DevInsight API",
        description="GitHub repository metrics, alerts and reports",
        version="1.0.0"
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = service

    @app.exception_handler(DevInsightError)
    async def handle_devinsight_error(request: Request, exc: DevInsightError):
        status = error_status(exc)
        body: Dict[str, Any] = {"detail": str(exc)}
        if isinstance(exc, UpstreamError):
            body["upstream_status"] = exc.status
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status, content=body)

    def get_service() -> DevInsightService:
        return app.state.service

    def current_user_id(x_user_id: Optional[int] = Header(None),
                        svc: DevInsightService = Depends(get_service)) -> int:
        """The acting user, taken from the X-User-Id header."""
        if x_user_id is None:
            raise HTTPException(status_code=401, detail="Missing X-User-Id header")
        svc.get_user(x_user_id)
        return x_user_id

    @app.get("/")
    def root():
        """Root endpoint."""
        return {
            "service": "DevInsight API",
            "version": "1.0.0",
            "endpoints": {
                "users": "/users",
                "repos": "/repos",
                "alerts": "/alerts",
                "reports": "/reports",
                "health": "/health"
            }
        }

    @app.get("/health")
    def health_check(svc: DevInsightService = Depends(get_service)):
        """Health check endpoint."""
        try:
            svc.store.ping()
            return {"status": "healthy", "database": "connected"}
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}

    # --- users -----------------------------------------------------------

    @app.post("/users", response_model=UserResponse)
    def authenticate(request: AuthenticateRequest, svc: DevInsightService = Depends(get_service)):
        return UserResponse(**svc.authenticate(request.access_token).to_dict())

    @app.get("/users/me", response_model=UserResponse)
    def get_profile(user_id: int = Depends(current_user_id), svc: DevInsightService = Depends(get_service)):
        return UserResponse(**svc.get_user(user_id).to_dict())

    @app.delete("/users/me")
    def delete_account(user_id: int = Depends(current_user_id), svc: DevInsightService = Depends(get_service)):
        deleted = svc.delete_user(user_id)
        return {"message": "User account deleted", "deleted_repositories": deleted}

    # --- repositories ----------------------------------------------------

    @app.get("/repos")
    def list_github_repos(user_id: int = Depends(current_user_id),
                          svc: DevInsightService = Depends(get_service)) -> List[Dict[str, Any]]:
        """The user's GitHub repositories with their connection state."""
        return svc.list_github_repositories(user_id)

    @app.get("/repos/connected", response_model=List[RepositoryResponse])
    def list_connected(user_id: int = Depends(current_user_id), svc: DevInsightService = Depends(get_service)):
        return [RepositoryResponse(**repo.to_dict()) for repo in svc.list_connected_repositories(user_id)]

    @app.post("/repos/connect", response_model=RepositoryResponse, status_code=201)
    def connect_repo(request: ConnectRequest, user_id: int = Depends(current_user_id),
                     svc: DevInsightService = Depends(get_service)):
        return RepositoryResponse(**svc.connect_repository(user_id, request.owner, request.name).to_dict())

    @app.get("/repos/{repo_id}", response_model=RepositoryResponse)
    def get_repo(repo_id: int, user_id: int = Depends(current_user_id),
                 svc: DevInsightService = Depends(get_service)):
        return RepositoryResponse(**svc.get_repository(user_id, repo_id).to_dict())

    @app.post("/repos/{repo_id}/refresh")
    def refresh_repo(repo_id: int, force: bool = False, user_id: int = Depends(current_user_id),
                     svc: DevInsightService = Depends(get_service)):
        snapshot = svc.refresh_repository(user_id, repo_id, force=force)
        return {"repository_id": repo_id, "metrics": snapshot.to_dict()}

    @app.delete("/repos/{repo_id}")
    def disconnect_repo(repo_id: int, user_id: int = Depends(current_user_id),
                        svc: DevInsightService = Depends(get_service)):
        deleted = svc.disconnect_repository(user_id, repo_id)
        return {"message": "Repository disconnected", "repository_deleted": deleted}

    # --- alerts ----------------------------------------------------------

    @app.get("/alerts", response_model=List[AlertResponse])
    def list_alerts(status: Optional[str] = "active", user_id: int = Depends(current_user_id),
                    svc: DevInsightService = Depends(get_service)):
        """Alerts of the user, newest first. ``status=all`` lists every status."""
        status_filter = None if status == "all" else status
        return [AlertResponse(**alert.to_dict()) for alert in svc.list_alerts(user_id, status=status_filter)]

    @app.get("/alerts/{alert_id}", response_model=AlertResponse)
    def get_alert(alert_id: int, user_id: int = Depends(current_user_id),
                  svc: DevInsightService = Depends(get_service)):
        return AlertResponse(**svc.get_alert(user_id, alert_id).to_dict())

    @app.put("/alerts/{alert_id}", response_model=AlertResponse)
    def update_alert(alert_id: int, request: AlertStatusRequest, user_id: int = Depends(current_user_id),
                     svc: DevInsightService = Depends(get_service)):
        return AlertResponse(**svc.update_alert_status(user_id, alert_id, request.status).to_dict())

    @app.put("/alerts/config/{repo_id}")
    def configure_thresholds(repo_id: int, request: ThresholdsRequest, user_id: int = Depends(current_user_id),
                             svc: DevInsightService = Depends(get_service)) -> Dict[str, int]:
        thresholds = svc.configure_alert_thresholds(
            user_id,
            repo_id,
            no_activity_days=request.noActivityDays,
            long_open_prs_days=request.longOpenPRsDays,
            commit_drop_percentage=request.commitDropPercentage,
        )
        return thresholds.to_dict()

    # --- reports ---------------------------------------------------------

    @app.get("/reports", response_model=List[ReportResponse])
    def list_reports(user_id: int = Depends(current_user_id), svc: DevInsightService = Depends(get_service)):
        return [ReportResponse(**report.to_dict()) for report in svc.list_reports(user_id)]

    @app.get("/reports/settings", response_model=ReportSettingsResponse)
    def get_report_settings(user_id: int = Depends(current_user_id),
                            svc: DevInsightService = Depends(get_service)):
        return ReportSettingsResponse(**svc.get_report_settings(user_id))

    @app.put("/reports/settings", response_model=ReportSettingsResponse)
    def update_report_settings(request: ReportSettingsRequest, user_id: int = Depends(current_user_id),
                               svc: DevInsightService = Depends(get_service)):
        settings = svc.update_report_settings(user_id, enabled=request.enabled, frequency=request.frequency)
        return ReportSettingsResponse(**settings)

    @app.post("/reports/generate/{repo_id}", response_model=ReportResponse)
    def generate_report(repo_id: int, request: Optional[GenerateReportRequest] = None,
                        user_id: int = Depends(current_user_id),
                        svc: DevInsightService = Depends(get_service)):
        """Builds and emails a report now; delivery failures are returned to the caller."""
        report_type = request.report_type if request else "weekly"
        return ReportResponse(**svc.generate_report(user_id, repo_id, report_type=report_type).to_dict())

    @app.get("/reports/{report_id}", response_model=ReportResponse)
    def get_report(report_id: int, user_id: int = Depends(current_user_id),
                   svc: DevInsightService = Depends(get_service)):
        return ReportResponse(**svc.get_report(user_id, report_id).to_dict())

    @app.get("/reports/{report_id}/export")
    def export_report(report_id: int, user_id: int = Depends(current_user_id),
                      svc: DevInsightService = Depends(get_service)):
        filename, content = svc.export_report(user_id, report_id)
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
