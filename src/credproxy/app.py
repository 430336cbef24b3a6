"""
FastAPI application for credproxy.
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, Form, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from credproxy.api_configs import (
    BUILTIN_AUTH_CONFIGS,
    InvalidAuthConfig,
    auth_config_to_dict,
    parse_auth_config,
)
from credproxy.auth import (
    ADMIN_SUBJECT,
    create_jwt_token,
    require_admin,
    verify_admin_token,
)
from credproxy.config import load_config
from credproxy.encryption import EncryptionError
from credproxy.logging import (
    LoggingMiddleware,
    configure_logging,
    log_auth_config_invalid,
    log_auth_success,
    log_secret_operation_failed,
    log_shutdown,
    log_startup,
)
from credproxy.proxy import cors_preflight, get_project_logs, proxy_request
from credproxy.services import Services, get_services


PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan for startup and shutdown logging.
    """
    configure_logging()
    log_startup()
    yield
    log_shutdown()


app = FastAPI(title="credproxy", lifespan=lifespan)
app.add_middleware(LoggingMiddleware)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.exception_handler(EncryptionError)
async def encryption_error_handler(request: Request, exc: EncryptionError):
    """
    Secret encryption failures become a bare 500.
    """
    log_secret_operation_failed(request.url.path, exc)
    return JSONResponse(
        {"detail": "Secret operation failed"}, status_code=500
    )


async def get_existing_project(
    project_id: str, services: Services = Depends(get_services)
) -> dict[str, Any]:
    project = await services.projects.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@app.post("/login")
async def login(token: str = Form(...)):
    """
    Exchange the admin token for a session cookie.
    """
    config = load_config()

    if not verify_admin_token(token, config):
        raise HTTPException(status_code=401, detail="Invalid admin token")

    log_auth_success(ADMIN_SUBJECT)

    session = create_jwt_token(ADMIN_SUBJECT, config)
    response = JSONResponse({"token": session})
    response.set_cookie(
        key="session",
        value=session,
        httponly=True,
        secure=True,
        samesite="lax",
    )
    return response


# Projects.


@app.get("/api/projects", dependencies=[Depends(require_admin)])
async def list_projects(services: Services = Depends(get_services)):
    return await services.projects.list_projects()


@app.post(
    "/api/projects", status_code=201, dependencies=[Depends(require_admin)]
)
async def create_project(
    payload: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    try:
        return await services.projects.create_project(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/projects/{project_id}", dependencies=[Depends(require_admin)])
async def get_project(project: dict = Depends(get_existing_project)):
    return project


@app.put("/api/projects/{project_id}", dependencies=[Depends(require_admin)])
async def update_project(
    project_id: str,
    payload: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    try:
        project = await services.projects.update_project(project_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@app.delete(
    "/api/projects/{project_id}",
    dependencies=[Depends(require_admin), Depends(get_existing_project)],
)
async def delete_project(
    project_id: str, services: Services = Depends(get_services)
):
    await services.projects.delete_project(project_id)
    return {"success": True}


# Secrets. Values are only ever returned one at a time.


@app.get("/api/secrets/{project_id}", dependencies=[Depends(require_admin)])
async def list_secrets(
    project_id: str, services: Services = Depends(get_services)
):
    return await services.projects.list_secret_names(project_id)


@app.get(
    "/api/secrets/{project_id}/{name}", dependencies=[Depends(require_admin)]
)
async def get_secret(
    project_id: str, name: str, services: Services = Depends(get_services)
):
    value = await services.projects.get_secret(project_id, name)
    if value is None:
        raise HTTPException(status_code=404, detail="Secret not found")
    return {"value": value}


@app.api_route(
    "/api/secrets/{project_id}/{name}",
    methods=["POST", "PUT"],
    dependencies=[Depends(require_admin), Depends(get_existing_project)],
)
async def set_secret(
    project_id: str,
    name: str,
    payload: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    value = payload.get("value")
    if not isinstance(value, str) or not value:
        raise HTTPException(status_code=400, detail="Secret value required")

    await services.projects.set_secret(project_id, name, value)
    return {"success": True}


@app.delete(
    "/api/secrets/{project_id}/{name}", dependencies=[Depends(require_admin)]
)
async def delete_secret(
    project_id: str, name: str, services: Services = Depends(get_services)
):
    success = await services.projects.delete_secret(project_id, name)
    return {"success": success}


# API auth configs.


@app.get("/api/builtin-configs", dependencies=[Depends(require_admin)])
async def list_builtin_configs():
    return {
        domain: auth_config_to_dict(config)
        for domain, config in BUILTIN_AUTH_CONFIGS.items()
    }


@app.get(
    "/api/api-configs/{project_id}", dependencies=[Depends(require_admin)]
)
async def list_api_configs(
    project_id: str, services: Services = Depends(get_services)
):
    return await services.api_configs.list(project_id)


@app.get(
    "/api/api-configs/{project_id}/{domain}",
    dependencies=[Depends(require_admin)],
)
async def get_api_config(
    project_id: str, domain: str, services: Services = Depends(get_services)
):
    try:
        config = await services.api_configs.get(project_id, domain)
    except InvalidAuthConfig as e:
        log_auth_config_invalid(project_id, domain, str(e))
        config = None

    if config is None:
        raise HTTPException(status_code=404, detail="API config not found")
    return auth_config_to_dict(config)


@app.post(
    "/api/api-configs/{project_id}/{domain}",
    dependencies=[Depends(require_admin)],
)
async def save_api_config(
    project_id: str,
    domain: str,
    payload: Any = Body(...),
    services: Services = Depends(get_services),
):
    try:
        config = parse_auth_config(payload)
    except InvalidAuthConfig as e:
        raise HTTPException(
            status_code=400, detail=f"Invalid API configuration: {e}"
        )

    await services.api_configs.save(project_id, domain, config)
    return {
        "message": "API configuration saved successfully",
        "domain": domain,
        "config": auth_config_to_dict(config),
    }


@app.delete(
    "/api/api-configs/{project_id}/{domain}",
    dependencies=[Depends(require_admin)],
)
async def delete_api_config(
    project_id: str, domain: str, services: Services = Depends(get_services)
):
    await services.api_configs.delete(project_id, domain)
    return {
        "message": "API configuration deleted successfully",
        "domain": domain,
    }


# Request logs.


@app.get("/api/logs/{project_id}", dependencies=[Depends(require_admin)])
async def list_logs(
    project_id: str,
    limit: int = Query(100, ge=1, le=1000),
    services: Services = Depends(get_services),
):
    return await get_project_logs(services.store, project_id, limit)


# Proxy.


@app.options("/proxy/{project_id}")
async def proxy_preflight(project_id: str):
    return cors_preflight()


@app.api_route("/proxy/{project_id}", methods=PROXY_METHODS)
async def proxy(
    project_id: str,
    request: Request,
    services: Services = Depends(get_services),
):
    """
    Forward a request to ?target_url= with the project's credentials.
    """
    return await proxy_request(project_id, request, services)
