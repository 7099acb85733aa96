import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deployment_engine.api.routes.deployments import router as deployments_router
from deployment_engine.core.errors import DeployError, ErrorKind

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.CONFIGURATION: 400,
    ErrorKind.DEPENDENCY: 502,
    ErrorKind.INVARIANT: 500,
}

app = FastAPI(title="Deployment Engine API")


@app.exception_handler(DeployError)
async def deploy_error_handler(request: Request, err: DeployError):
    logger.warning(f"[api] {request.method} {request.url.path} failed: {err}")
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(err.kind, 500),
        content={"detail": {"kind": err.kind.value, "message": str(err)}},
    )


@app.get("/health")
def health():
    return {"status": "ok"}

app.include_router(deployments_router)
