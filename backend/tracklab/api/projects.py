"""Project registration and origin allow-list management (admin key)."""
import secrets
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tracklab.database import get_db
from tracklab.errors import NotFoundError
from tracklab.middleware.auth import require_admin
from tracklab.middleware.logging import get_logger
from tracklab.models import Project
from tracklab.schemas.project import ProjectCreate, ProjectUpdate
from tracklab.services.store import TrackerStore

router = APIRouter(dependencies=[Depends(require_admin)])
logger = get_logger()


def generate_api_key() -> str:
    """64 hex chars; doubles as the project's HMAC signing secret."""
    return secrets.token_hex(32)


def project_to_dict(project: Project) -> Dict[str, Any]:
    return {
        "id": str(project.id),
        "name": project.name,
        "url": project.url,
        "apiKey": project.api_key,
        "allowedOrigins": list(project.allowed_origins or []),
        "createdAt": project.created_at.isoformat() if project.created_at else None,
    }


@router.get("/api/projects")
async def list_projects(db: Session = Depends(get_db)):
    projects = db.query(Project).order_by(Project.created_at.asc()).all()
    return [project_to_dict(p) for p in projects]


@router.post("/api/projects")
async def create_project(data: ProjectCreate, db: Session = Depends(get_db)):
    """
    Register a site. The generated apiKey is embedded in the SDK and used to
    sign its requests.
    """
    project = Project(
        name=data.name,
        url=data.url.rstrip("/"),
        api_key=generate_api_key(),
        allowed_origins=data.allowed_origins
    )
    db.add(project)
    db.commit()
    db.refresh(project)

    logger.info("project_created", project_id=str(project.id), allowed_origins=len(project.allowed_origins))
    return project_to_dict(project)


@router.put("/api/projects/{project_id}")
async def update_project(project_id: str, data: ProjectUpdate, db: Session = Depends(get_db)):
    project = TrackerStore(db).find_project_by_id(project_id)
    if project is None:
        raise NotFoundError("Project not found")

    if data.allowed_origins is not None:
        project.allowed_origins = data.allowed_origins
        db.commit()
        db.refresh(project)
        logger.info("project_origins_updated", project_id=project_id, allowed_origins=project.allowed_origins)

    return project_to_dict(project)
