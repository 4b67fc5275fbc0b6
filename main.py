import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request, UploadFile, File, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

import config
import database
import gateway
import images
import users
import views
from auth import Identity
from errors import GatewayError, NotFoundError, PreconditionError
from schemas import (
    MilestoneCreate,
    MilestoneUpdate,
    ProgressUpdate,
    Project,
    ProjectFormData,
    ProjectSearchFilters,
    ProjectUpdate,
    TaskCreate,
    TaskUpdate,
    UserProfileUpdate,
    missing_required_fields,
)

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="BezaSpace API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

image_storage = images.GridFSImageStorage()


# -----------------------------
# Error mapping
# -----------------------------
@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(PreconditionError)
async def precondition_error_handler(request: Request, exc: PreconditionError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# -----------------------------
# Auth utilities
# -----------------------------
async def identity_for_token(token: str) -> Optional[Identity]:
    """Resolve a session issued by the identity provider; None if unusable."""
    session = database.collection(config.SESSIONS_COLLECTION).find_one({"token": token})
    if not session:
        return None
    if session.get("expires_at") and database.to_utc(session["expires_at"]) < database.utcnow():
        return None
    identity = Identity(
        uid=session["uid"],
        display_name=session.get("display_name"),
        email=session.get("email"),
        photo_url=session.get("photo_url"),
    )
    if not session.get("profile_synced"):
        # First request of a sign-in creates or refreshes the profile.
        await users.create_or_update_user_profile(
            identity.uid, identity.display_name or "Anonymous", identity.email, identity.photo_url
        )
        database.collection(config.SESSIONS_COLLECTION).update_one(
            {"_id": session["_id"]}, {"$set": {"profile_synced": True}}
        )
        logger.info("Synced profile for %s", identity.uid)
    return identity


async def get_current_user(authorization: Optional[str] = Header(default=None)) -> Identity:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing token")
    identity = await identity_for_token(authorization.split(" ", 1)[1])
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return identity


async def owned_project(project_id: str, user: Identity) -> Project:
    project = await gateway.get_project_by_id(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    if project.created_by != user.uid:
        raise HTTPException(status_code=403, detail="Only the creator can change this project")
    return project


# -----------------------------
# Me / users
# -----------------------------
@app.get("/me")
async def me(user: Identity = Depends(get_current_user)):
    profile = await users.get_user_profile(user.uid)
    return {"identity": user, "profile": profile}


@app.patch("/me/profile")
async def update_me(body: UserProfileUpdate, user: Identity = Depends(get_current_user)):
    await users.update_user_profile(user.uid, body)
    return await users.get_user_profile(user.uid)


@app.get("/users/search")
async def search_users(q: str = "", limit: int = config.USER_SEARCH_LIMIT):
    return await users.search_users(q, limit)


@app.get("/users/{uid}")
async def get_user(uid: str):
    profile = await users.get_user_profile(uid)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return users.to_search_result(profile)


@app.get("/users/{uid}/projects")
async def get_user_projects(uid: str):
    return await gateway.get_user_projects(uid)


# -----------------------------
# Project endpoints
# -----------------------------
@app.post("/projects")
async def create_project(body: ProjectFormData, user: Identity = Depends(get_current_user)):
    missing = missing_required_fields(body)
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")
    project_id = await gateway.create_project(user.uid, body)
    return await gateway.get_project_by_id(project_id)


@app.get("/projects")
async def list_my_projects(user: Identity = Depends(get_current_user)):
    return await gateway.get_user_projects(user.uid)


@app.get("/projects/all")
async def list_all_projects(q: str = "", category: str = views.ALL_CATEGORIES):
    projects = views.browse_filter(await gateway.get_all_projects(), q, category)
    return await views.attach_creator_names(projects)


@app.get("/projects/search")
async def search_projects(
    q: Optional[str] = None,
    category: Optional[str] = None,
    technologies: Optional[List[str]] = Query(None),
    location: Optional[str] = None,
    status: Optional[str] = None,
    skills: Optional[List[str]] = Query(None),
    has_funding: Optional[bool] = None,
    remote_only: Optional[bool] = None,
):
    filters = ProjectSearchFilters(
        query=q,
        category=category,
        technologies=technologies,
        location=location,
        status=status,
        skills=skills,
        has_funding=has_funding,
        remote_only=remote_only,
    )
    return await gateway.search_projects(filters)


@app.get("/projects/{project_id}")
async def get_project(project_id: str):
    p = await gateway.get_project_by_id(project_id)
    if not p:
        raise HTTPException(status_code=404, detail="Project not found")
    return p


@app.get("/projects/{project_id}/summary")
async def get_project_summary(project_id: str):
    p = await gateway.get_project_by_id(project_id)
    if not p:
        raise HTTPException(status_code=404, detail="Project not found")
    return views.summarize_progress(p)


@app.patch("/projects/{project_id}")
async def update_project(project_id: str, body: ProjectUpdate, user: Identity = Depends(get_current_user)):
    await owned_project(project_id, user)
    await gateway.update_project(project_id, body)
    return await gateway.get_project_by_id(project_id)


@app.delete("/projects/{project_id}")
async def delete_project(project_id: str, user: Identity = Depends(get_current_user)):
    p = await gateway.get_project_by_id(project_id)
    if p is not None and p.created_by != user.uid:
        raise HTTPException(status_code=403, detail="Only the creator can delete this project")
    await gateway.delete_project(project_id)
    return {"deleted": project_id}


@app.patch("/projects/{project_id}/progress")
async def update_progress(project_id: str, body: ProgressUpdate, user: Identity = Depends(get_current_user)):
    await owned_project(project_id, user)
    await gateway.update_project_progress(project_id, body)
    return await gateway.get_project_by_id(project_id)


@app.post("/projects/{project_id}/milestones")
async def add_milestone(project_id: str, body: MilestoneCreate, user: Identity = Depends(get_current_user)):
    await owned_project(project_id, user)
    milestone_id = await gateway.add_milestone(project_id, body)
    return {"id": milestone_id}


@app.patch("/projects/{project_id}/milestones/{milestone_id}")
async def update_milestone(project_id: str, milestone_id: str, body: MilestoneUpdate,
                           user: Identity = Depends(get_current_user)):
    await owned_project(project_id, user)
    await gateway.update_milestone(project_id, milestone_id, body)
    return await gateway.get_project_by_id(project_id)


@app.post("/projects/{project_id}/tasks")
async def add_task(project_id: str, body: TaskCreate, user: Identity = Depends(get_current_user)):
    await owned_project(project_id, user)
    task_id = await gateway.add_task(project_id, body)
    return {"id": task_id}


@app.patch("/projects/{project_id}/tasks/{task_id}")
async def update_task(project_id: str, task_id: str, body: TaskUpdate,
                      user: Identity = Depends(get_current_user)):
    await owned_project(project_id, user)
    await gateway.update_task(project_id, task_id, body)
    return await gateway.get_project_by_id(project_id)


# -----------------------------
# Images
# -----------------------------
@app.post("/projects/{project_id}/images")
async def upload_images(project_id: str, files: List[UploadFile] = File(...),
                        user: Identity = Depends(get_current_user)):
    project = await owned_project(project_id, user)
    existing = list(project.image_urls or [])
    uploads = [
        images.ImageUpload(filename=f.filename, content_type=f.content_type or "", data=await f.read())
        for f in files
    ]
    urls = await images.upload_project_images(image_storage, user.uid, uploads, existing=len(existing))
    await gateway.update_project(project_id, {"image_urls": existing + urls})
    return {"image_urls": existing + urls}


@app.get("/images/{file_id}")
def get_image(file_id: str):
    try:
        image = image_storage.open(file_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(content=image.data, media_type=image.content_type)


# -----------------------------
# Live project feeds
# -----------------------------
async def stream_projects(websocket: WebSocket, owner_id: Optional[str] = None):
    await websocket.accept()

    async def on_data(projects: List[Project]):
        await websocket.send_json({"type": "projects", "projects": jsonable_encoder(projects)})

    async def on_error(err: Exception):
        await websocket.send_json({"type": "error", "message": str(err)})

    if owner_id is None:
        unsubscribe = await gateway.subscribe_to_all_projects(on_data, on_error)
    else:
        unsubscribe = await gateway.subscribe_to_user_projects(owner_id, on_data, on_error)
    try:
        while True:
            # Keep alive / receive pings from client if any
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()


@app.websocket("/ws/projects")
async def all_projects_ws(websocket: WebSocket):
    await stream_projects(websocket)


@app.websocket("/ws/users/{uid}/projects")
async def user_projects_ws(websocket: WebSocket, uid: str):
    await stream_projects(websocket, uid)


# -----------------------------
# Health/Test
# -----------------------------
@app.get("/")
def read_root():
    return {"message": "BezaSpace API running"}


@app.get("/test")
def test_database():
    response: Dict[str, Any] = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
            response["connection_status"] = "Connected"
            try:
                collections = database.db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
