import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import admin_policy, get_identity, require_admin
from config import Settings, get_settings
from database import (
    MAX_COMMENT_LIMIT,
    NEWEST_FIRST,
    POSTS_PAGE_SIZE,
    Store,
    connect,
    parse_object_id,
    storage_errors,
    to_public,
    utcnow,
)
from log import configure_logging, request_id_middleware
from schemas import (
    Comment,
    CommentRequest,
    DeleteResponse,
    Health,
    LoginRequest,
    Post,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    User,
)
from security import CredentialStore, Identity, TokenService
from uploads import URL_PREFIX, UploadReceiver

logger = logging.getLogger("social.api")

router = APIRouter()


def get_store(request: Request) -> Store:
    return request.app.state.store


# ----------------- Health -----------------
@router.get("/health", response_model=Health)
def health(store: Store = Depends(get_store)):
    return {"status": "ok", "database": "connected" if store.ping() else "unreachable"}


# ----------------- Auth -----------------
@router.post("/api/auth/register", status_code=201, response_model=RegisterResponse)
def register(req: RegisterRequest, request: Request, store: Store = Depends(get_store)):
    if not req.username or not req.email or not req.password:
        raise HTTPException(status_code=400, detail="All fields are required")
    credentials: CredentialStore = request.app.state.credentials
    settings: Settings = request.app.state.settings
    try:
        password_hash = credentials.hash(req.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    role = "admin" if req.username in settings.ADMIN_USERNAMES else "user"

    with storage_errors("Error registering user"):
        if store.users.find_one({"username": req.username}):
            raise HTTPException(status_code=400, detail="Username already taken")
        try:
            uid = store.users.create(
                {"username": req.username, "email": req.email, "password": password_hash, "role": role}
            )
        except DuplicateKeyError:
            raise HTTPException(status_code=400, detail="Username already taken")
    logger.info("registered user %s (%s)", req.username, uid)
    return {"message": "User registered", "userId": str(uid)}


@router.post("/api/auth/login", response_model=TokenResponse)
def login(req: LoginRequest, request: Request, store: Store = Depends(get_store)):
    if not req.username or not req.password:
        raise HTTPException(status_code=400, detail="Invalid credentials")
    credentials: CredentialStore = request.app.state.credentials
    tokens: TokenService = request.app.state.tokens

    with storage_errors("Error logging in"):
        user = store.users.find_one({"username": req.username})
    if not user or not credentials.verify(req.password, user.get("password", "")):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    token = tokens.issue(str(user["_id"]), roles=[user.get("role", "user")])
    logger.info("user %s logged in", user["_id"])
    return {"token": token}


# ----------------- Posts -----------------
@router.post("/api/posts/create", status_code=201, response_model=Post)
def create_post(
    request: Request,
    text: Optional[str] = Form(None),
    youtube: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    identity: Identity = Depends(get_identity),
    store: Store = Depends(get_store),
):
    uploads: UploadReceiver = request.app.state.uploads
    with storage_errors("Error creating post"):
        image_url = uploads.save(image)
        try:
            pid = store.posts.create(
                {
                    "text": text or "",
                    "imageUrl": image_url,
                    "youtube": youtube or "",
                    # author always comes from the token, never from the form
                    "userId": identity.user_id,
                    "date": utcnow(),
                }
            )
        except PyMongoError:
            # no post references the file
            uploads.discard(image_url)
            raise
        created = store.posts.get(pid)
    logger.info("user %s created post %s", identity.user_id, pid)
    return to_public(created)


@router.get("/api/posts/posts", response_model=List[Post])
def list_posts(store: Store = Depends(get_store)):
    with storage_errors("Error fetching posts"):
        posts = store.posts.find_many(sort=NEWEST_FIRST, limit=POSTS_PAGE_SIZE)
    return [to_public(p) for p in posts]


# ----------------- Comments -----------------
@router.post("/api/posts/{post_id}/comments", status_code=201, response_model=Comment)
def add_comment(
    post_id: str,
    body: CommentRequest,
    identity: Identity = Depends(get_identity),
    store: Store = Depends(get_store),
):
    if not body.commentText or not body.commentText.strip():
        raise HTTPException(status_code=400, detail="Comment text is required")
    oid = parse_object_id(post_id)

    with storage_errors("Error adding comment"):
        if store.posts.get(oid) is None:
            raise HTTPException(status_code=404, detail="Post not found")
        cid = store.comments.create(
            {"text": body.commentText, "userId": identity.user_id, "postId": oid, "date": utcnow()}
        )
        created = store.comments.get(cid)
    logger.info("user %s commented %s on post %s", identity.user_id, cid, oid)
    return to_public(created)


@router.get("/api/posts/{post_id}/comments", response_model=List[Comment])
def list_comments(
    post_id: str,
    limit: Optional[int] = Query(None, ge=1, le=MAX_COMMENT_LIMIT),
    store: Store = Depends(get_store),
):
    oid = parse_object_id(post_id)
    with storage_errors("Error fetching comments"):
        comments = store.comments.find_many({"postId": oid}, sort=NEWEST_FIRST, limit=limit)
    return [to_public(c) for c in comments]


# ----------------- Admin -----------------
@router.get("/api/admin/posts", response_model=List[Post], dependencies=[Depends(require_admin)])
def admin_list_posts(store: Store = Depends(get_store)):
    with storage_errors("Error fetching posts"):
        posts = store.posts.find_many(sort=NEWEST_FIRST)
    return [to_public(p) for p in posts]


@router.delete("/api/admin/posts/{post_id}", response_model=DeleteResponse)
def admin_delete_post(
    post_id: str,
    identity: Identity = Depends(require_admin),
    store: Store = Depends(get_store),
):
    oid = parse_object_id(post_id)
    with storage_errors("Error deleting post"):
        deleted = store.posts.delete_one(oid)
    logger.info("user %s deleted post %s (found=%s)", identity.user_id, oid, deleted)
    return {"message": "Post deleted", "deleted": deleted}


@router.delete("/api/admin/comments/{comment_id}", response_model=DeleteResponse)
def admin_delete_comment(
    comment_id: str,
    identity: Identity = Depends(require_admin),
    store: Store = Depends(get_store),
):
    oid = parse_object_id(comment_id)
    with storage_errors("Error deleting comment"):
        deleted = store.comments.delete_one(oid)
    logger.info("user %s deleted comment %s (found=%s)", identity.user_id, oid, deleted)
    return {"message": "Comment deleted", "deleted": deleted}


@router.get("/api/admin/users", response_model=List[User], dependencies=[Depends(require_admin)])
def admin_list_users(store: Store = Depends(get_store)):
    with storage_errors("Error fetching users"):
        users = store.users.find_many()
    return [to_public(u) for u in users]


# ----------------- Errors -----------------
async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"message": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        loc = ".".join(str(p) for p in errors[0].get("loc", ()))
        message = f"Invalid request: {loc} {errors[0].get('msg', '')}".strip()
    return JSONResponse({"message": message}, status_code=400)


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"message": "Internal server error"}, status_code=500)


# ----------------- App -----------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        app.state.store.ensure_indexes()
    except PyMongoError:
        logger.warning("could not create indexes, database unreachable", exc_info=True)
    yield


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    """Build the API around explicit settings and an optional database handle."""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)
    if db is None:
        db = connect(settings.DATABASE_URL, settings.DATABASE_NAME)

    app = FastAPI(title="Social Media Platform API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = Store(db)
    app.state.credentials = CredentialStore(rounds=settings.BCRYPT_ROUNDS)
    app.state.tokens = TokenService(settings.JWT_SECRET, ttl=timedelta(hours=settings.TOKEN_TTL_HOURS))
    app.state.admin_policy = admin_policy(settings)
    app.state.uploads = UploadReceiver(settings.UPLOAD_DIR)
    app.state.uploads.ensure_directory()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(StarletteHTTPException, http_error)
    app.add_exception_handler(RequestValidationError, validation_error)
    app.add_exception_handler(Exception, unhandled_error)

    app.include_router(router)
    app.mount(URL_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
