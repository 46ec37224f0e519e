"""FastAPI routes for gift recommendations, status polling and accounts."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Security, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field, field_validator

from gift_finder.errors import DuplicateUserError
from gift_finder.service import GiftFinderService, RecommendationRequest
from gift_finder.tags import RecipientCriteria

_LOGGER = logging.getLogger(__name__)

BEARER = HTTPBearer(auto_error=False)


class RecommendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    age: int | None = Field(default=None, ge=0, le=130)
    gender: Literal["male", "female", "unspecified"] = "unspecified"
    interests: str = ""
    profession: str = ""
    budget: str = "any"
    occasion: str = "any"
    use_ai: bool = Field(default=False, alias="useAi")
    ai_gift_count: int | None = Field(default=None, alias="aiGiftCount")

    @field_validator("gender", mode="before")
    @classmethod
    def _normalize_gender(cls, value):
        if value is None:
            return "unspecified"
        cleaned = str(value).strip().lower()
        return cleaned if cleaned in {"male", "female"} else "unspecified"

    @field_validator("age", mode="before")
    @classmethod
    def _blank_age(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("occasion", "budget", mode="before")
    @classmethod
    def _default_any(cls, value):
        cleaned = str(value or "").strip()
        return cleaned.lower() if cleaned else "any"

    def to_request(self) -> RecommendationRequest:
        return RecommendationRequest(
            criteria=RecipientCriteria(
                age=self.age,
                gender=self.gender,
                interests=self.interests.strip(),
                profession=self.profession.strip(),
                occasion=self.occasion,
                budget=self.budget,
            ),
            use_ai=self.use_ai,
            ai_gift_count=self.ai_gift_count,
        )


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    username: str
    password: str


def create_app(service: GiftFinderService) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.start()
        yield
        service.shutdown(wait_for_jobs=False)

    app = FastAPI(title="Gift Finder", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(service.settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = service

    def current_user(
        credentials: HTTPAuthorizationCredentials | None = Security(BEARER),
    ) -> dict:
        if credentials is None or not credentials.credentials:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
        try:
            return service.authenticate(credentials.credentials)
        except PermissionError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden") from exc

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "app": "gift-finder", "stats": service.stats()}

    @app.post("/api/register", status_code=status.HTTP_201_CREATED)
    def register(request: RegisterRequest) -> dict:
        try:
            return service.register(username=request.username, email=request.email, password=request.password)
        except DuplicateUserError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.post("/api/login")
    def login(request: LoginRequest) -> dict:
        try:
            return service.login(username=request.username, password=request.password)
        except PermissionError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc

    @app.post("/api/gifts/recommend")
    def recommend(request: RecommendRequest, user: dict = Depends(current_user)) -> dict:
        _LOGGER.info(
            "recommend user=%s budget=%s use_ai=%s",
            user.get("username"),
            request.budget,
            request.use_ai,
        )
        try:
            return service.recommend(request.to_request())
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail="Server error") from exc

    @app.get("/api/gifts/recommend/status/{request_id}")
    def recommend_status(request_id: str, user: dict = Depends(current_user)) -> dict:
        return service.poll_status(request_id)

    @app.get("/api/refresh-images")
    def refresh_images(limit: int = 50, user: dict = Depends(current_user)) -> dict:
        safe_limit = max(1, min(limit, 500))
        return service.refresh_images(limit=safe_limit)

    @app.post("/api/admin/dedupe")
    def dedupe(user: dict = Depends(current_user)) -> dict:
        return service.dedupe()

    return app
