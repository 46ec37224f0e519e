"""Gift recommendation service: catalog matching plus background AI generation."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
import logging
import secrets
import threading
from typing import Any
import uuid

from gift_finder.auth import decode_token, hash_password, issue_token, verify_password
from gift_finder.budget import parse_budget
from gift_finder.config import Settings
from gift_finder.db import GiftCatalogDB
from gift_finder.errors import DuplicateUserError
from gift_finder.generator import AiGiftGenerator, ImageProvider, TranslationProvider, public_gift
from gift_finder.housekeeping import DuplicateCleaner, clean_duplicate_gifts
from gift_finder.images import PexelsImageProvider
from gift_finder.llm_utils import CompletionClient, make_completion_client
from gift_finder.selection import select_gifts
from gift_finder.status import StatusStore
from gift_finder.tags import RecipientCriteria, TagSet, extract_tags
from gift_finder.translation import Translator

_LOGGER = logging.getLogger(__name__)

AI_GENERATING = "generating"
AI_NOT_STARTED = "not_started"


@dataclass
class RecommendationRequest:
    criteria: RecipientCriteria = field(default_factory=RecipientCriteria)
    use_ai: bool = False
    ai_gift_count: int | None = None


class GiftFinderService:
    def __init__(
        self,
        *,
        settings: Settings,
        db: GiftCatalogDB | None = None,
        completion_client: CompletionClient | None = None,
        translator: TranslationProvider | None = None,
        images: ImageProvider | None = None,
        status: StatusStore | None = None,
    ) -> None:
        self.settings = settings
        self.db = db or GiftCatalogDB(settings.db_path)
        self.client = completion_client
        self.translator = translator or Translator(
            completion_client,
            rate_limit_retries=settings.rate_limit_retries,
            rate_limit_delay_seconds=settings.rate_limit_delay_seconds,
        )
        self.images = images or PexelsImageProvider(
            api_key=settings.pexels_api_key,
            base_url=settings.pexels_base_url,
            locale=settings.image_locale,
            rate_limit_retries=settings.rate_limit_retries,
            rate_limit_delay_seconds=settings.rate_limit_delay_seconds,
        )
        self.status = status or StatusStore(ttl_seconds=settings.status_ttl_seconds)
        self.generator = AiGiftGenerator(
            db=self.db,
            client=self.client,
            translator=self.translator,
            images=self.images,
            status=self.status,
            catalog_language=settings.catalog_language,
        )

        self._executor = ThreadPoolExecutor(
            max_workers=settings.generator_workers,
            thread_name_prefix="gift-generator",
        )
        self._jobs: set[Future] = set()
        self._jobs_lock = threading.Lock()
        self._cleaner = DuplicateCleaner(self.db, settings.dedupe_interval_seconds)

        self.jwt_secret = settings.jwt_secret
        if not self.jwt_secret:
            _LOGGER.warning("GF_JWT_SECRET is not set; tokens will not survive a restart.")
            self.jwt_secret = secrets.token_hex(32)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GiftFinderService":
        client: CompletionClient | None
        translate_client: CompletionClient | None
        try:
            client = make_completion_client(settings)
            translate_client = make_completion_client(settings, model=settings.translate_model)
        except (RuntimeError, ValueError) as exc:
            _LOGGER.warning("Completion provider unavailable, AI features degrade to rules: %s", exc)
            client = None
            translate_client = None

        translator = Translator(
            translate_client,
            rate_limit_retries=settings.rate_limit_retries,
            rate_limit_delay_seconds=settings.rate_limit_delay_seconds,
        )
        return cls(settings=settings, completion_client=client, translator=translator)

    @property
    def ai_enabled(self) -> bool:
        return self.client is not None

    def start(self) -> None:
        self._cleaner.start()

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        self._cleaner.stop()
        self._executor.shutdown(wait=wait_for_jobs)

    def wait_for_background_jobs(self, timeout: float | None = None) -> bool:
        with self._jobs_lock:
            pending = list(self._jobs)
        if not pending:
            return True
        _done, not_done = wait(pending, timeout=timeout)
        return not not_done

    def _clamp_ai_count(self, requested: int | None) -> int:
        count = requested if requested is not None else self.settings.default_ai_gift_count
        return max(1, min(int(count), self.settings.max_ai_gift_count))

    def _resolve_missing_images(self, gifts: list[dict[str, Any]]) -> None:
        for gift in gifts:
            if gift.get("image_url"):
                continue
            name_en = gift.get("name_en")
            try:
                url = self.images.find_image(name_en or gift["name"], bool(name_en))
                if url:
                    self.db.update_image(int(gift["id"]), url)
                    gift["image_url"] = url
            except Exception as exc:
                _LOGGER.warning("Image resolution failed for gift %s: %s", gift.get("id"), exc)

    def _supervised_run(
        self,
        request_id: str,
        criteria: RecipientCriteria,
        existing_names: list[str],
        count: int,
        tags: TagSet | None,
    ) -> None:
        try:
            self.generator.run(criteria, existing_names, count, request_id, tags)
        except Exception:
            _LOGGER.exception("AI generation job %s escaped.", request_id)
            self.status.fail(request_id, "AI generation failed.")

    def _forget_job(self, future: Future) -> None:
        with self._jobs_lock:
            self._jobs.discard(future)

    def _launch_generation(
        self,
        *,
        request_id: str,
        criteria: RecipientCriteria,
        existing_names: list[str],
        count: int,
        tags: TagSet | None,
    ) -> Future:
        future = self._executor.submit(self._supervised_run, request_id, criteria, existing_names, count, tags)
        with self._jobs_lock:
            self._jobs.add(future)
        future.add_done_callback(self._forget_job)
        return future

    def recommend(self, request: RecommendationRequest) -> dict[str, Any]:
        """Answer with catalog gifts now and start AI generation in the background.

        Raises ``RuntimeError`` with a generic message on any internal failure;
        the status entry, if already created, is moved to ``error`` first.
        """
        request_id = uuid.uuid4().hex
        criteria = request.criteria
        status_started = False
        try:
            budget = parse_budget(criteria.budget)
            candidates = self.db.query_by_budget(budget.min, budget.max)

            tags: TagSet | None = None
            if candidates or request.use_ai:
                tags = extract_tags(criteria, self.client)

            selected: list[dict[str, Any]] = []
            if candidates:
                tag_names = tags.match_names() if tags is not None else []
                if tag_names:
                    tagged = self.db.query_by_budget(budget.min, budget.max, tag_names)
                    if tagged:
                        candidates = tagged
                selected = select_gifts(criteria, candidates, self.settings.display_limit, self.client)
                self._resolve_missing_images(selected)

            gifts = [public_gift(row) for row in selected]
            if not request.use_ai:
                return {"gifts": gifts, "aiStatus": AI_NOT_STARTED}

            count = self._clamp_ai_count(request.ai_gift_count)
            self.status.start(request_id, count)
            status_started = True
            self._launch_generation(
                request_id=request_id,
                criteria=criteria,
                existing_names=[str(row["name"]) for row in candidates],
                count=count,
                tags=tags,
            )
            _LOGGER.info("Started AI generation %s for %d gifts.", request_id, count)
            return {"gifts": gifts, "aiStatus": AI_GENERATING, "requestId": request_id}
        except Exception as exc:
            _LOGGER.exception("Gift recommendation failed.")
            if status_started:
                self.status.fail(request_id, "Gift recommendation failed.")
            raise RuntimeError("Unable to build gift recommendations.") from exc

    def poll_status(self, request_id: str) -> dict[str, Any]:
        return self.status.poll(request_id)

    def refresh_images(self, limit: int = 50) -> dict[str, Any]:
        gifts = self.db.list_gifts_missing_images(limit)
        self._resolve_missing_images(gifts)
        updated = [gift for gift in gifts if gift.get("image_url")]
        return {"checked": len(gifts), "updated": len(updated), "gifts": [public_gift(gift) for gift in updated]}

    def dedupe(self) -> dict[str, Any]:
        return {"deleted": clean_duplicate_gifts(self.db)}

    def register(self, *, username: str, email: str, password: str) -> dict[str, Any]:
        safe_username = username.strip()
        safe_email = email.strip().lower()
        if not safe_username or not safe_email or not password:
            raise ValueError("Username, email and password are required.")
        if self.db.user_exists(username=safe_username, email=safe_email):
            raise DuplicateUserError("Username or email already exists")

        user_id = self.db.create_user(
            username=safe_username,
            email=safe_email,
            password_hash=hash_password(password),
        )
        _LOGGER.info("Registered user %s (%d).", safe_username, user_id)
        return {"message": "User created successfully"}

    def login(self, *, username: str, password: str) -> dict[str, Any]:
        user = self.db.get_user_by_username(username.strip())
        if user is None or not verify_password(password, str(user["password_hash"])):
            raise PermissionError("Invalid credentials")

        token = issue_token(
            user_id=int(user["id"]),
            username=str(user["username"]),
            secret=self.jwt_secret,
            ttl_hours=self.settings.jwt_ttl_hours,
        )
        return {
            "message": "Login successful",
            "user": {"id": int(user["id"]), "username": user["username"], "email": user["email"]},
            "token": token,
        }

    def authenticate(self, token: str) -> dict[str, Any]:
        return decode_token(token, secret=self.jwt_secret)

    def stats(self) -> dict[str, Any]:
        payload = self.db.stats()
        payload["active_jobs"] = len(self.status)
        payload["ai_enabled"] = self.ai_enabled
        return payload
