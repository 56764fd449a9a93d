"""Runtime configuration for SwipeTree, loaded from the environment."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Hard limit of the encoding: decimal digits 1-9 per generation slot
MAX_CANDIDATES = 9

FALLBACK_EXTENSIONS = [".jpg", ".JPG", ".jpeg", ".png"]


class NavigationConfig(BaseModel):
    """Tree-wide constants passed into the navigation engine."""
    digit_width: int = Field(default=6, ge=1, le=18)
    swipe_threshold: float = Field(default=40, gt=0)
    long_press_ms: int = Field(default=520, gt=0)
    long_press_jitter: float = Field(default=10, ge=0)
    max_candidates: int = Field(default=MAX_CANDIDATES, ge=1, le=MAX_CANDIDATES)
    images_base_url: str = "https://allofusbhere.github.io/family-tree-images/"
    image_extension: str = "jpg"
    probe_timeout: float = Field(default=8.0, gt=0)
    metadata_namespace: str = "swipetree"


class ServiceSettings(BaseModel):
    """Settings for the label-commit service."""
    github_token: str | None = None
    repo: str | None = None
    branch: str = "main"
    origin_allow: str = "https://allofusbhere.github.io"
    labels_path: str = "labels.json"
    metadata_path: str | None = None
    max_sessions: int = Field(default=1000, ge=1)
    session_idle_seconds: int = Field(default=1800, gt=0)

    @property
    def commit_configured(self) -> bool:
        return bool(self.github_token and self.repo)


def _env(name: str, default=None):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def load_navigation_config() -> NavigationConfig:
    """Build a NavigationConfig from SWIPETREE_* and related env vars."""
    load_dotenv()
    defaults = NavigationConfig()
    return NavigationConfig(
        digit_width=_env("SWIPETREE_DIGIT_WIDTH", defaults.digit_width),
        swipe_threshold=_env("SWIPETREE_SWIPE_THRESHOLD", defaults.swipe_threshold),
        long_press_ms=_env("SWIPETREE_LONG_PRESS_MS", defaults.long_press_ms),
        long_press_jitter=_env("SWIPETREE_LONG_PRESS_JITTER", defaults.long_press_jitter),
        max_candidates=_env("SWIPETREE_MAX_CANDIDATES", defaults.max_candidates),
        images_base_url=_env("IMAGES_BASE", defaults.images_base_url),
        image_extension=_env("IMAGE_EXTENSION", defaults.image_extension).lstrip("."),
        probe_timeout=_env("PROBE_TIMEOUT", defaults.probe_timeout),
        metadata_namespace=_env("METADATA_NAMESPACE", defaults.metadata_namespace),
    )


def load_service_settings() -> ServiceSettings:
    """Build ServiceSettings from GITHUB_TOKEN, REPO, BRANCH and ORIGIN_ALLOW."""
    load_dotenv()
    defaults = ServiceSettings()
    return ServiceSettings(
        github_token=_env("GITHUB_TOKEN"),
        repo=_env("REPO"),
        branch=_env("BRANCH", defaults.branch),
        origin_allow=_env("ORIGIN_ALLOW", defaults.origin_allow),
        labels_path=_env("LABELS_PATH", defaults.labels_path),
        metadata_path=_env("METADATA_PATH"),
        max_sessions=_env("MAX_SESSIONS", defaults.max_sessions),
        session_idle_seconds=_env("SESSION_IDLE_SECONDS", defaults.session_idle_seconds),
    )
