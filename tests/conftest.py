"""
Pytest fixtures for vslgen tests.

Tests that run the real ffmpeg binary are marked with @pytest.mark.requires_ffmpeg
and skipped when it is not on PATH. Run `pytest -m "not requires_ffmpeg"` to skip
them explicitly in CI.
"""

import shutil
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vslgen.config import Settings
from vslgen.models import Campaign, Lead
from vslgen.models.database import build_engine, init_db
from vslgen.services.storage_service import StorageService
from vslgen.services.video_store import SqlVideoStore


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring ffmpeg/ffprobe binaries (skipped when missing)"
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


@pytest.fixture
def ffmpeg_required() -> None:
    """Skip the test when the media engine is not installed."""
    if not _ffmpeg_available():
        pytest.skip("ffmpeg/ffprobe not available")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing storage and database at a temp directory."""
    return Settings(
        storage_base_path=str(tmp_path / "storage"),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        cleanup_startup_delay_seconds=0,
    )


@pytest.fixture
def storage(settings: Settings) -> StorageService:
    service = StorageService(settings)
    service.ensure_dirs()
    return service


@pytest_asyncio.fixture
async def session_maker(settings: Settings):
    engine = build_engine(settings.database_url)
    await init_db(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_maker) -> SqlVideoStore:
    return SqlVideoStore(session_maker, retention_days=30)


@pytest_asyncio.fixture
async def campaign_with_leads(session_maker) -> tuple[Campaign, list[Lead]]:
    """A small-bubble campaign with three leads."""
    async with session_maker() as session:
        campaign = Campaign(
            name="Spring outreach",
            intro_video_path="uploads/intro.mp4",
            video_style="small_bubble",
            video_position="bottom_right",
            video_shape="circle",
        )
        session.add(campaign)
        await session.flush()
        leads = [
            Lead(campaign_id=campaign.id, website_url=f"https://lead{i}.example.com", company_name=f"Lead {i}")
            for i in range(3)
        ]
        session.add_all(leads)
        await session.commit()
    return campaign, leads
