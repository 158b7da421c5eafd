import pytest
from PIL import Image

from imagejobs.config import Settings
from imagejobs.jobs.submission import UploadedArtifact
from imagejobs.services import build_services


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        uploads_dir=str(tmp_path / "uploads"),
        temp_dir=str(tmp_path / "temp"),
        base_url="http://testserver",
        worker_concurrency=2,
        start_worker=False,
        log_level="DEBUG",
    )


@pytest.fixture
def services(settings):
    return build_services(settings)


@pytest.fixture
def make_image(tmp_path):
    """Write an image of the given size and return its path."""
    counter = {"n": 0}

    def _make(width=800, height=600, fmt="PNG", ext=".png", color=(200, 40, 40)):
        counter["n"] += 1
        path = tmp_path / f"src_{counter['n']}{ext}"
        Image.new("RGB", (width, height), color).save(path, format=fmt)
        return str(path)

    return _make


@pytest.fixture
def artifact(make_image):
    def _artifact(width=800, height=600):
        path = make_image(width, height)
        return UploadedArtifact(path=path, original_filename="photo.png", content_type="image/png")

    return _artifact
