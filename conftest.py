import io

import pytest
from PIL import Image

from bookcase import catalog as catalog_module
from bookcase.catalog import CatalogStore
from bookcase.storage import CatalogFile
from bookcase.ui_helpers import OUTPUT_MODE_ENV


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # The CLI writes the output mode into os.environ; restore it after each test
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


@pytest.fixture
def data_file(tmp_path):
    return tmp_path / "books.json"


@pytest.fixture
def storage(data_file):
    return CatalogFile(data_file)


@pytest.fixture
def catalog(storage, monkeypatch):
    # Each test gets its own catalog file, installed as the process-wide catalog
    store = CatalogStore(storage=storage, sort_order="title")
    monkeypatch.setattr(catalog_module, "_catalog", store)
    yield store


@pytest.fixture
def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 6), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()
