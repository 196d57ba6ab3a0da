import pytest

from tests.helpers import write_json


@pytest.fixture
def locales_dir(tmp_path):
    """A translations root using the one-directory-per-locale layout."""
    root = tmp_path / 'locales'
    write_json(str(root / 'en' / 'common.json'), {"title": "Hello {name}", "nav": {"home": "Home", "about": "About"}})
    write_json(str(root / 'en' / 'errors.json'), {"notFound": "Not found"})
    return str(root)
