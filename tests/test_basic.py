"""Basic tests for vidtag."""

from importlib.util import find_spec


def test_import():
    """Test that package is importable without side effects."""
    assert find_spec("vidtag") is not None


def test_cli_import():
    """Test that CLI can be imported."""
    try:
        from vidtag.cli import app

        assert app is not None
    except ImportError:
        assert False, "Failed to import CLI"


def test_bundled_matrix_is_packaged():
    from vidtag.core.capability import BUNDLED_MATRIX_PATH

    assert BUNDLED_MATRIX_PATH.is_file()
