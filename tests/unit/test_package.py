"""Tests for package-level functionality."""


def test_package_imports() -> None:
    """Verify the package imports correctly."""
    from sql_exporter import __version__

    assert __version__
    assert isinstance(__version__, str)


def test_version_format() -> None:
    """Verify the version follows expected format."""
    from sql_exporter import __version__

    parts = __version__.split(".")
    assert len(parts) >= 2, f"Version should have at least major.minor: {__version__}"


def test_main_module_entry_point() -> None:
    from sql_exporter import main
    from sql_exporter.app import main as app_main

    assert main is app_main
