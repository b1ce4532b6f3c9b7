"""Pytest configuration and fixtures for Kiln tests."""

from pathlib import Path

import pytest

from kiln import Environment, get_default_environment


@pytest.fixture
def env():
    """Create a basic Kiln Environment."""
    return Environment()


@pytest.fixture
def template_root(tmp_path: Path) -> Path:
    """Directory of templates with a three-level partial chain."""
    files = {
        "page.html": "<h1>{{= title }}</h1>{{@ footer.html }}",
        "footer.html": "<footer>{{@ copy.html }}</footer>",
        "copy.html": "(c) {{= year }}",
        "layout.html": (
            "<html>\n"
            "  <head><title>{{> title }}</title></head>\n"
            "  <body>{{> body }}</body>\n"
            "</html>\n"
            "{{< title }}{{= site }}{{< }}\n"
            "{{< body }}\n"
            "  <ul>\n"
            "    {{~ items:item:i }}\n"
            "    <li>{{= i }}. {{= item }}</li>\n"
            "    {{~ }}\n"
            "  </ul>\n"
            "{{< }}\n"
        ),
    }
    for name, text in files.items():
        (tmp_path / name).write_text(text, encoding="utf-8")
    return tmp_path


@pytest.fixture
def env_with_root(template_root: Path):
    """Create a Kiln Environment rooted at the test templates."""
    return Environment(root=template_root)


@pytest.fixture(autouse=True)
def _reset_default_environment():
    """Keep module-level init() calls from leaking between tests."""
    default = get_default_environment()
    root, imports = default.options.root, dict(default.options.imports)
    yield
    default.init(root=root, imports=imports)
    default.clear_cache()
