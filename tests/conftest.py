"""Shared fixtures: throw-away host projects under tmp_path."""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path
import textwrap

import pytest
import yaml

from openapi_extractor.config import CONFIG_FILE_NAME, ExtractorConfig, load_config
from openapi_extractor.settings import get_settings

DEFINITIONS = '''
"""Shared response shapes.

@type TodoItem = {id: int, title: string, done: bool, notes?: ?string}
@type TodoList = list<TodoItem>
"""
'''

TODO_CONTROLLER = '''
from app.http import ApiController, DataResponse, Http, api_route, no_admin_required


class TodoApiController(ApiController):
    """Todo endpoints.

    @import TodoItem, TodoList
    """

    @no_admin_required
    @api_route("GET", "/api/v1/todos")
    def index(self, limit: int = 20):
        """List todo items

        @param int limit Maximum number of items
        @return DataResponse<Http.STATUS_OK, TodoList, {}>

        200: Items returned
        """
        return DataResponse([])

    @no_admin_required
    @api_route("GET", "/api/v1/todos/{item_id}")
    def show(self, item_id: int):
        """Get a todo item

        @param int item_id ID of the item
        @return DataResponse<Http.STATUS_OK, TodoItem, {}>|DataResponse<Http.STATUS_NOT_FOUND, null, {}>

        200: Item returned
        404: Item not found
        """
        return DataResponse({"id": item_id})

    @api_route("POST", "/api/v1/todos")
    def create(self, title: str, notes: str | None = None):
        """Create a todo item

        Only administrators may create items.

        @param string title Title of the item
        @param ?string notes Optional notes
        @return DataResponse<Http.STATUS_CREATED, TodoItem, {X-Todo-Id: int}>
        @throws ConflictError When an item with the title exists

        201: Item created
        """
        return DataResponse({"title": title}, Http.STATUS_CREATED)
'''

SETTINGS_CONTROLLER = '''
from app.http import DataResponse, OCSController, api_route, public_page


class SettingsController(OCSController):
    @public_page
    @api_route("GET", "/ocs/v2.php/apps/todo/settings")
    def get_settings(self):
        """Get public settings

        @return DataResponse<200, dict<string, mixed>, {}>

        200: Settings returned
        """
        return DataResponse({})
'''

CAPABILITIES = '''
from app.capabilities import ICapability


class Capabilities(ICapability):
    def get_capabilities(self):
        """
        @return {todo: {enabled: bool, max-items: int}}
        """
        return {"todo": {"enabled": True, "max-items": 100}}
'''


@dataclass
class HostProject:
    """A host application tree written under tmp_path."""

    root: Path

    def write(self, relative: str, text: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        return path

    def configure(self, **values) -> None:
        data = {"app_id": "todo", **values}
        (self.root / CONFIG_FILE_NAME).write_text(yaml.safe_dump(data), encoding="utf-8")

    def config(self, **overrides) -> ExtractorConfig:
        return load_config(self.root, overrides)

    @property
    def output(self) -> Path:
        return self.root / "openapi.json"


@pytest.fixture(autouse=True)
def _clear_settings_cache(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.delenv("OPENAPI_EXTRACTOR_ROOT", raising=False)
    monkeypatch.delenv("OPENAPI_EXTRACTOR_LOG_LEVEL", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def host_project(tmp_path: Path) -> HostProject:
    """An empty project configured with app id 'todo'."""
    root = tmp_path / "todo"
    root.mkdir()
    project = HostProject(root)
    project.configure()
    return project


@pytest.fixture
def todo_project(host_project: HostProject) -> HostProject:
    """A complete, valid project: definitions, two controllers and capabilities."""
    host_project.write("lib/response_definitions.py", DEFINITIONS)
    host_project.write("lib/controller/todo_api_controller.py", TODO_CONTROLLER)
    host_project.write("lib/controller/settings_controller.py", SETTINGS_CONTROLLER)
    host_project.write("lib/capabilities.py", CAPABILITIES)
    return host_project
