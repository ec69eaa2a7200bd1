"""Tests for ToolSpec and ToolRegistry.

Covers:
- ToolSpec creation and immutability
- ToolRegistry read-only filtering
- ToolRegistry list_tools, tool_count, call_tool
- Exception translation in call_tool
"""

import asyncio
import unittest
from unittest.mock import MagicMock

import mcp.types as types

from unitab_sync.commands import CommandError
from unitab_sync.errors import GroupLockedError, GroupNotFoundError
from unitab_sync.mcp.tools import ALL_SPECS
from unitab_sync.mcp.tools.registry import ToolRegistry, ToolSpec


def _make_spec(name: str, writes: bool = False, handler=None) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if handler is None:

        async def handler(service, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        writes=writes,
        handler=handler,
    )


def _raising(exc):
    async def handler(service, args):
        raise exc

    return handler


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class TestToolSpec(unittest.TestCase):
    """Test ToolSpec dataclass."""

    def test_creation(self):
        spec = _make_spec("tab_groups_list")
        self.assertEqual(spec.tool.name, "tab_groups_list")
        self.assertFalse(spec.writes)

    def test_frozen(self):
        """ToolSpec is immutable (frozen dataclass)."""
        spec = _make_spec("tab_groups_list")
        with self.assertRaises(AttributeError):
            spec.writes = True


class TestToolRegistry(unittest.TestCase):
    """Test ToolRegistry class."""

    def setUp(self):
        self.specs = [
            _make_spec("tab_groups_list"),
            _make_spec("tab_group_create", writes=True),
            _make_spec("sync_status"),
            _make_spec("sync_now", writes=True),
        ]

    def test_all_tools_registered(self):
        registry = ToolRegistry(self.specs)
        self.assertEqual(registry.tool_count(), 4)

    def test_read_only_drops_write_tools(self):
        registry = ToolRegistry(self.specs, read_only=True)
        names = [t.name for t in registry.list_tools()]
        self.assertEqual(names, ["tab_groups_list", "sync_status"])

    def test_call_tool_dispatches_to_handler(self):
        """call_tool() invokes the spec's handler with (service, args)."""
        calls = []

        async def handler(service, args):
            calls.append((service, args))
            return types.CallToolResult(
                content=[types.TextContent(type="text", text="dispatched")]
            )

        registry = ToolRegistry([_make_spec("dispatch", handler=handler)])
        service = MagicMock()

        result = asyncio.run(registry.call_tool("dispatch", {"k": "v"}, service))

        self.assertEqual(calls, [(service, {"k": "v"})])
        self.assertEqual(_text(result), "dispatched")

    def test_call_tool_none_arguments(self):
        """call_tool() converts None arguments to empty dict."""
        calls = []

        async def handler(service, args):
            calls.append(args)
            return types.CallToolResult(content=[])

        registry = ToolRegistry([_make_spec("none_args", handler=handler)])
        asyncio.run(registry.call_tool("none_args", None, MagicMock()))
        self.assertEqual(calls, [{}])

    def test_unknown_tool_raises(self):
        registry = ToolRegistry(self.specs)
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("nope", {}, MagicMock()))

    def test_filtered_tool_raises(self):
        registry = ToolRegistry(self.specs, read_only=True)
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("sync_now", {}, MagicMock()))


class TestErrorTranslation(unittest.TestCase):
    """Handler exceptions become structured error responses."""

    def _call(self, exc) -> types.CallToolResult:
        registry = ToolRegistry([_make_spec("t", handler=_raising(exc))])
        return asyncio.run(registry.call_tool("t", {}, MagicMock()))

    def test_group_not_found(self):
        result = self._call(GroupNotFoundError(7))
        self.assertTrue(result.isError)
        self.assertIn("Error (not_found): Group 7 not found", _text(result))
        self.assertIn("tab_groups_list", _text(result))

    def test_group_locked(self):
        result = self._call(GroupLockedError(7, "delete"))
        self.assertIn("Error (locked)", _text(result))
        self.assertIn("tab_group_toggle_lock", _text(result))

    def test_command_error(self):
        result = self._call(CommandError("Invalid command: group_id: Field required"))
        self.assertIn("Error (validation_error)", _text(result))

    def test_value_error(self):
        result = self._call(ValueError("tab_data_clear requires confirm=true"))
        self.assertIn("validation_error", _text(result))

    def test_unexpected_error(self):
        result = self._call(RuntimeError("disk full"))
        self.assertIn("Error (server_error): disk full", _text(result))


class TestAllSpecs(unittest.TestCase):
    def test_tool_names_unique(self):
        names = [spec.tool.name for spec in ALL_SPECS]
        self.assertEqual(len(names), len(set(names)))

    def test_read_only_surface(self):
        registry = ToolRegistry(ALL_SPECS, read_only=True)
        names = {t.name for t in registry.list_tools()}
        self.assertEqual(names, {"tab_groups_list", "tab_data_export", "sync_status"})

    def test_write_flags_match_annotations(self):
        for spec in ALL_SPECS:
            with self.subTest(tool=spec.tool.name):
                self.assertEqual(spec.writes, not spec.tool.annotations.readOnlyHint)
