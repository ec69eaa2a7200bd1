"""UI commands as a validated tagged union.

Every command is a small frozen pydantic model discriminated by its
``type`` field.  ``parse_command()`` validates an untrusted payload at the
boundary; ``SyncService.execute()`` dispatches the result.

Usage:
    from unitab_sync.commands import parse_command

    command = parse_command({"type": "delete_group", "group_id": 42})
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .sync.models import Resolution, Tab


class CommandError(ValueError):
    """Raised when a command payload fails validation."""


# ---------------------------------------------------------------------------
# Group commands
# ---------------------------------------------------------------------------


class CreateGroup(BaseModel):
    type: Literal["create_group"] = "create_group"
    name: str | None = None
    tabs: list[Tab] = Field(default_factory=list)
    pinned: bool = False

    model_config = {"frozen": True}


class UpdateGroup(BaseModel):
    type: Literal["update_group"] = "update_group"
    group_id: int
    name: str | None = None
    tabs: list[Tab] | None = None
    pinned: bool | None = None

    model_config = {"frozen": True}


class DeleteGroup(BaseModel):
    type: Literal["delete_group"] = "delete_group"
    group_id: int

    model_config = {"frozen": True}


class ToggleGroupLock(BaseModel):
    type: Literal["toggle_group_lock"] = "toggle_group_lock"
    group_id: int

    model_config = {"frozen": True}


class ImportData(BaseModel):
    type: Literal["import_data"] = "import_data"
    data: str = Field(min_length=1, description="JSON document to import")

    model_config = {"frozen": True}


class ClearData(BaseModel):
    type: Literal["clear_data"] = "clear_data"

    model_config = {"frozen": True}


class ExportData(BaseModel):
    type: Literal["export_data"] = "export_data"

    model_config = {"frozen": True}


class ListGroups(BaseModel):
    type: Literal["list_groups"] = "list_groups"

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Sync commands
# ---------------------------------------------------------------------------


class Sync(BaseModel):
    type: Literal["sync"] = "sync"

    model_config = {"frozen": True}


class Push(BaseModel):
    type: Literal["push"] = "push"

    model_config = {"frozen": True}


class Pull(BaseModel):
    type: Literal["pull"] = "pull"

    model_config = {"frozen": True}


class ResolveConflict(BaseModel):
    type: Literal["resolve_conflict"] = "resolve_conflict"
    resolution: Resolution

    model_config = {"frozen": True}


class GetStatus(BaseModel):
    type: Literal["get_status"] = "get_status"

    model_config = {"frozen": True}


Command = Annotated[
    Union[
        CreateGroup,
        UpdateGroup,
        DeleteGroup,
        ToggleGroupLock,
        ImportData,
        ClearData,
        ExportData,
        ListGroups,
        Sync,
        Push,
        Pull,
        ResolveConflict,
        GetStatus,
    ],
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(payload: dict[str, Any]) -> Command:
    """Validate *payload* into a command model.

    Args:
        payload: Untrusted mapping with a ``type`` key.

    Returns:
        The matching command instance.

    Raises:
        CommandError: Unknown ``type`` or invalid fields.
    """
    try:
        return _COMMAND_ADAPTER.validate_python(payload)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'command'}: {err['msg']}"
            for err in e.errors()
        )
        raise CommandError(f"Invalid command: {details}") from e
