"""Game-control tools offered to the model."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bench_types import (
    EmulationStateOutcome,
    MemoryNoteOutcome,
    ToolCall,
    ToolErrorOutcome,
    ToolOutcome,
    ToolResult,
)
from emulator import EmulationService, direction_to_stick_position
from exceptions import ToolInputError, UnknownToolError

Direction = Literal["up", "down", "left", "right"]


class ToolNames:
    SEND_CONTROLLER_INPUT = "sendControllerInput"
    WAIT = "wait"
    RECORD_MEMORY = "recordMemory"
    SAVE_STATE_SLOT = "saveStateSlot"
    LOAD_STATE_SLOT = "loadStateSlot"


class Buttons(BaseModel):
    a: Optional[bool] = None
    b: Optional[bool] = None
    x: Optional[bool] = None
    y: Optional[bool] = None
    z: Optional[bool] = None
    start: Optional[bool] = None
    up: Optional[bool] = Field(default=None, description="D-pad up")
    down: Optional[bool] = Field(default=None, description="D-pad down")
    left: Optional[bool] = Field(default=None, description="D-pad left")
    right: Optional[bool] = Field(default=None, description="D-pad right")


class Triggers(BaseModel):
    l: Optional[bool] = None
    r: Optional[bool] = None


class StickInput(BaseModel):
    direction: Direction


class ControllerActions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    buttons: Optional[Buttons] = None
    triggers: Optional[Triggers] = None
    main_stick: Optional[StickInput] = Field(default=None, alias="mainStick")
    c_stick: Optional[StickInput] = Field(default=None, alias="cStick")


class ControllerInputArgs(BaseModel):
    actions: ControllerActions
    duration: int = Field(ge=1, le=240, description="Number of frames to hold the input")


class WaitArgs(BaseModel):
    frames: int = Field(ge=1, le=240, description="The number of frames to wait for")


class MemoryNoteArgs(BaseModel):
    note: str = Field(min_length=1, description="A fact worth remembering for the rest of the run")


class StateSlotArgs(BaseModel):
    slot: int = Field(ge=0, le=9, description="Save state slot")


def build_controller_request(args: ControllerInputArgs) -> Dict[str, Any]:
    """Translate validated tool arguments into the emulator's controller payload."""
    actions = args.actions
    request: Dict[str, Any] = {"frames": args.duration}
    pressed: Dict[str, bool] = {}
    if actions.buttons:
        pressed.update(actions.buttons.model_dump(exclude_none=True))
    if actions.triggers:
        pressed.update(actions.triggers.model_dump(exclude_none=True))
    if pressed:
        request["buttons"] = pressed
    if actions.main_stick:
        request["mainStick"] = direction_to_stick_position(actions.main_stick.direction)
    if actions.c_stick:
        request["cStick"] = direction_to_stick_position(actions.c_stick.direction)
    return request


class ToolSet:
    """Tool definitions plus their execution against the emulator."""

    def __init__(
        self,
        emulator: EmulationService,
        memory_enabled: bool = True,
        save_states_enabled: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self.emulator = emulator
        self.memory_enabled = memory_enabled
        self.save_states_enabled = save_states_enabled
        self.logger = logger or logging.getLogger("emu_tools")

        self._tools: Dict[str, tuple[str, type[BaseModel]]] = {
            ToolNames.SEND_CONTROLLER_INPUT: (
                "Press buttons, move sticks, or press triggers on the gamecube controller",
                ControllerInputArgs,
            ),
            ToolNames.WAIT: ("Wait for a specific number of frames", WaitArgs),
        }
        if memory_enabled:
            self._tools[ToolNames.RECORD_MEMORY] = (
                "Record a note in long-term memory; notes are shown to you on every later turn",
                MemoryNoteArgs,
            )
        if save_states_enabled:
            self._tools[ToolNames.SAVE_STATE_SLOT] = ("Save the emulator state to a slot", StateSlotArgs)
            self._tools[ToolNames.LOAD_STATE_SLOT] = ("Load the emulator state from a slot", StateSlotArgs)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def definitions(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": name,
                "description": description,
                "input_schema": model.model_json_schema(by_alias=True),
            }
            for name, (description, model) in self._tools.items()
        ]

    def _validate(self, name: str, args: Dict[str, Any]) -> BaseModel:
        if name not in self._tools:
            raise UnknownToolError(name)
        _, model = self._tools[name]
        try:
            return model.model_validate(args)
        except ValidationError as exc:
            raise ToolInputError(f"Invalid arguments for {name}: {exc.errors(include_url=False)}", tool_name=name) from exc

    async def execute(self, name: str, args: Dict[str, Any]) -> ToolOutcome:
        """Run one tool call. Problems come back as ToolErrorOutcome, never as exceptions."""
        try:
            parsed = self._validate(name, args)
        except (UnknownToolError, ToolInputError) as exc:
            self.logger.warning(str(exc))
            return ToolErrorOutcome(error=str(exc))

        if isinstance(parsed, ControllerInputArgs):
            outcome = await self.emulator.post_controller_input(build_controller_request(parsed))
        elif isinstance(parsed, WaitArgs):
            outcome = await self.emulator.post_controller_input({"frames": parsed.frames})
        elif isinstance(parsed, MemoryNoteArgs):
            return MemoryNoteOutcome(note=parsed.note)
        elif isinstance(parsed, StateSlotArgs):
            if name == ToolNames.SAVE_STATE_SLOT:
                ok = await self.emulator.save_state_slot(parsed.slot)
                return EmulationStateOutcome(action="save", slot=parsed.slot, ok=ok)
            ok = await self.emulator.load_state_slot(parsed.slot)
            return EmulationStateOutcome(action="load", slot=parsed.slot, ok=ok)
        else:
            return ToolErrorOutcome(error=f"Tool {name} has no executor")

        if outcome is None:
            return ToolErrorOutcome(error="Emulator did not respond to the input")
        return outcome

    async def execute_calls(self, calls: Sequence[ToolCall]) -> List[ToolResult]:
        """Run the model's tool calls one at a time, in the order requested."""
        results: List[ToolResult] = []
        for call in calls:
            try:
                args = json.loads(call.arguments or "{}")
            except json.JSONDecodeError as exc:
                self.logger.warning(f"Unparseable arguments for {call.name}: {exc}")
                results.append(ToolResult(tool_name=call.name, input={}, output=ToolErrorOutcome(error=f"Invalid JSON arguments: {exc}")))
                continue
            if not isinstance(args, dict):
                results.append(ToolResult(tool_name=call.name, input={}, output=ToolErrorOutcome(error="Arguments must be an object")))
                continue
            results.append(ToolResult(tool_name=call.name, input=args, output=await self.execute(call.name, args)))
        return results
