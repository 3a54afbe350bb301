"""
Intent Schemas
Typed commands produced by the inference service, validated once at the boundary
"""

from typing import Optional, List, Union, Literal, Annotated, Any, Dict
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict, TypeAdapter, ValidationError, field_validator


# ==================== COMMANDS ====================

class CommandBase(BaseModel):
    """Fields shared by every command"""
    model_config = ConfigDict(extra="ignore")

    parsed_message: str = ""


class LogIntakeCommand(CommandBase):
    intent: Literal["log_intake"] = "log_intake"
    medication_name: Optional[str] = None


class AddMedicationCommand(CommandBase):
    intent: Literal["add_medication"] = "add_medication"
    medication_name: Optional[str] = None
    dosage: Optional[str] = None
    time: Optional[str] = None
    frequency: Optional[Union[int, str]] = None
    duration_days: Optional[int] = Field(None, ge=1)


class UpdateMedicationCommand(CommandBase):
    intent: Literal["update_medication"] = "update_medication"
    medication_name: Optional[str] = None
    new_name: Optional[str] = None
    dosage: Optional[str] = None
    time: Optional[str] = None
    frequency: Optional[Union[int, str]] = None


class RemoveMedicationCommand(CommandBase):
    intent: Literal["remove_medication"] = "remove_medication"
    medication_name: Optional[str] = None


class QueryScheduleCommand(CommandBase):
    intent: Literal["query_schedule"] = "query_schedule"


class AddAppointmentCommand(CommandBase):
    intent: Literal["add_appointment"] = "add_appointment"
    title: Optional[str] = None
    date_time: Optional[datetime] = None


class UpdateAppointmentCommand(CommandBase):
    intent: Literal["update_appointment"] = "update_appointment"
    title: Optional[str] = None
    new_title: Optional[str] = None
    date_time: Optional[datetime] = None


class CancelAppointmentCommand(CommandBase):
    intent: Literal["cancel_appointment"] = "cancel_appointment"
    title: Optional[str] = None


class LogHealthCommand(CommandBase):
    intent: Literal["log_health"] = "log_health"
    metric_type: Optional[str] = None
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class SosCommand(CommandBase):
    intent: Literal["sos"] = "sos"


class UnknownCommand(CommandBase):
    intent: Literal["unknown"] = "unknown"


Command = Annotated[
    Union[
        LogIntakeCommand,
        AddMedicationCommand,
        UpdateMedicationCommand,
        RemoveMedicationCommand,
        QueryScheduleCommand,
        AddAppointmentCommand,
        UpdateAppointmentCommand,
        CancelAppointmentCommand,
        LogHealthCommand,
        SosCommand,
        UnknownCommand,
    ],
    Field(discriminator="intent"),
]

_command_adapter = TypeAdapter(Command)


def parse_command(data: Any) -> CommandBase:
    """
    Validate raw inference output into a command.
    Anything malformed (wrong shape, unknown intent, bad field types) is UnknownCommand.
    """
    if not isinstance(data, dict):
        return UnknownCommand()

    payload: Dict[str, Any] = {k: v for k, v in data.items() if v is not None}
    if payload.get("success") is False:
        return UnknownCommand(parsed_message=str(payload.get("parsed_message") or ""))

    try:
        return _command_adapter.validate_python(payload)
    except ValidationError:
        return UnknownCommand(parsed_message=str(payload.get("parsed_message") or ""))


# ==================== SAFETY / PRESCRIPTION ====================

class DosageSafety(BaseModel):
    """Outcome of a dosage sanity check"""
    model_config = ConfigDict(extra="ignore")

    safe: bool = True
    warning: Optional[str] = None


class ProposedMedication(BaseModel):
    """One medication read off a prescription, not yet normalized"""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    dosage: Optional[str] = None
    time: Optional[str] = None
    frequency: Optional[Union[int, str]] = None
    duration_days: Optional[int] = Field(None, ge=1)

    @classmethod
    def from_command(cls, command: AddMedicationCommand) -> "ProposedMedication":
        return cls(
            name=command.medication_name or "",
            dosage=command.dosage,
            time=command.time,
            frequency=command.frequency,
            duration_days=command.duration_days,
        )


class PrescriptionAnalysis(BaseModel):
    """Result of reading a prescription image"""
    model_config = ConfigDict(extra="ignore")

    is_legit: bool = False
    medications: List[ProposedMedication] = Field(default_factory=list)

    @field_validator("medications", mode="before")
    @classmethod
    def _drop_unusable_entries(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        cleaned = []
        for item in value:
            if not isinstance(item, dict):
                continue
            name = item.get("name")
            if not isinstance(name, str) or not name.strip():
                continue
            entry = {k: v for k, v in item.items() if v is not None}
            if "duration_days" in entry:
                try:
                    entry["duration_days"] = int(entry["duration_days"])
                    if entry["duration_days"] < 1:
                        entry.pop("duration_days")
                except (TypeError, ValueError):
                    entry.pop("duration_days")
            cleaned.append(entry)
        return cleaned
