"""Pydantic models for the coordinator REST API and observer messages.

Field names mirror the JSON keys used by the dashboard and worker clients
(camelCase on the wire, snake_case in Python).
"""

from pydantic import BaseModel, ConfigDict, Field, StrictInt, confloat
from pydantic import ValidationError as PydanticValidationError
from typing import Optional, List, Dict, Any, Type, TypeVar, Union

from sortcluster.errors import ValidationError
from sortcluster.protocol.messages import WorkerStatus

ModelT = TypeVar("ModelT", bound=BaseModel)

# NaN and infinity do not order, so they cannot be sorted
FiniteFloat = confloat(strict=True, allow_inf_nan=False)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)


# =============================================================================
# Worker Registration
# =============================================================================

class RegisterRequest(_WireModel):
    """Request body for POST /register."""
    worker_id: str = Field(alias="id", min_length=1)
    name: str = Field(min_length=1)
    status: WorkerStatus


class UnregisterRequest(_WireModel):
    """Request body for POST /unregister."""
    worker_id: str = Field(alias="id", min_length=1)


class RegisterResponse(_WireModel):
    """Response from POST /register and POST /unregister."""
    success: bool = True
    coordinator_id: Optional[str] = Field(default=None, alias="coordinatorId")


# =============================================================================
# Sorting
# =============================================================================

class StartSortRequest(_WireModel):
    """Request body for POST /start-sort."""
    algorithm: str = Field(min_length=1)
    array_length: StrictInt = Field(alias="arrayLength", gt=0)


class StartSortResponse(_WireModel):
    """Response from POST /start-sort."""
    success: bool = True
    message: str
    run_id: str = Field(alias="runId")


class ManualSortRequest(_WireModel):
    """Request body for POST /sort."""
    algorithm: str = Field(min_length=1)
    array: List[Union[StrictInt, FiniteFloat]]
    workers: Optional[StrictInt] = Field(default=None, gt=0)


# =============================================================================
# Observer Messages
# =============================================================================

class CoordinatorSwitchMessage(_WireModel):
    """Payload of request_coordinator_switch."""
    new_coordinator_id: str = Field(alias="newCoordinatorId", min_length=1)


class ManualUpdateMessage(_WireModel):
    """Payload of manual_update."""
    worker_id: str = Field(alias="id", min_length=1)
    status: WorkerStatus


class ManualUnregisterMessage(_WireModel):
    """Payload of manual_unregister."""
    worker_id: str = Field(alias="id", min_length=1)


def parse_model(model: Type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` against ``model``, raising our ValidationError."""
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) or "body"
            for err in e.errors()
        )
        raise ValidationError(f"invalid or missing fields: {fields}") from e


def dump_model(model: BaseModel) -> Dict[str, Any]:
    """Serialize a response model with its wire aliases."""
    return model.model_dump(by_alias=True)
