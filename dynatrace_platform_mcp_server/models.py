# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Pydantic models for the Dynatrace SLO API."""

from .errors import ValidationError
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from typing import Any, Dict, List, Optional, Type, TypeVar, Union


CUSTOM_SLI_KEY = 'customSli'
SLI_REFERENCE_KEY = 'sliReference'

M = TypeVar('M', bound=BaseModel)


def describe_validation_error(error: PydanticValidationError) -> str:
    """Flatten pydantic errors into one readable line."""
    messages = []
    for err in error.errors():
        location = '.'.join(str(part) for part in err.get('loc', ()))
        message = err.get('msg', 'invalid value').removeprefix('Value error, ')
        messages.append(f'{location}: {message}' if location else message)
    return '; '.join(messages)


def parse_arguments(model: Type[M], arguments: Optional[Dict[str, Any]]) -> M:
    """Validate tool arguments, raising ValidationError before any network call."""
    try:
        return model.model_validate(arguments or {})
    except PydanticValidationError as e:
        raise ValidationError(describe_validation_error(e)) from e


class SliVariable(BaseModel):
    """Name/value pair filled into an SLI template."""

    name: str
    value: str


class CustomSli(BaseModel):
    """SLI defined by a DQL query that outputs an `sli` field (0-100)."""

    model_config = ConfigDict(extra='allow')

    indicator: str = Field(..., min_length=1)


class SliReference(BaseModel):
    """SLI defined by a built-in objective template."""

    model_config = ConfigDict(extra='allow')

    templateId: str = Field(..., min_length=1)
    variables: List[SliVariable] = Field(default_factory=list)


Sli = Union[CustomSli, SliReference]


def sli_payload(sli: Sli) -> Dict[str, Any]:
    """Wire representation of an SLI: a single `customSli` or `sliReference` key."""
    key = CUSTOM_SLI_KEY if isinstance(sli, CustomSli) else SLI_REFERENCE_KEY
    return {key: sli.model_dump(exclude_none=True)}


class Criterion(BaseModel):
    """One SLO target over a timeframe."""

    model_config = ConfigDict(extra='allow')

    timeframeFrom: Optional[str] = None
    timeframeTo: Optional[str] = None
    target: float = Field(..., ge=0, le=100)
    warning: Optional[float] = Field(None, ge=0, le=100)


class SLOResource(BaseModel):
    """SLO document as returned by the platform.

    Fields the model does not declare are kept on decode. Writes only send the
    fields `build_update_payload` copies.
    """

    model_config = ConfigDict(extra='allow')

    id: str
    name: str
    version: str
    description: Optional[str] = None
    customSli: Optional[Dict[str, Any]] = None
    sliReference: Optional[Dict[str, Any]] = None
    criteria: List[Any] = Field(default_factory=list)
    tags: Optional[List[str]] = None


def _exactly_one_sli(custom_sli: Optional[CustomSli], sli_reference: Optional[SliReference]):
    if custom_sli is not None and sli_reference is not None:
        raise ValueError(
            'cannot specify both customSli and sliReference - they are mutually exclusive'
        )


class CreateSLORequest(BaseModel):
    """Arguments for creating an SLO."""

    name: str
    criteria: List[Criterion]
    description: Optional[str] = None
    customSli: Optional[CustomSli] = None
    sliReference: Optional[SliReference] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Name must not be blank."""
        if not v or not v.strip():
            raise ValueError('name is required')
        return v

    @field_validator('criteria')
    @classmethod
    def validate_criteria(cls, v):
        """At least one criterion is required."""
        if not v:
            raise ValueError('criteria is required and must not be empty')
        return v

    @model_validator(mode='after')
    def validate_sli(self):
        """Exactly one of customSli and sliReference."""
        _exactly_one_sli(self.customSli, self.sliReference)
        if self.customSli is None and self.sliReference is None:
            raise ValueError('either customSli or sliReference is required')
        return self

    @property
    def sli(self) -> Sli:
        """The SLI variant supplied by the caller."""
        return self.customSli if self.customSli is not None else self.sliReference  # type: ignore[return-value]

    def to_payload(self) -> Dict[str, Any]:
        """Request body for POST /slos."""
        payload: Dict[str, Any] = {
            'name': self.name,
            'criteria': [c.model_dump(exclude_none=True) for c in self.criteria],
            'tags': list(self.tags),
        }
        if self.description:
            payload['description'] = self.description
        payload.update(sli_payload(self.sli))
        return payload


class UpdateSLORequest(BaseModel):
    """Arguments for updating an SLO. Unset fields keep their current value."""

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None
    customSli: Optional[CustomSli] = None
    sliReference: Optional[SliReference] = None
    criteria: Optional[List[Criterion]] = None
    tags: Optional[List[str]] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """A supplied name must not be blank."""
        if v is not None and not v.strip():
            raise ValueError('name must not be empty')
        return v

    @field_validator('criteria')
    @classmethod
    def validate_criteria(cls, v):
        """Supplied criteria must not be empty."""
        if v is not None and not v:
            raise ValueError('criteria must not be empty')
        return v

    @model_validator(mode='after')
    def validate_sli(self):
        """At most one of customSli and sliReference."""
        _exactly_one_sli(self.customSli, self.sliReference)
        return self

    @property
    def sli(self) -> Optional[Sli]:
        """The SLI variant supplied by the caller, if any."""
        return self.customSli if self.customSli is not None else self.sliReference


class ListRequest(BaseModel):
    """Pagination and filtering hints for collection reads."""

    page_size: Optional[int] = None
    page_key: Optional[str] = None
    filter: Optional[str] = None
    sort: Optional[str] = None


class ResourceIdRequest(BaseModel):
    """Arguments that only carry a resource ID."""

    id: str = Field(..., min_length=1)


class EvaluationRequest(BaseModel):
    """Arguments for starting an SLO evaluation."""

    id: str = Field(..., min_length=1)
    timeframe_from: Optional[str] = None
    timeframe_to: Optional[str] = None
    timeout_ms: Optional[int] = Field(None, ge=1)

    def custom_timeframe(self) -> Optional[Dict[str, str]]:
        """Timeframe override, or None to use the SLO's own criteria timeframe."""
        timeframe = {}
        if self.timeframe_from:
            timeframe['timeframeFrom'] = self.timeframe_from
        if self.timeframe_to:
            timeframe['timeframeTo'] = self.timeframe_to
        return timeframe or None


class EvaluationTokenRequest(BaseModel):
    """Arguments that carry an evaluation token."""

    evaluation_token: str = Field(..., min_length=1)


class EvaluationResult(BaseModel):
    """One evaluated criterion."""

    model_config = ConfigDict(extra='allow')

    status: Optional[str] = None
    value: Optional[float] = None
    errorBudget: Optional[float] = None
    target: Optional[float] = None
    warning: Optional[float] = None


class EvaluationStartResponse(BaseModel):
    """Response of evaluation:start, either synchronous results or a token."""

    model_config = ConfigDict(extra='allow')

    evaluationToken: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    evaluationResults: Optional[List[EvaluationResult]] = None


class EvaluationPollResponse(BaseModel):
    """Response of evaluation:poll."""

    model_config = ConfigDict(extra='allow')

    status: Optional[str] = None
    progress: Optional[int] = None
    result: Optional[EvaluationResult] = None
    results: Optional[Dict[str, Any]] = None
