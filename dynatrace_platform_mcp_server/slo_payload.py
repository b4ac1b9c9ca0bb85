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

"""Payload construction for SLO writes.

The platform rejects documents that carry both `customSli` and `sliReference`,
including a null or empty value for the unused one. Every outgoing SLO payload
passes through `reconcile_sli` so that exactly one of them is sent.
"""

import copy
from .models import (
    CUSTOM_SLI_KEY,
    SLI_REFERENCE_KEY,
    SLOResource,
    UpdateSLORequest,
    sli_payload,
)
from typing import Any, Dict, Optional


def reconcile_sli(
    payload: Dict[str, Any], current: Optional[SLOResource] = None
) -> Dict[str, Any]:
    """Return a copy of `payload` carrying at most one SLI definition.

    - A populated `customSli` wins; any `sliReference` key is removed.
    - Otherwise a populated `sliReference` wins; any `customSli` key is removed.
    - If neither is populated, empty keys are dropped and the SLI of `current`
      (the previously fetched document) is carried forward unchanged.

    The input payload is not modified.
    """
    cleaned = dict(payload)

    if cleaned.get(CUSTOM_SLI_KEY):
        cleaned.pop(SLI_REFERENCE_KEY, None)
        return cleaned

    if cleaned.get(SLI_REFERENCE_KEY):
        cleaned.pop(CUSTOM_SLI_KEY, None)
        return cleaned

    cleaned.pop(CUSTOM_SLI_KEY, None)
    cleaned.pop(SLI_REFERENCE_KEY, None)
    if current is not None:
        if current.customSli:
            cleaned[CUSTOM_SLI_KEY] = current.customSli
        elif current.sliReference:
            cleaned[SLI_REFERENCE_KEY] = current.sliReference
    return cleaned


def build_update_payload(current: SLOResource, changes: UpdateSLORequest) -> Dict[str, Any]:
    """Merge caller-supplied changes onto the fetched document."""
    payload: Dict[str, Any] = {
        'name': current.name,
        'criteria': copy.deepcopy(current.criteria),
        'tags': list(current.tags or []),
    }
    if current.description:
        payload['description'] = current.description
    if current.customSli:
        payload[CUSTOM_SLI_KEY] = copy.deepcopy(current.customSli)
    if current.sliReference:
        payload[SLI_REFERENCE_KEY] = copy.deepcopy(current.sliReference)

    if changes.name is not None:
        payload['name'] = changes.name
    if changes.description:
        payload['description'] = changes.description
    if changes.criteria is not None:
        payload['criteria'] = [c.model_dump(exclude_none=True) for c in changes.criteria]
    if changes.tags is not None:
        payload['tags'] = list(changes.tags)

    sli = changes.sli
    if sli is not None:
        payload.pop(CUSTOM_SLI_KEY, None)
        payload.pop(SLI_REFERENCE_KEY, None)
        payload.update(sli_payload(sli))

    return reconcile_sli(payload, current)
