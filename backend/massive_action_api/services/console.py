"""Console workflow: derive an action's parameter form, then run it in batches."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from massive_action_api.api.schemas.fields import FieldSchema, FieldValue
from massive_action_api.core.config import Settings
from massive_action_api.core.errors import (
    SchemaDerivationError,
    SubformFetchError,
    ValidationError,
)
from massive_action_api.services.batch_engine import BatchEngine, BatchJob, ProgressCallback
from massive_action_api.services.discovery import ActionDiscoveryClient
from massive_action_api.services.request_composer import (
    compose,
    initial_values,
    validate_required,
)
from massive_action_api.services.schema_extractor import extract_schema

logger = logging.getLogger(__name__)

SCHEMA_UNAVAILABLE = "Failed to derive action parameters from AJAX endpoint."
MISSING_SELECTION = "Please fill in all required fields"
INVALID_IDS = "Please enter valid item IDs"
MISSING_ACTION_FIELDS = "Please fill in all required action fields"


@dataclass
class DerivedForm:
    fields: list[FieldSchema] = field(default_factory=list)
    values: dict[str, FieldValue] = field(default_factory=dict)
    error: str | None = None


class ConsoleService:
    """Glue between discovery, the schema extractor and the batch engine."""

    def __init__(self, discovery: ActionDiscoveryClient, engine: BatchEngine):
        self.discovery = discovery
        self.engine = engine

    @classmethod
    def from_settings(
        cls,
        client: httpx.AsyncClient,
        settings: Settings,
        headers: Mapping[str, str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> "ConsoleService":
        discovery = ActionDiscoveryClient(
            client,
            api_base_url=settings.bridge_base_url,
            host_base_url=settings.host_base_url,
            subform_path=settings.subform_path,
            headers=headers,
        )
        engine = BatchEngine(
            client,
            f"{settings.bridge_base_url}/process_action",
            max_concurrency=settings.max_concurrency,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            headers=headers,
            on_progress=on_progress,
        )
        return cls(discovery, engine)

    async def derive_form(
        self, itemtype: str | None, ids: list[int], action_key: str | None
    ) -> DerivedForm:
        """Fetch the action's subform and turn it into fields plus initial values.

        Nothing is fetched until item type, IDs and action are all known. When
        the host cannot render the form the console continues without
        parameters and reports ``SCHEMA_UNAVAILABLE``.
        """
        if not itemtype or not action_key or not ids:
            return DerivedForm()
        try:
            html = await self.discovery.fetch_subform(itemtype, ids, action_key)
            fields = extract_schema(html)
        except (SubformFetchError, SchemaDerivationError) as exc:
            logger.warning(f"No parameter form for {action_key} on {itemtype}: {exc}")
            return DerivedForm(error=SCHEMA_UNAVAILABLE)
        return DerivedForm(fields=fields, values=initial_values(fields))

    def prepare_job(
        self,
        itemtype: str | None,
        ids: list[int],
        action_key: str | None,
        form: DerivedForm,
        values: Mapping[str, Any] | None = None,
        batch_size: int = 50,
        has_ids_input: bool = True,
    ) -> BatchJob:
        """Validate the console inputs and build the job; nothing runs yet.

        ``values`` override the form's initial values field by field.
        """
        if not itemtype or not action_key or not has_ids_input:
            raise ValidationError(MISSING_SELECTION)
        if not ids:
            raise ValidationError(INVALID_IDS)

        merged = {**form.values, **(values or {})}
        if not validate_required(form.fields, merged):
            raise ValidationError(MISSING_ACTION_FIELDS)

        action_data = compose(merged, form.fields)
        return self.engine.create_job(itemtype, ids, action_key, action_data, batch_size)

    async def run(self, job: BatchJob, concurrency: int = 1) -> BatchJob:
        return await self.engine.execute(job, concurrency)
