"""
Temporal client helpers — start a pipeline, poll its progress, wait for the
terminal state.

Usage:
    client = await connect()
    handle = await start_pipeline(client, PipelineInput(target="10.0.0.5"))
    progress = await query_progress(handle)
    state = await await_result(handle)

Detaching from a handle (or interrupting the caller) does not cancel the
pipeline; it keeps running on the worker.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta

from temporalio.client import Client, WorkflowFailureError, WorkflowHandle

import config
from models.schemas import PipelineInput, PipelineProgress, PipelineState, resolve_domains
from utils.errors import PipelineFatalError, fault_message, truncate_error
from workflows.orchestrator import make_session_id
from workflows.pipeline import PentestPipeline

log = logging.getLogger(__name__)


def make_workflow_id(target: str) -> str:
    return make_session_id(target)


async def connect() -> Client:
    log.info("Connecting to Temporal at %s", config.TEMPORAL_HOST)
    return await Client.connect(config.TEMPORAL_HOST, namespace=config.TEMPORAL_NAMESPACE)


async def start_pipeline(client: Client, pipeline_input: PipelineInput) -> WorkflowHandle:
    resolve_domains(pipeline_input.domains)  # reject unknown domains before anything is scheduled
    workflow_id = pipeline_input.workflow_id or make_workflow_id(pipeline_input.target)
    pipeline_input = replace(pipeline_input, workflow_id=workflow_id)

    handle = await client.start_workflow(
        PentestPipeline.run,
        pipeline_input,
        id=workflow_id,
        task_queue=config.TEMPORAL_TASK_QUEUE,
        execution_timeout=timedelta(hours=config.WORKFLOW_TIMEOUT_HOURS),
    )
    log.info("Pipeline started: %s (target %s)", workflow_id, pipeline_input.target)
    return handle


def get_pipeline(client: Client, workflow_id: str) -> WorkflowHandle:
    return client.get_workflow_handle_for(PentestPipeline.run, workflow_id)


async def query_progress(handle: WorkflowHandle) -> PipelineProgress:
    return await handle.query(PentestPipeline.get_progress)


async def await_result(handle: WorkflowHandle) -> PipelineState:
    """Block until the pipeline ends. A failed pipeline raises one PipelineFatalError."""
    try:
        return await handle.result()
    except WorkflowFailureError as e:
        raise PipelineFatalError(truncate_error(fault_message(e))) from e
