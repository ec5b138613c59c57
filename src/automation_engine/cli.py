"""
Piano Service Automation CLI
"""
import asyncio
import json
from datetime import timedelta
from pathlib import Path

import click

from .config import Settings, configure_logging
from .core import WorkflowParser
from .exceptions import AutomationError, DefinitionValidationError
from .models.execution import DomainEvent
from .models.workflow import WorkflowStatus
from .runtime import Runtime


def _execution_summary(execution) -> dict:
    return {
        "id": execution.id,
        "workflow_id": execution.workflow_id,
        "status": execution.status.value,
        "current_node_id": execution.current_node_id,
        "history": [f"{entry.node_id}:{entry.outcome}" for entry in execution.history],
    }


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
@click.pass_context
def cli(ctx, log_level):
    """Piano Service Automation CLI"""
    settings = Settings.from_env()
    if log_level:
        settings.log_level = log_level.upper()
    configure_logging(settings.log_level)
    ctx.obj = settings


@cli.command()
@click.option('--host', default=None, help='Host to bind to')
@click.option('--port', default=None, type=int, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
@click.pass_obj
def serve(settings, host, port, reload):
    """Start the API server"""
    import uvicorn

    host = host or settings.api_host
    port = port or settings.api_port
    click.echo(f"Starting API server on {host}:{port}")
    uvicorn.run(
        "automation_engine.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload or settings.api_reload
    )


@cli.command()
@click.argument('workflow_files', nargs=-1, required=True, type=click.Path(exists=True))
def validate(workflow_files):
    """Validate workflow definition files"""
    parser = WorkflowParser()
    failed = False
    for workflow_file in workflow_files:
        try:
            definition = parser.parse(Path(workflow_file))
        except DefinitionValidationError as e:
            failed = True
            click.echo(f"✗ {workflow_file}: {e.message}", err=True)
            for error in e.errors:
                click.echo(f"  - {error}", err=True)
            continue
        click.echo(
            f"✓ {workflow_file}: {definition.id} "
            f"({len(definition.nodes)} nodes, {len(definition.edges)} edges)"
        )
    if failed:
        raise SystemExit(1)


@cli.command()
@click.argument('workflow_files', nargs=-1, required=True, type=click.Path(exists=True))
@click.option('--event-type', required=True, help='Trigger type, e.g. client_created')
@click.option('--payload', default='{}', help='Event payload as JSON')
@click.option('--event-id', default=None, help='Event delivery id')
@click.option('--activate', is_flag=True, help='Treat every loaded workflow as active')
@click.pass_obj
def dispatch(settings, workflow_files, event_type, payload, event_id, activate):
    """Fire an event against workflow files using the logging action adapter"""
    try:
        payload_data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"payload is not valid JSON: {e}")

    async def _run():
        runtime = Runtime.in_memory(settings)
        for workflow_file in workflow_files:
            for definition in await runtime.load_definitions(Path(workflow_file)):
                if activate and not definition.is_active:
                    await runtime.definitions.save(definition.with_status(WorkflowStatus.ACTIVE))

        event_kwargs = {"event_id": event_id} if event_id else {}
        event = DomainEvent(type=event_type, payload=payload_data, **event_kwargs)
        executions = await runtime.dispatcher.dispatch(event)
        return [_execution_summary(e) for e in executions]

    try:
        results = asyncio.run(_run())
    except AutomationError as e:
        click.echo(f"Error: {e.message}", err=True)
        raise SystemExit(1)

    if not results:
        click.echo(f"No active workflow matched '{event_type}'")
    click.echo(json.dumps(results, indent=2))


@cli.command()
@click.option('--once', is_flag=True, help='Run a single pass and exit')
@click.pass_obj
def scheduler(settings, once):
    """Resume executions whose delay has elapsed"""
    async def _run():
        runtime = await Runtime.from_settings(settings)
        try:
            if once:
                resumed = await runtime.scheduler.run_once()
                click.echo(f"Resumed {resumed} executions")
                return
            await runtime.scheduler.start()
            click.echo(f"Polling every {settings.scheduler_poll_interval}s, Ctrl+C to stop")
            await asyncio.Event().wait()
        finally:
            await runtime.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        click.echo("Scheduler stopped")


@cli.command(name='check-approvals')
@click.option('--hours', default=None, type=float, help='Age threshold in hours')
@click.pass_obj
def check_approvals(settings, hours):
    """List approvals waiting longer than the threshold"""
    older_than = timedelta(hours=hours) if hours else settings.stale_approval_age

    async def _run():
        runtime = await Runtime.from_settings(settings)
        try:
            return await runtime.gateway.list_stale_approvals(older_than)
        finally:
            await runtime.close()

    stale = asyncio.run(_run())
    if not stale:
        click.echo("No stale approvals")
        return
    for execution in stale:
        approval = execution.pending_approval
        click.echo(
            f"{execution.id} workflow={execution.workflow_id} node={execution.current_node_id} "
            f"paused_at={approval.paused_at.isoformat()} message={approval.message!r}"
        )


def main():
    cli()


if __name__ == '__main__':
    main()
